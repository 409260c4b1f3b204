from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import trafficsnap.models  # noqa: F401
from trafficsnap.api.deps import get_catalog, get_storage
from trafficsnap.api.main import app
from trafficsnap.core.db import Base, get_session
from trafficsnap.models import PackagingVersion, Video
from trafficsnap.schemas import VideoMetadata
from trafficsnap.services.storage_service import LocalBlobStorage

CSV_HEADER = (
    "Traffic source,Source type,Source title,Impressions,"
    "Impressions click-through rate (%),Views,Average view duration,Watch time (hours)"
)

SAMPLE_CSV = "\n".join(
    [
        CSV_HEADER,
        "Total,,,1000,5.0,50,0:30,10",
        "YT_RELATED.abc123,Content,My Video,800,6.25,40,0:25,8",
        'YT_RELATED.def456,Content,"Other, video",200,5.0,10,0:40,2',
        "YT_SEARCH.query,Search,some query,0,0,3,0:10,0.1",
    ]
)


class FakeCatalog:
    """Catalog stub answering from a fixed table and recording every batch."""

    def __init__(self, items=None, fail_on_call=None, error=None):
        self.items = {i.id: i for i in items or []}
        self.calls: list[list[str]] = []
        self.fail_on_call = fail_on_call
        self.error = error

    def fetch_batch(self, ids, api_key):
        self.calls.append(list(ids))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise self.error
        return [self.items[i] for i in ids if i in self.items]


def make_metadata(video_id: str, channel_id: str = "UCother") -> VideoMetadata:
    return VideoMetadata(
        id=video_id,
        title=f"Title {video_id}",
        channel_id=channel_id,
        channel_title="Other channel",
        thumbnail=f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
        published_at="2024-01-01T00:00:00Z",
    )


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(db_engine):
    TestingSessionLocal = sessionmaker(bind=db_engine, autoflush=False, autocommit=False)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def storage(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture()
def catalog():
    return FakeCatalog()


@pytest.fixture()
def video(session):
    record = Video(
        id="vid1",
        owner_id="user1",
        channel_id="chan1",
        title="Second title",
        published_video_id="yt_vid1",
        published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        active_version=2,
        is_draft=False,
    )
    session.add(record)
    session.add_all(
        [
            PackagingVersion(
                video_id="vid1",
                version_number=1,
                configuration_snapshot={
                    "title": "First title",
                    "description": "first",
                    "tags": ["a"],
                    "coverImage": "cover1.jpg",
                },
                active_periods=[{"start": 1, "end": 2, "closing_snapshot_id": None}],
            ),
            PackagingVersion(
                video_id="vid1",
                version_number=2,
                configuration_snapshot={"title": "Second title", "description": "second", "tags": []},
                active_periods=[{"start": 2, "end": None, "closing_snapshot_id": None}],
            ),
        ]
    )
    session.commit()
    return record


@pytest.fixture()
def client(db_engine, storage, catalog):
    TestingSessionLocal = sessionmaker(bind=db_engine, autoflush=False, autocommit=False)

    def override_get_session():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_catalog] = lambda: catalog
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
