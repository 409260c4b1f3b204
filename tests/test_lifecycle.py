import asyncio

import pytest
from conftest import SAMPLE_CSV, FakeCatalog, make_metadata
from sqlalchemy.exc import OperationalError

from trafficsnap.core.errors import CoordinatorBusy, MappingRequired, NoPendingRequest, NoVideoData, StorageFailure
from trafficsnap.ingest import parse
from trafficsnap.models import PackagingVersion, TrafficSnapshot, Video
from trafficsnap.schemas import ColumnMapping, TrafficRow
from trafficsnap.services.engine import build_engine
from trafficsnap.services.lifecycle import CoordinatorState


class FakePrompt:
    def __init__(self):
        self.shown = []
        self.toasts = []
        self.mapping_requests = []
        self.closed = 0

    async def show(self, request):
        self.shown.append(request)

    async def request_mapping(self, headers, missing):
        self.mapping_requests.append(list(missing))

    async def toast(self, message, error=False):
        self.toasts.append((message, error))

    async def close(self):
        self.closed += 1


class BrokenStorage:
    def upload(self, path, data):
        raise StorageFailure("bucket unavailable", path=path)

    def download(self, path):
        raise StorageFailure("bucket unavailable", path=path)

    def delete(self, path):
        return None

    def exists(self, path):
        return False


@pytest.fixture()
def engine(session, storage):
    return build_engine(session, storage, FakeCatalog([make_metadata("abc123")]))


@pytest.fixture()
def prompt():
    return FakePrompt()


@pytest.fixture()
def coordinator(engine, prompt):
    return engine.coordinator(prompt)


@pytest.fixture()
def ctx(engine, video):
    return engine.history.get_video_context(video.id)


def _snapshots(session):
    return session.query(TrafficSnapshot).all()


def _live_rows(engine, ctx):
    return engine.traffic.fetch(ctx).rows


def _seed_live(engine, ctx):
    parsed = parse(SAMPLE_CSV)
    engine.traffic.save(ctx, parsed.rows, parsed.total_row)


def test_first_version_never_snapshots(coordinator, engine, ctx, session, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("create must not be called")

    monkeypatch.setattr(engine.store, "create", fail)
    _seed_live(engine, ctx)

    assert asyncio.run(coordinator.request_snapshot_for_new_version(1, ctx)) is None
    assert coordinator.state is CoordinatorState.IDLE
    assert _live_rows(engine, ctx) == []


def test_unpublished_video_never_snapshots(coordinator, engine, ctx, prompt):
    unpublished = ctx.model_copy(update={"published_video_id": None})
    assert asyncio.run(coordinator.request_snapshot_for_new_version(3, unpublished)) is None
    assert prompt.shown == []


def test_new_version_upload_creates_snapshot_and_clears_live_traffic(coordinator, engine, ctx, prompt, session):
    _seed_live(engine, ctx)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        assert coordinator.state is CoordinatorState.AWAITING_CREATE_SNAPSHOT
        uploaded = await coordinator.on_upload(SAMPLE_CSV.encode())
        return uploaded, await pending

    uploaded, resolved = asyncio.run(run())

    assert uploaded == resolved
    assert resolved.endswith("_v3")
    assert coordinator.state is CoordinatorState.IDLE
    assert len(prompt.shown) == 1
    assert prompt.closed == 1
    snapshot = engine.store.get(resolved)
    assert snapshot.version == 3
    assert [r.video_id for r in engine.store.load(snapshot).rows] == ["abc123", "def456"]
    assert _live_rows(engine, ctx) == []


def test_new_version_skip_resolves_none(coordinator, engine, ctx, session):
    _seed_live(engine, ctx)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        await coordinator.on_skip()
        return await pending

    assert asyncio.run(run()) is None
    assert coordinator.state is CoordinatorState.IDLE
    assert _snapshots(session) == []
    assert _live_rows(engine, ctx) == []


def test_unrecognized_header_keeps_request_pending_until_mapped(coordinator, engine, ctx, prompt):
    renamed = SAMPLE_CSV.replace("Source title", "Video Name", 1)
    manual = ColumnMapping(
        source_id=0, source_type=1, source_title=2, impressions=3, ctr=4, views=5, avg_duration=6, watch_time=7
    )

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        with pytest.raises(MappingRequired):
            await coordinator.on_upload(renamed)
        assert coordinator.state is CoordinatorState.AWAITING_CREATE_SNAPSHOT
        await coordinator.on_upload(renamed, manual)
        return await pending

    snapshot_id = asyncio.run(run())

    assert prompt.mapping_requests == [["source_title"]]
    # stored blob is the canonical layout, readable without the manual mapping
    loaded = engine.store.load(engine.store.get(snapshot_id))
    assert loaded.rows[1].source_title == "Other, video"


def test_file_without_video_rows_keeps_request_pending(coordinator, ctx, prompt):
    header_only = SAMPLE_CSV.splitlines()[0] + "\nTotal,,,1,1,1,0:01,1\n"

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        with pytest.raises(NoVideoData):
            await coordinator.on_upload(header_only)
        assert coordinator.state is CoordinatorState.AWAITING_CREATE_SNAPSHOT
        await coordinator.on_skip()
        return await pending

    assert asyncio.run(run()) is None
    assert prompt.toasts[0][1] is True


def test_second_request_while_pending_is_rejected(coordinator, ctx):
    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        with pytest.raises(CoordinatorBusy):
            await coordinator.request_snapshot_for_restore(1, ctx)
        await coordinator.on_skip()
        return await pending

    asyncio.run(run())


def test_upload_and_skip_need_a_pending_request(coordinator):
    with pytest.raises(NoPendingRequest):
        asyncio.run(coordinator.on_upload(SAMPLE_CSV))
    with pytest.raises(NoPendingRequest):
        asyncio.run(coordinator.on_skip())


def test_storage_failure_returns_to_idle_without_snapshot(session, ctx, prompt):
    engine = build_engine(session, BrokenStorage(), FakeCatalog())
    coordinator = engine.coordinator(prompt)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        assert await coordinator.on_upload(SAMPLE_CSV) is None
        return await pending

    assert asyncio.run(run()) is None
    assert coordinator.state is CoordinatorState.IDLE
    assert _snapshots(session) == []
    assert prompt.toasts == [("Failed to save snapshot", True)]


def test_restore_upload_snapshots_replaced_version_then_restores(coordinator, engine, ctx, session):
    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(1, ctx))
        await asyncio.sleep(0)
        assert coordinator.state is CoordinatorState.AWAITING_RESTORE_SNAPSHOT
        await coordinator.on_upload(SAMPLE_CSV)
        return await pending

    snapshot_id = asyncio.run(run())

    assert engine.store.get(snapshot_id).version == 2
    video = session.get(Video, "vid1")
    assert video.active_version == 1
    assert video.title == "First title"
    assert video.cover_image == "cover1.jpg"
    assert video.is_draft is False
    assert video.packaging_revision == 1

    v1 = engine.history.get_version("vid1", 1)
    v2 = engine.history.get_version("vid1", 2)
    assert v2.active_periods[-1]["closing_snapshot_id"] == snapshot_id
    assert v2.active_periods[-1]["end"] is not None
    assert v1.active_periods[-1]["end"] is None
    assert len(v1.active_periods) == 2


def test_restore_skip_freezes_live_traffic_first(coordinator, engine, ctx, session):
    _seed_live(engine, ctx)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(1, ctx))
        await asyncio.sleep(0)
        await coordinator.on_skip()
        return await pending

    snapshot_id = asyncio.run(run())

    assert snapshot_id is not None
    snapshot = engine.store.get(snapshot_id)
    assert snapshot.version == 2
    assert len(engine.store.load(snapshot).rows) == 2
    assert session.get(Video, "vid1").active_version == 1


def test_restore_skip_without_live_traffic_still_restores(coordinator, ctx, session, prompt):
    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(1, ctx))
        await asyncio.sleep(0)
        await coordinator.on_skip()
        return await pending

    assert asyncio.run(run()) is None
    assert _snapshots(session) == []
    assert session.get(Video, "vid1").active_version == 1
    assert prompt.toasts == [("Restored to v.1", False)]


def test_restore_snapshot_failure_leaves_history_untouched(session, ctx, prompt):
    engine = build_engine(session, BrokenStorage(), FakeCatalog())
    coordinator = engine.coordinator(prompt)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(1, ctx))
        await asyncio.sleep(0)
        await coordinator.on_upload(SAMPLE_CSV)
        return await pending

    assert asyncio.run(run()) is None
    video = session.get(Video, "vid1")
    assert video.active_version == 2
    assert video.packaging_revision == 0
    periods = session.query(PackagingVersion).filter_by(version_number=2).one().active_periods
    assert periods[-1]["end"] is None


def test_restore_of_unknown_version_creates_nothing(coordinator, ctx, session, prompt):
    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(9, ctx))
        await asyncio.sleep(0)
        await coordinator.on_upload(SAMPLE_CSV)
        return await pending

    assert asyncio.run(run()) is None
    assert _snapshots(session) == []
    assert prompt.toasts == [("Version data not found", True)]
    assert coordinator.state is CoordinatorState.IDLE


def test_repair_missing_metadata_on_live_traffic(coordinator, engine, ctx):
    engine.traffic.save(ctx, [TrafficRow(source_title="", video_id="abc123", views=4)])

    result = coordinator.repair_missing_metadata(ctx, "key")

    assert result.rows[0].source_title == "Title abc123"
    assert engine.store.get(result.snapshot_id).version == 2
    assert _live_rows(engine, ctx)[0].channel_id == "UCother"


def _db_error(*args, **kwargs):
    raise OperationalError("UPDATE traffic_data", {}, Exception("database is locked"))


def test_failed_clear_after_create_still_resolves_with_snapshot(coordinator, engine, ctx, prompt, session, monkeypatch):
    _seed_live(engine, ctx)
    monkeypatch.setattr(engine.traffic, "clear", _db_error)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        uploaded = await coordinator.on_upload(SAMPLE_CSV)
        return uploaded, await pending

    uploaded, resolved = asyncio.run(run())

    assert resolved == uploaded
    assert [s.id for s in _snapshots(session)] == [resolved]
    assert coordinator.state is CoordinatorState.IDLE
    assert prompt.toasts == [("Failed to clear traffic data", True), ("Snapshot saved for v.3", False)]


def test_restore_skip_with_unreadable_live_traffic_returns_to_idle(coordinator, engine, ctx, prompt, session, monkeypatch):
    monkeypatch.setattr(engine.traffic, "fetch", _db_error)

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(1, ctx))
        await asyncio.sleep(0)
        assert await coordinator.on_skip() is None
        return await pending

    assert asyncio.run(run()) is None
    assert coordinator.state is CoordinatorState.IDLE
    assert prompt.toasts == [("Failed to read traffic data", True)]
    assert _snapshots(session) == []
    assert session.get(Video, "vid1").active_version == 2


def test_non_utf8_upload_keeps_request_pending(coordinator, ctx, prompt):
    latin1 = SAMPLE_CSV.replace("My Video", "Caf\xe9").encode("latin-1")

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_new_version(3, ctx))
        await asyncio.sleep(0)
        with pytest.raises(NoVideoData):
            await coordinator.on_upload(latin1)
        assert coordinator.state is CoordinatorState.AWAITING_CREATE_SNAPSHOT
        await coordinator.on_skip()
        return await pending

    assert asyncio.run(run()) is None
    assert prompt.toasts == [("file is not UTF-8 text", True)]
    assert coordinator.state is CoordinatorState.IDLE


def test_restore_upload_without_active_version_says_file_was_dropped(coordinator, ctx, prompt, session):
    no_active = ctx.model_copy(update={"active_version": None})

    async def run():
        pending = asyncio.create_task(coordinator.request_snapshot_for_restore(1, no_active))
        await asyncio.sleep(0)
        await coordinator.on_upload(SAMPLE_CSV)
        return await pending

    assert asyncio.run(run()) is None
    assert _snapshots(session) == []
    assert prompt.toasts == [
        ("No active version, uploaded traffic was not saved", False),
        ("Restored to v.1", False),
    ]


def test_failing_prompt_does_not_leave_coordinator_busy(engine, ctx):
    class BrokenPrompt(FakePrompt):
        async def show(self, request):
            raise RuntimeError("chat not found")

    coordinator = engine.coordinator(BrokenPrompt())

    with pytest.raises(RuntimeError):
        asyncio.run(coordinator.request_snapshot_for_new_version(3, ctx))

    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.pending is None
    # a later request is accepted
    assert asyncio.run(coordinator.request_snapshot_for_new_version(1, ctx)) is None


def test_repair_of_complete_live_traffic_writes_nothing(coordinator, engine, ctx, session):
    row = TrafficRow(source_title="Known", video_id="abc123", views=4, channel_id="UCother")
    engine.traffic.save(ctx, [row])

    result = coordinator.repair_missing_metadata(ctx, None)

    assert result.fetched == 0
    assert result.estimated_quota == 0
    assert result.snapshot_id is None
    assert result.rows == [row]
    assert _snapshots(session) == []
    assert engine.reconciliation.catalog.calls == []
