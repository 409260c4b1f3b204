from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.db import get_session
from ...core.errors import TrafficEngineError
from ...ingest import codec
from ...schemas import (
    DeltaResult,
    ParseResult,
    RepairEstimate,
    RepairRequest,
    RepairResult,
    SnapshotCreate,
    SnapshotRead,
)
from ...services.delta_service import calculate_version_delta
from ...services.metadata_cache_service import MetadataCacheService
from ...services.reconciliation_service import ReconciliationEngine, classify, estimated_quota
from ...services.snapshot_service import SnapshotStore
from ...services.version_service import VersionService
from ..deps import get_catalog, get_storage, http_error

router = APIRouter()


@router.post("/videos/{video_id}/snapshots", response_model=SnapshotRead)
def create_snapshot(
    video_id: str,
    payload: SnapshotCreate,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
):
    store = SnapshotStore(db, storage)
    video = VersionService(db).get_video_context(video_id)
    try:
        result = codec.parse(payload.csv_text, payload.mapping)
        snapshot_id = store.create(
            payload.owner_id,
            payload.channel_id,
            video_id,
            payload.version,
            result.rows,
            result.total_row,
            payload.csv_text if payload.mapping is None else None,
            publish_date=video.publish_date_ms if video else None,
        )
    except TrafficEngineError as e:
        raise http_error(e) from e
    return store.get(snapshot_id)


@router.get("/videos/{video_id}/snapshots", response_model=list[SnapshotRead])
def list_snapshots(
    video_id: str,
    owner_id: str,
    channel_id: str,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
):
    return SnapshotStore(db, storage).list_for_video(owner_id, channel_id, video_id)


@router.get("/snapshots/{snapshot_id}/rows", response_model=ParseResult)
def snapshot_rows(
    snapshot_id: str,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
):
    store = SnapshotStore(db, storage)
    try:
        return store.load(store.get(snapshot_id))
    except TrafficEngineError as e:
        raise http_error(e) from e


@router.get("/snapshots/{snapshot_id}/repair-estimate", response_model=RepairEstimate)
def repair_estimate(
    snapshot_id: str,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
):
    store = SnapshotStore(db, storage)
    try:
        record = store.get(snapshot_id)
        rows = store.load(record).rows
    except TrafficEngineError as e:
        raise http_error(e) from e
    cache = MetadataCacheService(db).get_many(
        record.owner_id, record.channel_id, [r.video_id for r in rows if r.video_id]
    )
    found = classify(rows, cache)
    return RepairEstimate(
        missing=len(found.missing),
        unenriched=len(found.unenriched),
        estimated_quota=estimated_quota(found.missing, found.unenriched),
    )


@router.post("/snapshots/{snapshot_id}/repair", response_model=RepairResult)
def repair_snapshot(
    snapshot_id: str,
    payload: RepairRequest,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
    catalog=Depends(get_catalog),  # noqa: B008
):
    store = SnapshotStore(db, storage)
    engine = ReconciliationEngine(catalog, MetadataCacheService(db), store)
    try:
        record = store.get(snapshot_id)
        return engine.fetch_and_persist(
            record.owner_id,
            record.channel_id,
            record.video_id,
            record.version,
            payload.api_key or settings.youtube_api_key,
            snapshot_id=snapshot_id,
        )
    except TrafficEngineError as e:
        raise http_error(e) from e


@router.get("/snapshots/{snapshot_id}/delta", response_model=DeltaResult)
def snapshot_delta(
    snapshot_id: str,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
):
    store = SnapshotStore(db, storage)
    try:
        record = store.get(snapshot_id)
        current = store.load(record)
        return calculate_version_delta(
            store,
            record.owner_id,
            record.channel_id,
            record.video_id,
            record.version,
            current.rows,
            current.total_row,
        )
    except TrafficEngineError as e:
        raise http_error(e) from e


@router.delete("/snapshots/{snapshot_id}", status_code=204)
def delete_snapshot(
    snapshot_id: str,
    db: Session = Depends(get_session),  # noqa: B008
    storage=Depends(get_storage),  # noqa: B008
):
    try:
        SnapshotStore(db, storage).delete(snapshot_id)
    except TrafficEngineError as e:
        raise http_error(e) from e
