import logging

from ..core.config import settings
from ..core.db import SessionLocal
from ..core.errors import QuotaExceeded
from ..services.engine import build_engine
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task
def repair_snapshot(owner_id: str, channel_id: str, video_id: str, snapshot_id: str, api_key: str | None = None) -> dict:
    """Reconcile a stored snapshot against the catalog in the background."""
    db = SessionLocal()
    try:
        engine = build_engine(db)
        record = engine.store.get(snapshot_id)
        try:
            result = engine.reconciliation.fetch_and_persist(
                owner_id,
                channel_id,
                video_id,
                record.version,
                api_key or settings.youtube_api_key,
                snapshot_id=snapshot_id,
            )
        except QuotaExceeded:
            logger.warning("quota exhausted while repairing snapshot %s", snapshot_id)
            raise
        return {
            "snapshot_id": result.snapshot_id,
            "rows": len(result.rows),
            "fetched": result.fetched,
            "estimated_quota": result.estimated_quota,
        }
    finally:
        db.close()
