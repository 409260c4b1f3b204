from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import CachedVideo
from ..schemas.traffic import VideoMetadata
from .snapshot_service import now_ms

logger = logging.getLogger(__name__)

_FIELDS = (
    "title",
    "channel_id",
    "channel_title",
    "channel_avatar",
    "thumbnail",
    "published_at",
    "view_count",
    "duration",
)


def _to_metadata(record: CachedVideo) -> VideoMetadata:
    return VideoMetadata(id=record.video_id, **{f: getattr(record, f) for f in _FIELDS})


class MetadataCacheService:
    """Cached catalog metadata of related videos, per owner channel."""

    def __init__(self, session: Session):
        self.session = session

    def _records(self, owner_id: str, channel_id: str, video_ids: Iterable[str] | None = None):
        stmt = select(CachedVideo).where(
            CachedVideo.owner_id == owner_id,
            CachedVideo.owner_channel_id == channel_id,
        )
        if video_ids is not None:
            stmt = stmt.where(CachedVideo.video_id.in_(list(video_ids)))
        return {r.video_id: r for r in self.session.scalars(stmt)}

    def get_many(
        self, owner_id: str, channel_id: str, video_ids: Iterable[str] | None = None
    ) -> dict[str, VideoMetadata]:
        return {vid: _to_metadata(r) for vid, r in self._records(owner_id, channel_id, video_ids).items()}

    def batch_upsert(self, owner_id: str, channel_id: str, items: Iterable[VideoMetadata]) -> int:
        items = list(items)
        if not items:
            return 0
        existing = self._records(owner_id, channel_id, [i.id for i in items])
        updated_at = now_ms()
        for item in items:
            # unset fields never overwrite cached values
            data = item.model_dump(exclude_none=True, exclude={"id"})
            record = existing.get(item.id)
            if record is None:
                record = CachedVideo(owner_id=owner_id, owner_channel_id=channel_id, video_id=item.id)
                self.session.add(record)
                existing[item.id] = record
            for key, value in data.items():
                setattr(record, key, value)
            record.last_updated = updated_at
        self.session.commit()
        logger.info("cached metadata for %d videos (owner=%s channel=%s)", len(items), owner_id, channel_id)
        return len(items)
