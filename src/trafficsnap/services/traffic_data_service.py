from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import TrafficData
from ..schemas.traffic import ParseResult, TrafficRow
from ..schemas.video import VideoContext
from .snapshot_service import now_ms

logger = logging.getLogger(__name__)


def _dump(row: TrafficRow) -> dict:
    return row.model_dump(exclude_none=True)


class TrafficDataService:
    """Live traffic rows of a video, the data a new snapshot freezes."""

    def __init__(self, session: Session):
        self.session = session

    def _record(self, video: VideoContext) -> TrafficData | None:
        stmt = select(TrafficData).where(
            TrafficData.owner_id == video.owner_id,
            TrafficData.channel_id == video.channel_id,
            TrafficData.video_id == video.id,
        )
        return self.session.scalars(stmt).first()

    def fetch(self, video: VideoContext) -> ParseResult:
        record = self._record(video)
        if record is None:
            return ParseResult(rows=[])
        rows = [TrafficRow.model_validate(s) for s in record.sources or []]
        total = TrafficRow.model_validate(record.total_row) if record.total_row else None
        return ParseResult(rows=rows, total_row=total)

    def save(self, video: VideoContext, rows: Sequence[TrafficRow], total_row: TrafficRow | None = None) -> None:
        """Replace live rows; an omitted Total row keeps the previous one."""
        record = self._record(video)
        if record is None:
            record = TrafficData(owner_id=video.owner_id, channel_id=video.channel_id, video_id=video.id)
            self.session.add(record)
        record.sources = [_dump(r) for r in rows]
        if total_row is not None:
            record.total_row = _dump(total_row)
        record.last_updated = now_ms()
        self.session.commit()

    def clear(self, video: VideoContext) -> None:
        record = self._record(video)
        if record is None:
            return
        record.sources = []
        record.total_row = None
        record.last_updated = now_ms()
        self.session.commit()
        logger.info("cleared live traffic for video %s", video.id)
