"""Per-version traffic snapshots.

Snapshot documents live in the database; the rows themselves are a CSV blob in
object storage. Snapshots written before the hybrid-storage migration carry
their rows inline (``sources``/``total_row``) and are still readable.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import SnapshotNotFound, SnapshotUnreadable, StorageFailure
from ..ingest import codec
from ..models import TrafficSnapshot
from ..schemas.traffic import ParseResult, TrafficRow
from .storage_service import BlobStorage, snapshot_blob_path

logger = logging.getLogger(__name__)

_UNSET: Any = object()

# camelCase keys used by inline legacy rows
_LEGACY_KEYS = {
    "sourceType": "source_type",
    "sourceTitle": "source_title",
    "videoId": "video_id",
    "avgViewDuration": "avg_view_duration",
    "watchTimeHours": "watch_time_hours",
    "channelId": "channel_id",
    "channelTitle": "channel_title",
    "publishedAt": "published_at",
}


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_snapshot_id(timestamp: int, version: int) -> str:
    return f"snap_{timestamp}_v{version}"


def legacy_row(data: dict) -> TrafficRow:
    return TrafficRow.model_validate({_LEGACY_KEYS.get(k, k): v for k, v in data.items()})


def build_summary(rows: Sequence[TrafficRow], total_row: TrafficRow | None = None) -> dict:
    top = max(rows, key=lambda r: r.views, default=None)
    return {
        "total_views": sum(r.views for r in rows),
        "total_watch_time": sum(r.watch_time_hours for r in rows),
        "sources_count": len(rows),
        "top_source": top.source_title if top is not None else None,
        "total_impressions": total_row.impressions if total_row else None,
        "total_ctr": total_row.ctr if total_row else None,
    }


def calculate_active_date(
    timestamp: int,
    existing: Iterable[TrafficSnapshot],
    publish_date: int | None = None,
) -> tuple[int, int]:
    """Period closed by a snapshot: from the previous snapshot (any version),
    else the publish date, else the snapshot itself."""
    previous = [s.timestamp for s in existing if s.timestamp < timestamp]
    if previous:
        start = max(previous)
    elif publish_date is not None:
        start = publish_date
    else:
        start = timestamp
    return start, timestamp


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class SnapshotStore:
    def __init__(
        self,
        session: Session,
        storage: BlobStorage,
        clock: Callable[[], int] = now_ms,
    ):
        self.session = session
        self.storage = storage
        self.clock = clock

    def create(
        self,
        owner_id: str,
        channel_id: str,
        video_id: str,
        version: int,
        rows: Sequence[TrafficRow],
        total_row: TrafficRow | None = None,
        source_file: bytes | str | None = None,
        publish_date: int | None = None,
    ) -> str:
        """Freeze ``rows`` as the snapshot of ``version`` and return its id.

        ``source_file`` is stored verbatim when given, otherwise the rows are
        serialized. Nothing is recorded if the blob cannot be written.
        """
        timestamp = self.clock()
        snapshot_id = generate_snapshot_id(timestamp, version)
        while self.session.get(TrafficSnapshot, snapshot_id) is not None:
            timestamp += 1
            snapshot_id = generate_snapshot_id(timestamp, version)

        path = snapshot_blob_path(owner_id, channel_id, video_id, snapshot_id)
        data = source_file if source_file is not None else codec.serialize(rows, total_row)
        self.storage.upload(path, _as_bytes(data))

        existing = self.list_for_video(owner_id, channel_id, video_id)
        active_start, active_end = calculate_active_date(timestamp, existing, publish_date)
        record = TrafficSnapshot(
            id=snapshot_id,
            owner_id=owner_id,
            channel_id=channel_id,
            video_id=video_id,
            version=version,
            timestamp=timestamp,
            storage_path=path,
            summary=build_summary(rows, total_row),
            active_start=active_start,
            active_end=active_end,
        )
        try:
            self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("failed to record snapshot %s: %s", snapshot_id, e)
            self._discard_blob(path)
            raise StorageFailure(f"failed to record snapshot {snapshot_id}", path=path) from e

        logger.info(
            "traffic snapshot created: id=%s video=%s version=%d sources=%d",
            snapshot_id,
            video_id,
            version,
            len(rows),
        )
        return snapshot_id

    def update(
        self,
        owner_id: str,
        channel_id: str,
        video_id: str,
        snapshot_id: str,
        rows: Sequence[TrafficRow],
        total_row: TrafficRow | None = None,
        source_file: bytes | str | None = None,
    ) -> None:
        """Replace the rows behind an existing snapshot; id and version stay."""
        record = self.get(snapshot_id)
        if (record.owner_id, record.channel_id, record.video_id) != (owner_id, channel_id, video_id):
            raise SnapshotNotFound(snapshot_id)

        path = record.storage_path or snapshot_blob_path(owner_id, channel_id, video_id, snapshot_id)
        data = source_file if source_file is not None else codec.serialize(rows, total_row)
        self.storage.upload(path, _as_bytes(data))

        try:
            record.storage_path = path
            record.sources = None
            record.total_row = None
            record.summary = build_summary(rows, total_row)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("failed to update snapshot %s: %s", snapshot_id, e)
            raise StorageFailure(f"failed to update snapshot {snapshot_id}", path=path) from e

        logger.info("traffic snapshot updated: id=%s sources=%d", snapshot_id, len(rows))

    def load(self, snapshot: TrafficSnapshot) -> ParseResult:
        if snapshot.storage_path:
            data = self.storage.download(snapshot.storage_path)
            return codec.parse(data)

        if snapshot.sources is not None:
            logger.debug("loading legacy inline snapshot %s", snapshot.id)
            rows = [legacy_row(s) for s in snapshot.sources]
            total = legacy_row(snapshot.total_row) if snapshot.total_row else None
            return ParseResult(rows=rows, total_row=total)

        logger.warning(
            "snapshot %s (video=%s version=%d) has no storage path and no inline sources",
            snapshot.id,
            snapshot.video_id,
            snapshot.version,
        )
        raise SnapshotUnreadable(snapshot.id)

    def get(self, snapshot_id: str) -> TrafficSnapshot:
        record = self.session.get(TrafficSnapshot, snapshot_id)
        if record is None:
            raise SnapshotNotFound(snapshot_id)
        return record

    def list_for_video(self, owner_id: str, channel_id: str, video_id: str) -> list[TrafficSnapshot]:
        stmt = (
            select(TrafficSnapshot)
            .where(
                TrafficSnapshot.owner_id == owner_id,
                TrafficSnapshot.channel_id == channel_id,
                TrafficSnapshot.video_id == video_id,
            )
            .order_by(TrafficSnapshot.timestamp)
        )
        return list(self.session.scalars(stmt))

    def find_for_version(
        self,
        snapshots: Sequence[TrafficSnapshot],
        version: int,
        period_start: int | None = None,
        period_end: int | None = None,
    ) -> TrafficSnapshot | None:
        """Latest snapshot of ``version``, optionally inside an active period."""
        buffer = settings.snapshot_period_buffer_ms
        candidates = [s for s in snapshots if s.version == version]
        if period_start is not None:
            candidates = [
                s
                for s in candidates
                if s.timestamp >= period_start - buffer
                and (not period_end or s.timestamp <= period_end + buffer)
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.timestamp)

    def get_version_rows(
        self,
        owner_id: str,
        channel_id: str,
        video_id: str,
        version: int,
        period_start: int | None = None,
        period_end: int | None = None,
    ) -> ParseResult:
        snapshots = self.list_for_video(owner_id, channel_id, video_id)
        snapshot = self.find_for_version(snapshots, version, period_start, period_end)
        if snapshot is None:
            return ParseResult(rows=[])
        return self.load(snapshot)

    def update_metadata(
        self,
        snapshot_id: str,
        label: str | None = _UNSET,
        active_date: tuple[int, int] | None = _UNSET,
        version: int = _UNSET,
    ) -> TrafficSnapshot:
        record = self.get(snapshot_id)
        if label is not _UNSET:
            record.label = label or None
        if active_date is not _UNSET:
            record.active_start, record.active_end = active_date or (None, None)
        if version is not _UNSET:
            record.version = version
        self.session.commit()
        return record

    def delete(self, snapshot_id: str) -> None:
        record = self.get(snapshot_id)
        if record.storage_path:
            self._discard_blob(record.storage_path)
        self.session.delete(record)
        self.session.commit()
        logger.info("traffic snapshot deleted: id=%s", snapshot_id)

    def _discard_blob(self, path: str) -> None:
        try:
            self.storage.delete(path)
        except StorageFailure as e:
            logger.error("failed to delete blob %s: %s", path, e)
