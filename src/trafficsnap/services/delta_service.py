from __future__ import annotations

import logging
from typing import Sequence

from ..schemas.snapshot import DeltaResult
from ..schemas.traffic import TrafficRow
from .snapshot_service import SnapshotStore

logger = logging.getLogger(__name__)


def _delta_ctr(views: int, impressions: int) -> float:
    return round(views / impressions * 100, 2) if impressions > 0 else 0.0


def _subtract(current: TrafficRow, views: int, impressions: int, watch_time: float) -> TrafficRow:
    d_views = max(0, current.views - views)
    d_impressions = max(0, current.impressions - impressions)
    return current.model_copy(
        update={
            "views": d_views,
            "impressions": d_impressions,
            "watch_time_hours": max(0.0, current.watch_time_hours - watch_time),
            "ctr": _delta_ctr(d_views, d_impressions),
        }
    )


def calculate_sources_delta(
    current: Sequence[TrafficRow],
    previous: Sequence[TrafficRow],
    current_total: TrafficRow | None = None,
    previous_total: TrafficRow | None = None,
) -> tuple[list[TrafficRow], TrafficRow | None]:
    """Traffic gained since ``previous``; rows with no growth are dropped."""
    if not previous:
        return list(current), current_total

    prev = {r.video_id: r for r in previous if r.video_id}
    rows = []
    for row in current:
        if not row.video_id:
            rows.append(row)
            continue
        before = prev.get(row.video_id)
        delta = _subtract(
            row,
            before.views if before else 0,
            before.impressions if before else 0,
            before.watch_time_hours if before else 0.0,
        )
        if delta.views > 0 or delta.impressions > 0:
            rows.append(delta)

    total = current_total
    if current_total is not None and previous_total is not None:
        total = _subtract(
            current_total,
            previous_total.views,
            previous_total.impressions,
            previous_total.watch_time_hours,
        )
    return rows, total


def calculate_version_delta(
    store: SnapshotStore,
    owner_id: str,
    channel_id: str,
    video_id: str,
    version: int,
    current: Sequence[TrafficRow],
    current_total: TrafficRow | None = None,
    closing_snapshot_id: str | None = None,
) -> DeltaResult:
    """Delta of ``current`` against the data that closed the previous period.

    A known closing snapshot (restored versions) takes priority; otherwise the
    latest snapshot of the highest version below ``version`` is used.
    """
    snapshots = store.list_for_video(owner_id, channel_id, video_id)
    previous = None

    if closing_snapshot_id:
        previous = next((s for s in snapshots if s.id == closing_snapshot_id), None)
        if previous is None:
            logger.warning("closing snapshot %s not found for video %s", closing_snapshot_id, video_id)

    if previous is None:
        earlier = sorted({s.version for s in snapshots if s.version < version})
        if earlier:
            previous = store.find_for_version(snapshots, earlier[-1])

    if previous is None:
        return DeltaResult(rows=list(current), total_row=current_total)

    loaded = store.load(previous)
    rows, total = calculate_sources_delta(current, loaded.rows, current_total, loaded.total_row)
    return DeltaResult(rows=rows, total_row=total, previous_snapshot_id=previous.id)
