"""Fill in missing related-video metadata from the catalog API.

Exports often leave the title (and always the channel id) blank for related
videos outside the creator's own catalog. Repair looks those ids up in batches
of at most 50, caches what it gets, and overlays it onto the rows.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ..core.config import settings
from ..core.errors import MissingApiKey
from ..ingest import codec
from ..schemas.snapshot import RepairResult
from ..schemas.traffic import TrafficRow, VideoMetadata
from .metadata_cache_service import MetadataCacheService
from .snapshot_service import SnapshotStore
from .youtube_service import CatalogClient

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    missing: list[TrafficRow] = field(default_factory=list)
    unenriched: list[TrafficRow] = field(default_factory=list)


def classify(rows: Sequence[TrafficRow], cache: Mapping[str, VideoMetadata]) -> Classification:
    result = Classification()
    for row in rows:
        if not row.video_id:
            continue
        if not row.has_title:
            result.missing.append(row)
            continue
        cached = cache.get(row.video_id)
        if not row.channel_id and not (cached and cached.channel_id):
            result.unenriched.append(row)
    return result


def estimated_quota(
    missing: Sequence[TrafficRow],
    unenriched: Sequence[TrafficRow],
    batch_size: int | None = None,
    cost_per_call: int | None = None,
) -> int:
    batch_size = batch_size or settings.catalog_batch_size
    cost_per_call = cost_per_call or settings.catalog_quota_cost
    return math.ceil((len(missing) + len(unenriched)) / batch_size) * cost_per_call


def ids_to_fetch(rows: Sequence[TrafficRow], cache: Mapping[str, VideoMetadata]) -> list[str]:
    """Unique ids of missing/unenriched rows the cache cannot resolve."""
    found = classify(rows, cache)
    ids: list[str] = []
    seen: set[str] = set()
    for row in (*found.missing, *found.unenriched):
        vid = row.video_id
        if vid in seen:
            continue
        seen.add(vid)
        cached = cache.get(vid)
        if cached is None or not cached.channel_id:
            ids.append(vid)
    return ids


def overlay(rows: Sequence[TrafficRow], *sources: Mapping[str, VideoMetadata]) -> list[TrafficRow]:
    """Merge metadata into rows; earlier sources win. Rows are never dropped."""
    merged = []
    for row in rows:
        details = next((s[row.video_id] for s in sources if row.video_id and row.video_id in s), None)
        if details is None:
            merged.append(row)
            continue
        merged.append(
            row.model_copy(
                update={
                    "source_title": details.title or row.source_title,
                    "channel_id": details.channel_id or row.channel_id,
                    "channel_title": details.channel_title or row.channel_title,
                    "thumbnail": details.thumbnail or row.thumbnail,
                    "published_at": details.published_at or row.published_at,
                }
            )
        )
    return merged


class ReconciliationEngine:
    def __init__(
        self,
        catalog: CatalogClient,
        cache: MetadataCacheService,
        store: SnapshotStore,
        batch_size: int | None = None,
    ):
        self.catalog = catalog
        self.cache = cache
        self.store = store
        self.batch_size = batch_size or settings.catalog_batch_size

    def classify(self, rows: Sequence[TrafficRow], cache: Mapping[str, VideoMetadata]) -> Classification:
        return classify(rows, cache)

    def estimated_quota(self, missing: Sequence[TrafficRow], unenriched: Sequence[TrafficRow]) -> int:
        return estimated_quota(missing, unenriched, batch_size=self.batch_size)

    def repair(
        self,
        rows: Sequence[TrafficRow],
        owner_id: str,
        channel_id: str,
        api_key: str | None,
        cache: Mapping[str, VideoMetadata],
    ) -> list[TrafficRow]:
        to_fetch = ids_to_fetch(rows, cache)
        if not to_fetch:
            logger.debug("no traffic rows need repair")
            return overlay(rows, cache)
        if not api_key:
            raise MissingApiKey()

        logger.info("fetching metadata for %d videos in batches of %d", len(to_fetch), self.batch_size)
        fetched: dict[str, VideoMetadata] = {}
        # sequential on purpose: every call is billed against the same daily quota
        for start in range(0, len(to_fetch), self.batch_size):
            chunk = to_fetch[start : start + self.batch_size]
            for item in self.catalog.fetch_batch(chunk, api_key):
                fetched[item.id] = item

        if fetched:
            self.cache.batch_upsert(owner_id, channel_id, fetched.values())
        return overlay(rows, fetched, cache)

    def fetch_and_persist(
        self,
        owner_id: str,
        channel_id: str,
        video_id: str,
        version: int,
        api_key: str | None,
        rows: Sequence[TrafficRow] | None = None,
        total_row: TrafficRow | None = None,
        snapshot_id: str | None = None,
    ) -> RepairResult:
        """Repair rows and persist them as a snapshot.

        Rows that are already complete are returned as they are, with nothing
        written and ``snapshot_id`` passed through.

        With ``snapshot_id`` the full frozen snapshot is reloaded first (the
        caller may only hold a filtered view) and updated in place; otherwise a
        new snapshot is created for ``version``.
        """
        if snapshot_id:
            full = self.store.load(self.store.get(snapshot_id))
            if full.rows:
                rows = full.rows
                total_row = full.total_row or total_row
        if rows is None:
            raise ValueError("rows or snapshot_id is required")

        cache = self.cache.get_many(owner_id, channel_id, [r.video_id for r in rows if r.video_id])
        found = classify(rows, cache)
        quota = self.estimated_quota(found.missing, found.unenriched)
        fetched = len(ids_to_fetch(rows, cache))

        repaired = self.repair(rows, owner_id, channel_id, api_key, cache)
        if not fetched and repaired == list(rows):
            logger.info("traffic rows for video %s are complete, nothing to persist", video_id)
            return RepairResult(
                rows=repaired,
                total_row=total_row,
                snapshot_id=snapshot_id,
                estimated_quota=quota,
                fetched=0,
            )
        csv_text = codec.serialize(repaired, total_row)

        if snapshot_id:
            self.store.update(owner_id, channel_id, video_id, snapshot_id, repaired, total_row, csv_text)
        else:
            snapshot_id = self.store.create(owner_id, channel_id, video_id, version, repaired, total_row, csv_text)

        logger.info(
            "repaired traffic snapshot %s: rows=%d fetched=%d quota~%d",
            snapshot_id,
            len(repaired),
            fetched,
            quota,
        )
        return RepairResult(
            rows=repaired,
            total_row=total_row,
            snapshot_id=snapshot_id,
            estimated_quota=quota,
            fetched=fetched,
        )
