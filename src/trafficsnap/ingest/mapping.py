"""Column detection for YouTube Analytics suggested-traffic exports.

Export column order is not stable between YouTube Studio releases and UI
languages, so the layout is detected from header keywords. When detection is
incomplete the caller must supply a mapping explicitly; there is no fallback to
a default layout.
"""
from __future__ import annotations

import logging
from typing import Mapping, Sequence

from ..core.errors import MappingRequired
from ..schemas.traffic import Column, ColumnMapping

logger = logging.getLogger(__name__)

# Lower-case substrings; English and Russian Studio exports.
KNOWN_HEADERS: Mapping[Column, tuple[str, ...]] = {
    Column.SOURCE_ID: ("traffic source", "источник трафика"),
    Column.SOURCE_TYPE: ("source type", "тип источника"),
    Column.SOURCE_TITLE: ("source title", "video title", "название источника"),
    Column.IMPRESSIONS: ("impressions", "показы"),
    Column.CTR: (
        "impressions click-through rate",
        "click-through rate",
        "ctr",
        "показатель кликабельности",
    ),
    Column.VIEWS: ("views", "просмотры"),
    Column.AVG_DURATION: (
        "average view duration",
        "avg duration",
        "средняя продолжительность просмотра",
        "средняя длительность просмотра",
    ),
    Column.WATCH_TIME: ("watch time", "время просмотра"),
    Column.CHANNEL_ID: ("channel id", "идентификатор канала"),
}

# Substring pass order: columns whose keywords contain another column's
# keyword are resolved first ("impressions click-through rate" before
# "impressions").
_SUBSTRING_ORDER: tuple[Column, ...] = (
    Column.CTR,
    Column.AVG_DURATION,
    Column.WATCH_TIME,
    Column.SOURCE_TYPE,
    Column.SOURCE_TITLE,
    Column.CHANNEL_ID,
    Column.SOURCE_ID,
    Column.IMPRESSIONS,
    Column.VIEWS,
)

DEFAULT_HEADER: tuple[str, ...] = (
    "Traffic source",
    "Source type",
    "Source title",
    "Impressions",
    "Impressions click-through rate (%)",
    "Views",
    "Average view duration",
    "Watch time (hours)",
)

DEFAULT_MAPPING = ColumnMapping(
    source_id=0,
    source_type=1,
    source_title=2,
    impressions=3,
    ctr=4,
    views=5,
    avg_duration=6,
    watch_time=7,
)


def normalize_header(cell: str) -> str:
    return cell.replace("\ufeff", "").replace('"', "").replace("'", "").strip().lower()


def detect_mapping(
    header_row: Sequence[str],
    known_headers: Mapping[Column, tuple[str, ...]] = KNOWN_HEADERS,
) -> ColumnMapping | None:
    """Build a mapping from header keywords.

    Returns ``None`` only when no column matched at all; otherwise unmatched
    columns carry ``-1``. A header cell is never assigned to two columns.
    """
    headers = [normalize_header(h) for h in header_row]
    found: dict[Column, int] = {}
    claimed: set[int] = set()

    for column, keywords in known_headers.items():
        for keyword in keywords:
            idx = _first_unclaimed(headers, claimed, lambda h, k=keyword: h == k)
            if idx >= 0:
                found[column] = idx
                claimed.add(idx)
                break

    for column in _SUBSTRING_ORDER:
        if column in found or column not in known_headers:
            continue
        for keyword in known_headers[column]:
            idx = _first_unclaimed(headers, claimed, lambda h, k=keyword: k in h)
            if idx >= 0:
                found[column] = idx
                claimed.add(idx)
                break

    if not found:
        return None
    return ColumnMapping(**{column.value: idx for column, idx in found.items()})


def _first_unclaimed(headers: list[str], claimed: set[int], match) -> int:
    for idx, header in enumerate(headers):
        if idx not in claimed and match(header):
            return idx
    return -1


def resolve_mapping(
    header_row: Sequence[str], user_mapping: ColumnMapping | None = None
) -> ColumnMapping:
    if user_mapping is not None:
        missing = user_mapping.missing_required()
        if missing:
            raise MappingRequired(header_row, missing)
        return user_mapping

    detected = detect_mapping(header_row)
    missing = (
        detected.missing_required()
        if detected is not None
        else ColumnMapping().missing_required()
    )
    if missing:
        logger.info("CSV header detection incomplete, missing columns: %s", missing)
        raise MappingRequired(header_row, missing)
    return detected
