from __future__ import annotations

import csv
import logging
import re
from typing import Iterable, Sequence

from ..core.errors import NoVideoData
from ..schemas.traffic import ColumnMapping, ParseResult, TrafficRow
from .mapping import DEFAULT_HEADER, resolve_mapping

logger = logging.getLogger(__name__)

RELATED_PREFIX = "YT_RELATED."
TOTAL_TOKEN = "total"
CHANNEL_ID_HEADER = "Channel ID"

_NON_NUMERIC = re.compile(r"[^0-9.]")
_ISO_DURATION = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def split_csv_line(line: str) -> list[str]:
    """Split one line on commas outside double quotes; ``""`` is a literal quote."""
    return next(csv.reader([line]), [])


def clean_int(value: str | None) -> int:
    cleaned = _NON_NUMERIC.sub("", value or "")
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        return int(float(cleaned))
    except ValueError:
        return 0


def clean_float(value: str | None) -> float:
    try:
        return float(_NON_NUMERIC.sub("", value or ""))
    except ValueError:
        return 0.0


def duration_to_seconds(value: str | None) -> int | None:
    """Seconds for ``H:MM:SS``, ``MM:SS``, raw seconds or ISO-8601 ``PT#H#M#S``."""
    text = (value or "").strip()
    if not text:
        return None
    iso = _ISO_DURATION.match(text.upper())
    if iso and text.upper() != "P":
        days, hours, minutes, seconds = (float(g) if g else 0.0 for g in iso.groups())
        return round(days * 86400 + hours * 3600 + minutes * 60 + seconds)
    if ":" in text:
        parts = text.split(":")
        if len(parts) > 3 or not all(p.strip().isdigit() for p in parts):
            return None
        total = 0
        for part in parts:
            total = total * 60 + int(part)
        return total
    try:
        return round(float(text))
    except ValueError:
        return None


def format_duration(seconds: int) -> str:
    hours, rest = divmod(max(seconds, 0), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def normalize_duration(value: str | None) -> str:
    seconds = duration_to_seconds(value)
    if seconds is None:
        return (value or "").strip()
    return format_duration(seconds)


def _cell(cols: Sequence[str], idx: int) -> str:
    if idx < 0 or idx >= len(cols):
        return ""
    return cols[idx].strip()


def _build_row(cols: Sequence[str], mapping: ColumnMapping, video_id: str | None) -> TrafficRow:
    channel_id = _cell(cols, mapping.channel_id) or None
    return TrafficRow(
        source_type=_cell(cols, mapping.source_type),
        source_title=_cell(cols, mapping.source_title),
        video_id=video_id,
        impressions=clean_int(_cell(cols, mapping.impressions)),
        ctr=clean_float(_cell(cols, mapping.ctr)),
        views=clean_int(_cell(cols, mapping.views)),
        avg_view_duration=normalize_duration(_cell(cols, mapping.avg_duration)),
        watch_time_hours=clean_float(_cell(cols, mapping.watch_time)),
        channel_id=channel_id,
    )


def _decode(text: str | bytes) -> str:
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise NoVideoData("file is not UTF-8 text") from e
    return text.lstrip("\ufeff")


def parse(text: str | bytes, mapping: ColumnMapping | None = None) -> ParseResult:
    """Parse a suggested-traffic export into video rows and an optional Total row.

    Raises ``MappingRequired`` when the header cannot be resolved and
    ``NoVideoData`` when no ``YT_RELATED.`` row survives.
    """
    lines = _decode(text).splitlines()
    if not lines or not lines[0].strip():
        raise NoVideoData("file is empty")

    active = resolve_mapping(split_csv_line(lines[0]), mapping)

    rows: list[TrafficRow] = []
    total_row: TrafficRow | None = None
    dropped = 0
    for line in lines[1:]:
        if not line.strip():
            continue
        cols = split_csv_line(line)
        source_id = _cell(cols, active.source_id).strip('"').strip()
        if TOTAL_TOKEN in source_id.lower():
            total_row = _build_row(cols, active, video_id=None)
        elif source_id.startswith(RELATED_PREFIX) and len(source_id) > len(RELATED_PREFIX):
            rows.append(_build_row(cols, active, video_id=source_id[len(RELATED_PREFIX):]))
        else:
            dropped += 1

    logger.debug(
        "parsed traffic CSV: %d video rows, total=%s, dropped=%d",
        len(rows),
        total_row is not None,
        dropped,
    )
    if not rows:
        raise NoVideoData()
    return ParseResult(rows=rows, total_row=total_row)


def _escape(value: str | None) -> str:
    text = value or ""
    if any(ch in text for ch in ',"\n\r'):
        return _quote(text)
    return text


def _quote(value: str | None) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def _number(value: float) -> str:
    return repr(float(value))


def _metrics(row: TrafficRow) -> list[str]:
    return [
        str(row.impressions),
        _number(row.ctr),
        str(row.views),
        _escape(row.avg_view_duration),
        _number(row.watch_time_hours),
    ]


def serialize(rows: Iterable[TrafficRow], total_row: TrafficRow | None = None) -> str:
    """Render rows back into the export format ``parse`` reads."""
    video_rows = [r for r in rows if r.video_id]
    with_channel = any(r.channel_id for r in video_rows)

    header = list(DEFAULT_HEADER)
    if with_channel:
        header.append(CHANNEL_ID_HEADER)
    lines = [",".join(header)]

    if total_row is not None:
        line = ["Total", "", "", *_metrics(total_row)]
        if with_channel:
            line.append("")
        lines.append(",".join(line))

    for row in video_rows:
        line = [
            _escape(RELATED_PREFIX + row.video_id),
            _escape(row.source_type),
            _quote(row.source_title),
            *_metrics(row),
        ]
        if with_channel:
            line.append(_escape(row.channel_id))
        lines.append(",".join(line))

    return "\n".join(lines) + "\n"
