from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class Column(str, Enum):
    SOURCE_ID = "source_id"
    SOURCE_TYPE = "source_type"
    SOURCE_TITLE = "source_title"
    IMPRESSIONS = "impressions"
    CTR = "ctr"
    VIEWS = "views"
    AVG_DURATION = "avg_duration"
    WATCH_TIME = "watch_time"
    CHANNEL_ID = "channel_id"


REQUIRED_COLUMNS: tuple[Column, ...] = (
    Column.SOURCE_ID,
    Column.SOURCE_TYPE,
    Column.SOURCE_TITLE,
    Column.IMPRESSIONS,
    Column.CTR,
    Column.VIEWS,
    Column.AVG_DURATION,
    Column.WATCH_TIME,
)


class ColumnMapping(BaseModel):
    """Index of every logical column in a CSV header; -1 means unresolved."""

    source_id: int = -1
    source_type: int = -1
    source_title: int = -1
    impressions: int = -1
    ctr: int = -1
    views: int = -1
    avg_duration: int = -1
    watch_time: int = -1
    channel_id: int = -1

    def index(self, column: Column) -> int:
        return getattr(self, column.value)

    def missing_required(self) -> list[str]:
        return [c.value for c in REQUIRED_COLUMNS if self.index(c) < 0]

    @property
    def is_complete(self) -> bool:
        return not self.missing_required()


class TrafficRow(BaseModel):
    source_type: str = ""
    source_title: str = ""
    video_id: str | None = None
    impressions: int = 0
    ctr: float = 0.0
    views: int = 0
    avg_view_duration: str = ""
    watch_time_hours: float = 0.0
    channel_id: str | None = None
    # filled in by reconciliation
    channel_title: str | None = None
    thumbnail: str | None = None
    published_at: str | None = None

    class Config:
        frozen = True

    @property
    def has_title(self) -> bool:
        return bool(self.source_title and self.source_title.strip())


class ParseResult(BaseModel):
    rows: list[TrafficRow]
    total_row: TrafficRow | None = None


class VideoMetadata(BaseModel):
    id: str
    title: str | None = None
    thumbnail: str | None = None
    channel_id: str | None = None
    channel_title: str | None = None
    channel_avatar: str | None = None
    published_at: str | None = None
    view_count: str | None = None
    duration: str | None = None
