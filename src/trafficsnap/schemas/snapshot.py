from datetime import datetime

from pydantic import BaseModel

from .traffic import ColumnMapping, TrafficRow


class SnapshotCreate(BaseModel):
    owner_id: str
    channel_id: str
    version: int
    csv_text: str
    mapping: ColumnMapping | None = None


class SnapshotRead(BaseModel):
    id: str
    owner_id: str
    channel_id: str
    video_id: str
    version: int
    timestamp: int
    created_at: datetime | None = None
    storage_path: str | None = None
    summary: dict | None = None
    label: str | None = None
    active_start: int | None = None
    active_end: int | None = None

    class Config:
        from_attributes = True


class MappingRequest(BaseModel):
    header: list[str]


class MappingResponse(BaseModel):
    mapping: ColumnMapping | None
    missing: list[str]


class RepairRequest(BaseModel):
    api_key: str | None = None


class RepairEstimate(BaseModel):
    missing: int
    unenriched: int
    estimated_quota: int


class RepairResult(BaseModel):
    rows: list[TrafficRow]
    total_row: TrafficRow | None = None
    snapshot_id: str | None = None
    estimated_quota: int = 0
    fetched: int = 0


class DeltaResult(BaseModel):
    rows: list[TrafficRow]
    total_row: TrafficRow | None = None
    previous_snapshot_id: str | None = None
