from .snapshot import (
    DeltaResult,
    MappingRequest,
    MappingResponse,
    RepairEstimate,
    RepairRequest,
    RepairResult,
    SnapshotCreate,
    SnapshotRead,
)
from .traffic import (
    REQUIRED_COLUMNS,
    Column,
    ColumnMapping,
    ParseResult,
    TrafficRow,
    VideoMetadata,
)
from .video import VideoContext

__all__ = [
    "Column",
    "ColumnMapping",
    "DeltaResult",
    "MappingRequest",
    "MappingResponse",
    "ParseResult",
    "REQUIRED_COLUMNS",
    "RepairEstimate",
    "RepairRequest",
    "RepairResult",
    "SnapshotCreate",
    "SnapshotRead",
    "TrafficRow",
    "VideoContext",
    "VideoMetadata",
]
