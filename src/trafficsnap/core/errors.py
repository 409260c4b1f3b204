from __future__ import annotations

from typing import Sequence


class TrafficEngineError(Exception):
    """Base class for every error raised by the snapshot engine."""

    code = "TRAFFIC_ENGINE_ERROR"


class MappingRequired(TrafficEngineError):
    """Header auto-detection left required columns unresolved."""

    code = "MAPPING_REQUIRED"

    def __init__(self, headers: Sequence[str], missing: Sequence[str]):
        self.headers = list(headers)
        self.missing = list(missing)
        super().__init__(f"manual column mapping required, missing: {', '.join(self.missing)}")


class NoVideoData(TrafficEngineError):
    code = "NO_VIDEO_DATA"

    def __init__(self, message: str = "file contains no related-video rows"):
        super().__init__(message)


class StorageFailure(TrafficEngineError):
    code = "STORAGE_FAILURE"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class SnapshotNotFound(TrafficEngineError):
    code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"snapshot {snapshot_id} not found")


class SnapshotUnreadable(TrafficEngineError):
    """Snapshot has neither a blob nor legacy inline rows."""

    code = "SNAPSHOT_UNREADABLE"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"snapshot {snapshot_id} has no storage path and no inline sources")


class CatalogError(TrafficEngineError):
    code = "CATALOG_ERROR"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        code = self.status_code if self.status_code is not None else "unknown"
        return f"catalog API error (HTTP {code}): {self.args[0]}"


class QuotaExceeded(CatalogError):
    code = "QUOTA_EXCEEDED"


class MissingApiKey(CatalogError):
    code = "API_KEY_REQUIRED"

    def __init__(self, message: str = "catalog API key is required to repair metadata"):
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class CoordinatorBusy(TrafficEngineError):
    code = "COORDINATOR_BUSY"


class NoPendingRequest(TrafficEngineError):
    code = "NO_PENDING_REQUEST"
