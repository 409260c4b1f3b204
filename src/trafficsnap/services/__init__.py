from . import (
    delta_service,
    lifecycle,
    metadata_cache_service,
    reconciliation_service,
    snapshot_service,
    storage_service,
    traffic_data_service,
    version_service,
    youtube_service,
)

__all__ = [
    "delta_service",
    "lifecycle",
    "metadata_cache_service",
    "reconciliation_service",
    "snapshot_service",
    "storage_service",
    "traffic_data_service",
    "version_service",
    "youtube_service",
]
