from fastapi import HTTPException

from ..core.config import settings
from ..core.errors import (
    CatalogError,
    MappingRequired,
    MissingApiKey,
    NoVideoData,
    QuotaExceeded,
    SnapshotNotFound,
    SnapshotUnreadable,
    StorageFailure,
    TrafficEngineError,
)
from ..services.storage_service import LocalBlobStorage
from ..services.youtube_service import YouTubeCatalogClient

_STATUS = {
    MappingRequired: 422,
    NoVideoData: 422,
    SnapshotNotFound: 404,
    SnapshotUnreadable: 409,
    StorageFailure: 502,
    QuotaExceeded: 429,
    MissingApiKey: 400,
    CatalogError: 502,
}


def get_storage():
    return LocalBlobStorage(settings.storage_root)


def get_catalog():
    client = YouTubeCatalogClient()
    try:
        yield client
    finally:
        client.close()


def http_error(error: TrafficEngineError) -> HTTPException:
    status = next((code for cls, code in _STATUS.items() if isinstance(error, cls)), 400)
    detail = {"code": error.code, "message": str(error)}
    if isinstance(error, MappingRequired):
        detail["headers"] = error.headers
        detail["missing"] = error.missing
    return HTTPException(status_code=status, detail=detail)
