from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Protocol

from ..core.config import settings
from ..core.errors import StorageFailure

logger = logging.getLogger(__name__)


class BlobStorage(Protocol):
    def upload(self, path: str, data: bytes) -> str: ...

    def download(self, path: str) -> bytes: ...

    def delete(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...


def snapshot_blob_path(owner_id: str, channel_id: str, video_id: str, snapshot_id: str) -> str:
    # snapshot ids embed the version and creation timestamp
    return f"users/{owner_id}/channels/{channel_id}/videos/{video_id}/traffic/{snapshot_id}.csv"


class LocalBlobStorage:
    """Object storage backed by a directory tree."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or settings.storage_root)

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise StorageFailure(f"invalid blob path {path!r}", path=path)
        return self.root.joinpath(*rel.parts)

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error("failed to write blob %s: %s", path, e)
            raise StorageFailure(f"failed to write {path}: {e}", path=path) from e
        logger.debug("uploaded blob %s (%d bytes)", path, len(data))
        return path

    def download(self, path: str) -> bytes:
        try:
            return self._resolve(path).read_bytes()
        except OSError as e:
            logger.error("failed to read blob %s: %s", path, e)
            raise StorageFailure(f"failed to read {path}: {e}", path=path) from e

    def delete(self, path: str) -> None:
        try:
            self._resolve(path).unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure(f"failed to delete {path}: {e}", path=path) from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
