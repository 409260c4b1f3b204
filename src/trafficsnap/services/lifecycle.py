"""Snapshot requests driven by packaging version transitions.

Creating a version (other than v1 of a published video) or restoring an older
one freezes the traffic of the version being left. The coordinator holds a
single pending request; an upload prompt surfaces it to a human, who either
uploads the export (``on_upload``) or skips (``on_skip``). The caller awaiting
``request_snapshot_for_*`` gets the snapshot id, or ``None`` when nothing was
frozen.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import (
    CoordinatorBusy,
    MappingRequired,
    NoPendingRequest,
    NoVideoData,
    StorageFailure,
)
from ..ingest import codec
from ..schemas.snapshot import RepairResult
from ..schemas.traffic import ColumnMapping, ParseResult, TrafficRow
from ..schemas.video import VideoContext
from .reconciliation_service import ReconciliationEngine
from .snapshot_service import SnapshotStore

logger = logging.getLogger(__name__)

_PERSISTENCE_ERRORS = (StorageFailure, SQLAlchemyError)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    AWAITING_CREATE_SNAPSHOT = "awaiting_create_snapshot"
    AWAITING_RESTORE_SNAPSHOT = "awaiting_restore_snapshot"


@dataclass
class SnapshotRequest:
    state: CoordinatorState
    video: VideoContext
    # new version number, or the version being restored
    version: int | None
    future: asyncio.Future = field(repr=False)

    @property
    def is_for_create(self) -> bool:
        return self.state is CoordinatorState.AWAITING_CREATE_SNAPSHOT


class SnapshotPrompt(Protocol):
    async def show(self, request: SnapshotRequest) -> None: ...

    async def request_mapping(self, headers: Sequence[str], missing: Sequence[str]) -> None: ...

    async def toast(self, message: str, error: bool = False) -> None: ...

    async def close(self) -> None: ...


class LiveTraffic(Protocol):
    def fetch(self, video: VideoContext) -> ParseResult: ...

    def save(self, video: VideoContext, rows: Sequence[TrafficRow], total_row: TrafficRow | None = None) -> None: ...

    def clear(self, video: VideoContext) -> None: ...


class VersionHistory(Protocol):
    def get_configuration_snapshot(self, video_id: str, version_number: int) -> dict | None: ...

    def restore_version(self, video_id: str, target_version: int, closing_snapshot_id: str | None = None): ...


class VersionLifecycleCoordinator:
    def __init__(
        self,
        store: SnapshotStore,
        traffic: LiveTraffic,
        history: VersionHistory,
        prompt: SnapshotPrompt,
        engine: ReconciliationEngine | None = None,
    ):
        self.store = store
        self.traffic = traffic
        self.history = history
        self.prompt = prompt
        self.engine = engine
        self._request: SnapshotRequest | None = None

    @property
    def state(self) -> CoordinatorState:
        return self._request.state if self._request is not None else CoordinatorState.IDLE

    @property
    def pending(self) -> SnapshotRequest | None:
        return self._request

    async def request_snapshot_for_new_version(self, version_number: int, video: VideoContext) -> str | None:
        self._ensure_idle()
        if version_number == 1 or not video.is_published:
            logger.info(
                "no snapshot for video %s v%d (published=%s), clearing live traffic",
                video.id,
                version_number,
                video.is_published,
            )
            self.traffic.clear(video)
            return None
        return await self._open(CoordinatorState.AWAITING_CREATE_SNAPSHOT, video, version_number)

    async def request_snapshot_for_restore(self, target_version: int, video: VideoContext) -> str | None:
        self._ensure_idle()
        return await self._open(CoordinatorState.AWAITING_RESTORE_SNAPSHOT, video, target_version)

    async def on_upload(self, file: bytes | str, mapping: ColumnMapping | None = None) -> str | None:
        """Freeze an uploaded export for the pending request.

        ``MappingRequired`` and ``NoVideoData`` leave the request pending; the
        prompt is told to collect a mapping or a different file.
        """
        request = self._current()
        try:
            result = codec.parse(file, mapping)
        except MappingRequired as e:
            logger.info("upload for video %s needs a manual mapping: %s", request.video.id, e.missing)
            await self.prompt.request_mapping(e.headers, e.missing)
            raise
        except NoVideoData as e:
            await self.prompt.toast(str(e), error=True)
            raise

        # a manual mapping means the raw file would not re-parse on load
        source_file = file if mapping is None else None
        if request.is_for_create:
            return await self._create(request, result, source_file)
        return await self._restore(request, result, source_file)

    async def on_skip(self) -> str | None:
        request = self._current()
        if request.is_for_create:
            try:
                self.traffic.clear(request.video)
            except SQLAlchemyError as e:
                logger.error("failed to clear live traffic for video %s: %s", request.video.id, e)
                await self.prompt.toast("Failed to clear traffic data", error=True)
            await self._finish(None)
            return None

        try:
            live = self.traffic.fetch(request.video)
        except _PERSISTENCE_ERRORS as e:
            await self._fail("Failed to read traffic data", e)
            return None
        return await self._restore(request, live, None, uploaded=False)

    def repair_missing_metadata(
        self,
        video: VideoContext,
        api_key: str | None,
        snapshot_id: str | None = None,
    ) -> RepairResult:
        if self.engine is None:
            raise RuntimeError("coordinator has no reconciliation engine")
        if snapshot_id:
            record = self.store.get(snapshot_id)
            return self.engine.fetch_and_persist(
                video.owner_id,
                video.channel_id,
                video.id,
                record.version,
                api_key,
                snapshot_id=snapshot_id,
            )

        live = self.traffic.fetch(video)
        result = self.engine.fetch_and_persist(
            video.owner_id,
            video.channel_id,
            video.id,
            video.active_version or 1,
            api_key,
            rows=live.rows,
            total_row=live.total_row,
        )
        if result.snapshot_id is not None:
            self.traffic.save(video, result.rows, result.total_row)
        return result

    def _ensure_idle(self) -> None:
        if self._request is not None:
            raise CoordinatorBusy(f"a snapshot request is already pending ({self._request.state.value})")

    def _current(self) -> SnapshotRequest:
        if self._request is None:
            raise NoPendingRequest("no snapshot request is pending")
        return self._request

    async def _open(self, state: CoordinatorState, video: VideoContext, version: int) -> str | None:
        future = asyncio.get_running_loop().create_future()
        self._request = SnapshotRequest(state=state, video=video, version=version, future=future)
        logger.info("awaiting snapshot for video %s (%s v%d)", video.id, state.value, version)
        try:
            await self.prompt.show(self._request)
        except Exception:
            self._request = None
            raise
        return await future

    async def _finish(self, snapshot_id: str | None) -> None:
        request, self._request = self._request, None
        if request is not None and not request.future.done():
            request.future.set_result(snapshot_id)
        await self.prompt.close()

    async def _fail(self, message: str, error: Exception) -> None:
        logger.error("%s: %s", message, error)
        await self.prompt.toast(message, error=True)
        await self._finish(None)

    async def _create(self, request: SnapshotRequest, result: ParseResult, source_file) -> str | None:
        video = request.video
        version = request.version or (video.active_version or 0) + 1
        try:
            snapshot_id = self.store.create(
                video.owner_id,
                video.channel_id,
                video.id,
                version,
                result.rows,
                result.total_row,
                source_file,
                publish_date=video.publish_date_ms,
            )
        except _PERSISTENCE_ERRORS as e:
            await self._fail("Failed to save snapshot", e)
            return None

        # the snapshot is committed; a failed clear only leaves stale live rows
        try:
            self.traffic.clear(video)
        except SQLAlchemyError as e:
            logger.error("failed to clear live traffic for video %s after %s: %s", video.id, snapshot_id, e)
            await self.prompt.toast("Failed to clear traffic data", error=True)

        await self.prompt.toast(f"Snapshot saved for v.{version}")
        await self._finish(snapshot_id)
        return snapshot_id

    async def _restore(
        self, request: SnapshotRequest, result: ParseResult, source_file, uploaded: bool = True
    ) -> str | None:
        video = request.video
        target = request.version
        if not self.history.get_configuration_snapshot(video.id, target):
            await self._fail("Version data not found", LookupError(f"video {video.id} v{target}"))
            return None

        snapshot_id = None
        replaced = video.active_version
        if replaced is not None and result.rows:
            try:
                snapshot_id = self.store.create(
                    video.owner_id,
                    video.channel_id,
                    video.id,
                    replaced,
                    result.rows,
                    result.total_row,
                    source_file,
                    publish_date=video.publish_date_ms,
                )
            except _PERSISTENCE_ERRORS as e:
                await self._fail("Failed to save snapshot", e)
                return None
        elif replaced is None and uploaded and result.rows:
            logger.info("video %s has no active version, discarding uploaded traffic", video.id)
            await self.prompt.toast("No active version, uploaded traffic was not saved")
        else:
            logger.info("nothing to freeze before restoring video %s to v%d", video.id, target)

        try:
            self.history.restore_version(video.id, target, closing_snapshot_id=snapshot_id)
        except (SQLAlchemyError, LookupError, ValueError) as e:
            if snapshot_id is not None:
                self._discard(snapshot_id)
            await self._fail("Failed to restore version", e)
            return None

        if snapshot_id is not None:
            await self.prompt.toast(f"Snapshot saved & restored to v.{target}")
        else:
            await self.prompt.toast(f"Restored to v.{target}")
        await self._finish(snapshot_id)
        return snapshot_id

    def _discard(self, snapshot_id: str) -> None:
        try:
            self.store.delete(snapshot_id)
        except _PERSISTENCE_ERRORS as e:
            logger.error("failed to remove snapshot %s after aborted restore: %s", snapshot_id, e)
