from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import PackagingVersion, Video
from ..schemas.video import VideoContext
from .snapshot_service import now_ms

logger = logging.getLogger(__name__)

# configuration snapshot key -> Video column
_RESTORE_FIELDS = {
    "title": "title",
    "description": "description",
    "tags": "tags",
    "coverImage": "cover_image",
    "abTestTitles": "ab_test_titles",
    "abTestThumbnails": "ab_test_thumbnails",
}


def prepare_restore_data(version_number: int, config_snapshot: dict | None) -> dict:
    """Video column updates that make ``version_number`` the active packaging."""
    if not config_snapshot:
        raise ValueError(f"version {version_number} has no configuration snapshot")
    data = {column: config_snapshot.get(key) for key, column in _RESTORE_FIELDS.items()}
    data["tags"] = data["tags"] or []
    data["cover_image"] = data["cover_image"] or ""
    data["ab_test_titles"] = data["ab_test_titles"] or []
    data["ab_test_thumbnails"] = data["ab_test_thumbnails"] or []
    data["active_version"] = version_number
    return data


class VersionService:
    """Packaging version history of a video."""

    def __init__(self, session: Session):
        self.session = session

    def get_video(self, video_id: str) -> Video | None:
        return self.session.get(Video, video_id)

    def get_video_context(self, video_id: str) -> VideoContext | None:
        video = self.get_video(video_id)
        if video is None:
            return None
        return VideoContext.model_validate(video)

    def get_version(self, video_id: str, version_number: int) -> PackagingVersion | None:
        stmt = select(PackagingVersion).where(
            PackagingVersion.video_id == video_id,
            PackagingVersion.version_number == version_number,
        )
        return self.session.scalars(stmt).first()

    def get_configuration_snapshot(self, video_id: str, version_number: int) -> dict | None:
        version = self.get_version(video_id, version_number)
        return version.configuration_snapshot if version is not None else None

    def restore_version(
        self,
        video_id: str,
        target_version: int,
        closing_snapshot_id: str | None = None,
    ) -> Video:
        """Make ``target_version`` active again and record the switch in history.

        The open period of the replaced version is closed (pointing at the
        snapshot that froze its traffic) and a new period is opened for the
        target. Everything is committed together.
        """
        video = self.get_video(video_id)
        if video is None:
            raise LookupError(f"video {video_id} not found")
        target = self.get_version(video_id, target_version)
        if target is None:
            raise LookupError(f"video {video_id} has no version {target_version}")

        updates = prepare_restore_data(target_version, target.configuration_snapshot)
        now = now_ms()

        if video.active_version is not None and video.active_version != target_version:
            current = self.get_version(video_id, video.active_version)
            if current is not None:
                periods = [dict(p) for p in current.active_periods or []]
                if periods and periods[-1].get("end") is None:
                    periods[-1]["end"] = now
                    periods[-1]["closing_snapshot_id"] = closing_snapshot_id
                current.active_periods = periods

        target.active_periods = [
            *(dict(p) for p in target.active_periods or []),
            {"start": now, "end": None, "closing_snapshot_id": None},
        ]
        target.restored_at = now

        for column, value in updates.items():
            setattr(video, column, value)
        video.is_draft = False
        video.packaging_revision = (video.packaging_revision or 0) + 1

        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        logger.info(
            "restored video %s to version %d (closing snapshot=%s)",
            video_id,
            target_version,
            closing_snapshot_id,
        )
        return video
