from datetime import datetime

from pydantic import BaseModel


class VideoContext(BaseModel):
    """The slice of a video the engine needs to key and gate snapshots."""

    id: str
    owner_id: str
    channel_id: str
    published_video_id: str | None = None
    published_at: datetime | None = None
    active_version: int | None = None

    class Config:
        from_attributes = True

    @property
    def is_published(self) -> bool:
        return bool(self.published_video_id)

    @property
    def publish_date_ms(self) -> int | None:
        if self.published_at is None:
            return None
        return int(self.published_at.timestamp() * 1000)
