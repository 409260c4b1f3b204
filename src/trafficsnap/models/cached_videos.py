from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.db import Base


class CachedVideo(Base):
    """Catalog metadata of a related video, cached per owner channel."""

    __tablename__ = "suggested_videos"
    __table_args__ = (UniqueConstraint("owner_id", "owner_channel_id", "video_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    owner_channel_id: Mapped[str] = mapped_column(String, nullable=False)
    video_id: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str | None] = mapped_column(String)
    channel_id: Mapped[str | None] = mapped_column(String)
    channel_title: Mapped[str | None] = mapped_column(String)
    channel_avatar: Mapped[str | None] = mapped_column(String)
    thumbnail: Mapped[str | None] = mapped_column(String)
    published_at: Mapped[str | None] = mapped_column(String)
    view_count: Mapped[str | None] = mapped_column(String)
    duration: Mapped[str | None] = mapped_column(String)
    last_updated: Mapped[int] = mapped_column(BigInteger, default=0)
