from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.db import Base


class Video(Base):
    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str | None] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(String)
    tags: Mapped[list | None] = mapped_column(JSON)
    cover_image: Mapped[str | None] = mapped_column(String)
    ab_test_titles: Mapped[list | None] = mapped_column(JSON)
    ab_test_thumbnails: Mapped[list | None] = mapped_column(JSON)
    published_video_id: Mapped[str | None] = mapped_column(String)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    active_version: Mapped[int | None] = mapped_column(Integer)
    is_draft: Mapped[bool] = mapped_column(Boolean, default=True)
    packaging_revision: Mapped[int] = mapped_column(Integer, default=0)

    versions = relationship(
        "PackagingVersion",
        back_populates="video",
        order_by="PackagingVersion.version_number",
    )
