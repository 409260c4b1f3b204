from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.db import Base


class PackagingVersion(Base):
    __tablename__ = "packaging_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    configuration_snapshot: Mapped[dict | None] = mapped_column(JSON)
    # [{"start": ms, "end": ms | None, "closing_snapshot_id": str | None}, ...]
    active_periods: Mapped[list] = mapped_column(JSON, default=list)
    restored_at: Mapped[int | None] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )

    video = relationship("Video", back_populates="versions")
