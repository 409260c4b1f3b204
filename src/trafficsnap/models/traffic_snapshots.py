from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.db import Base


class TrafficSnapshot(Base):
    __tablename__ = "traffic_snapshots"
    __table_args__ = (
        Index("idx_traffic_snapshots_video", "owner_id", "channel_id", "video_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    video_id: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )
    # current format: CSV blob in object storage
    storage_path: Mapped[str | None] = mapped_column(String)
    # legacy format: rows stored inline before the hybrid-storage migration
    sources: Mapped[list | None] = mapped_column(JSON)
    total_row: Mapped[dict | None] = mapped_column(JSON)
    summary: Mapped[dict | None] = mapped_column(JSON)
    label: Mapped[str | None] = mapped_column(String)
    active_start: Mapped[int | None] = mapped_column(BigInteger)
    active_end: Mapped[int | None] = mapped_column(BigInteger)
