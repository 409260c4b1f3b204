from sqlalchemy import JSON, BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.db import Base


class TrafficData(Base):
    """Live (not yet frozen) traffic rows of a video."""

    __tablename__ = "traffic_data"
    __table_args__ = (UniqueConstraint("owner_id", "channel_id", "video_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    video_id: Mapped[str] = mapped_column(String, nullable=False)
    sources: Mapped[list] = mapped_column(JSON, default=list)
    total_row: Mapped[dict | None] = mapped_column(JSON)
    last_updated: Mapped[int] = mapped_column(BigInteger, default=0)
