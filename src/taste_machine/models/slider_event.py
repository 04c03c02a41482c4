from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from taste_machine.models.base import Base


class SliderEvent(Base):
    __tablename__ = "slider_events"

    event_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    voter_id: Mapped[str] = mapped_column(sa.String(255))
    nft_id: Mapped[str] = mapped_column(sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), index=True)
    raw_score: Mapped[float] = mapped_column(sa.Float)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime)

    __table_args__ = (
        sa.CheckConstraint("raw_score >= 0 AND raw_score <= 100", name="raw_score_range"),
    )
