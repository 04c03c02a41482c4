from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from taste_machine.models.base import Base


class FireEvent(Base):
    """A "favorite" tap.  Feeds the ranking boost only, never Elo or slider math."""

    __tablename__ = "fire_events"

    event_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    voter_id: Mapped[str] = mapped_column(sa.String(255))
    nft_id: Mapped[str] = mapped_column(sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), index=True)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime)
