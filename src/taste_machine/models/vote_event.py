"""Append-only head-to-head vote events."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from taste_machine.models.base import Base


class VoteEvent(Base):
    """One head-to-head comparison.

    ``elo_pre_a``/``elo_pre_b`` snapshot both means at vote time so a single
    NFT's history can be replayed without the opponent's history.  The
    applied deltas are stored so a duplicate submission can return the
    original response.
    """

    __tablename__ = "vote_events"

    event_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    voter_id: Mapped[str] = mapped_column(sa.String(255))
    nft_a_id: Mapped[str] = mapped_column(sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), index=True)
    nft_b_id: Mapped[str] = mapped_column(sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), index=True)
    winner_id: Mapped[str] = mapped_column(sa.String(128))
    vote_weight: Mapped[str] = mapped_column(sa.String(16), default="normal")

    elo_pre_a: Mapped[float] = mapped_column(sa.Float)
    elo_pre_b: Mapped[float] = mapped_column(sa.Float)
    elo_delta_a: Mapped[float] = mapped_column(sa.Float)
    elo_delta_b: Mapped[float] = mapped_column(sa.Float)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime)

    __table_args__ = (
        sa.CheckConstraint("nft_a_id <> nft_b_id", name="distinct_contestants"),
        sa.CheckConstraint("winner_id = nft_a_id OR winner_id = nft_b_id", name="winner_in_pair"),
        sa.CheckConstraint("vote_weight IN ('normal', 'super')", name="valid_vote_weight"),
    )
