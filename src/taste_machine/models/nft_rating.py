from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from taste_machine.models.base import Base


class NftRating(Base):
    """Durable rating state for one NFT.

    ``nft_id`` and ``collection`` come from the external catalog and are
    never changed here.  Elo and slider fields are mutated by the ingestion
    fast path; the ``aesthetic_*`` fields are written only by the recompute
    engine.
    """

    __tablename__ = "nft_ratings"

    nft_id: Mapped[str] = mapped_column(sa.String(128), primary_key=True)
    collection: Mapped[str] = mapped_column(sa.String(255))

    # Catalog display data
    name: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    image_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    # Head-to-head
    elo_mean: Mapped[float] = mapped_column(sa.Float, default=1200.0)
    elo_sigma: Mapped[float] = mapped_column(sa.Float, default=400.0)
    total_head_to_head_votes: Mapped[int] = mapped_column(sa.Integer, default=0)
    wins: Mapped[int] = mapped_column(sa.Integer, default=0)
    losses: Mapped[int] = mapped_column(sa.Integer, default=0)

    # Slider (Welford running mean / M2)
    slider_mean: Mapped[float] = mapped_column(sa.Float, default=50.0)
    slider_variance_accumulator: Mapped[float] = mapped_column(sa.Float, default=0.0)
    slider_count: Mapped[int] = mapped_column(sa.Integer, default=0)

    fire_count: Mapped[int] = mapped_column(sa.Integer, default=0)

    # Published composite score
    aesthetic_score: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    aesthetic_confidence: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    aesthetic_elo_component: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    aesthetic_slider_component: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    last_scored_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))
    updated_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    __table_args__ = (
        sa.Index("ix_nft_ratings_collection_elo", "collection", "elo_mean"),
        sa.Index("ix_nft_ratings_collection_votes", "collection", "total_head_to_head_votes"),
        sa.CheckConstraint("wins + losses = total_head_to_head_votes", name="wins_losses_total"),
        sa.CheckConstraint("elo_mean >= 0 AND elo_mean <= 3000", name="elo_mean_bounds"),
        sa.CheckConstraint("elo_sigma >= 10 AND elo_sigma <= 1000", name="elo_sigma_bounds"),
        sa.CheckConstraint("slider_variance_accumulator >= 0", name="slider_m2_non_negative"),
        sa.CheckConstraint("slider_count >= 0 AND fire_count >= 0", name="counters_non_negative"),
    )

    @property
    def slider_variance(self) -> float | None:
        """Sample variance of slider scores, ``None`` until two samples exist."""
        if self.slider_count < 2:
            return None
        return max(self.slider_variance_accumulator, 0.0) / (self.slider_count - 1)
