"""Work-queue rows for NFTs awaiting aesthetic score recomputation."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from taste_machine.models.base import Base


class DirtyMarker(Base):
    """At most one marker per NFT.

    Re-marking keeps ``enqueued_at`` (FIFO position), raises ``priority``
    to the maximum seen and bumps ``last_event_at``.  The recompute engine
    deletes a marker only if ``last_event_at`` is unchanged since it was
    claimed, so events that arrive mid-recompute are not lost.
    """

    __tablename__ = "dirty_markers"

    nft_id: Mapped[str] = mapped_column(sa.String(128), primary_key=True)
    priority: Mapped[int] = mapped_column(sa.Integer, default=0)
    reason: Mapped[str] = mapped_column(sa.String(32))
    enqueued_at: Mapped[datetime] = mapped_column(sa.DateTime)
    last_event_at: Mapped[datetime] = mapped_column(sa.DateTime)

    __table_args__ = (
        sa.Index("ix_dirty_markers_priority_enqueued", sa.desc("priority"), "enqueued_at"),
        sa.CheckConstraint(
            "reason IN ('new_vote', 'new_slider', 'new_fire', 'manual', 'migration')",
            name="valid_dirty_reason",
        ),
    )
