"""Initial schema: rating records, event log and dirty markers.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "nft_ratings",
        sa.Column("nft_id", sa.String(128), primary_key=True),
        sa.Column("collection", sa.String(255), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("elo_mean", sa.Float(), nullable=False, server_default="1200"),
        sa.Column("elo_sigma", sa.Float(), nullable=False, server_default="400"),
        sa.Column("total_head_to_head_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("slider_mean", sa.Float(), nullable=False, server_default="50"),
        sa.Column("slider_variance_accumulator", sa.Float(), nullable=False, server_default="0"),
        sa.Column("slider_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fire_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("aesthetic_score", sa.Float(), nullable=True),
        sa.Column("aesthetic_confidence", sa.Float(), nullable=True),
        sa.Column("aesthetic_elo_component", sa.Float(), nullable=True),
        sa.Column("aesthetic_slider_component", sa.Float(), nullable=True),
        sa.Column("last_scored_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("wins + losses = total_head_to_head_votes", name="wins_losses_total"),
        sa.CheckConstraint("elo_mean >= 0 AND elo_mean <= 3000", name="elo_mean_bounds"),
        sa.CheckConstraint("elo_sigma >= 10 AND elo_sigma <= 1000", name="elo_sigma_bounds"),
        sa.CheckConstraint("slider_variance_accumulator >= 0", name="slider_m2_non_negative"),
        sa.CheckConstraint("slider_count >= 0 AND fire_count >= 0", name="counters_non_negative"),
    )
    op.create_index("ix_nft_ratings_collection_elo", "nft_ratings", ["collection", "elo_mean"])
    op.create_index(
        "ix_nft_ratings_collection_votes", "nft_ratings", ["collection", "total_head_to_head_votes"]
    )

    op.create_table(
        "vote_events",
        sa.Column("event_id", sa.String(64), primary_key=True),
        sa.Column("voter_id", sa.String(255), nullable=False),
        sa.Column("nft_a_id", sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), nullable=False),
        sa.Column("nft_b_id", sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), nullable=False),
        sa.Column("winner_id", sa.String(128), nullable=False),
        sa.Column("vote_weight", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("elo_pre_a", sa.Float(), nullable=False),
        sa.Column("elo_pre_b", sa.Float(), nullable=False),
        sa.Column("elo_delta_a", sa.Float(), nullable=False),
        sa.Column("elo_delta_b", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("nft_a_id <> nft_b_id", name="distinct_contestants"),
        sa.CheckConstraint("winner_id = nft_a_id OR winner_id = nft_b_id", name="winner_in_pair"),
        sa.CheckConstraint("vote_weight IN ('normal', 'super')", name="valid_vote_weight"),
    )
    op.create_index("ix_vote_events_nft_a_id", "vote_events", ["nft_a_id"])
    op.create_index("ix_vote_events_nft_b_id", "vote_events", ["nft_b_id"])

    op.create_table(
        "slider_events",
        sa.Column("event_id", sa.String(64), primary_key=True),
        sa.Column("voter_id", sa.String(255), nullable=False),
        sa.Column("nft_id", sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), nullable=False),
        sa.Column("raw_score", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("raw_score >= 0 AND raw_score <= 100", name="raw_score_range"),
    )
    op.create_index("ix_slider_events_nft_id", "slider_events", ["nft_id"])

    op.create_table(
        "fire_events",
        sa.Column("event_id", sa.String(64), primary_key=True),
        sa.Column("voter_id", sa.String(255), nullable=False),
        sa.Column("nft_id", sa.String(128), sa.ForeignKey("nft_ratings.nft_id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_fire_events_nft_id", "fire_events", ["nft_id"])

    op.create_table(
        "dirty_markers",
        sa.Column("nft_id", sa.String(128), primary_key=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(), nullable=False),
        sa.Column("last_event_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "reason IN ('new_vote', 'new_slider', 'new_fire', 'manual', 'migration')",
            name="valid_dirty_reason",
        ),
    )
    op.create_index(
        "ix_dirty_markers_priority_enqueued",
        "dirty_markers",
        [sa.text("priority DESC"), "enqueued_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_dirty_markers_priority_enqueued", table_name="dirty_markers")
    op.drop_table("dirty_markers")
    op.drop_index("ix_fire_events_nft_id", table_name="fire_events")
    op.drop_table("fire_events")
    op.drop_index("ix_slider_events_nft_id", table_name="slider_events")
    op.drop_table("slider_events")
    op.drop_index("ix_vote_events_nft_b_id", table_name="vote_events")
    op.drop_index("ix_vote_events_nft_a_id", table_name="vote_events")
    op.drop_table("vote_events")
    op.drop_index("ix_nft_ratings_collection_votes", table_name="nft_ratings")
    op.drop_index("ix_nft_ratings_collection_elo", table_name="nft_ratings")
    op.drop_table("nft_ratings")
