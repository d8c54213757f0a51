"""Initial schema for coins, price history, movers, research, predictions and daily stats.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Coin registry
    op.create_table(
        "coins",
        sa.Column("id", sa.String(100), nullable=False),
        sa.Column("symbol", sa.String(40), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_coins_symbol", "coins", ["symbol"])

    # Price history
    op.create_table(
        "price_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("coin_id", sa.String(100), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("volume_24h", sa.Float(), nullable=False),
        sa.Column("market_cap", sa.Float(), nullable=False),
        sa.Column("change_1h", sa.Float(), nullable=True),
        sa.Column("change_24h", sa.Float(), nullable=True),
        sa.Column("change_7d", sa.Float(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("coin_id", "recorded_at", name="uq_price_snapshots_coin_ts"),
    )
    op.create_index("idx_price_snapshots_coin_ts", "price_snapshots", ["coin_id", "recorded_at"])

    # Mover events
    op.create_table(
        "mover_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("coin_id", sa.String(100), nullable=False),
        sa.Column("symbol", sa.String(40), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("move_type", sa.String(20), nullable=False),
        sa.Column("magnitude", sa.Float(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("market_cap", sa.Float(), nullable=False),
        sa.Column("volume_24h", sa.Float(), nullable=False),
        sa.Column("volume_ratio", sa.Float(), nullable=True),
        sa.Column("btc_relative", sa.Float(), nullable=True),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("outcome_24h", sa.Float(), nullable=True),
        sa.Column("outcome_recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_mover_events_detected_at", "mover_events", ["detected_at"])
    op.create_index("idx_mover_events_coin_detected", "mover_events", ["coin_id", "detected_at"])
    op.create_index("idx_mover_events_type_detected", "mover_events", ["move_type", "detected_at"])

    # Research reports
    op.create_table(
        "research_reports",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mover_event_id", sa.Integer(), nullable=False),
        sa.Column("catalyst", sa.Text(), nullable=True),
        sa.Column("catalyst_confidence", sa.Float(), nullable=True),
        sa.Column("news_summary", sa.Text(), nullable=True),
        sa.Column("sentiment_label", sa.String(20), nullable=True),
        sa.Column("sentiment_score", sa.Float(), nullable=True),
        sa.Column("key_factors_json", sa.Text(), nullable=False),
        sa.Column("risks_json", sa.Text(), nullable=False),
        sa.Column("continuation_probability", sa.Float(), nullable=True),
        sa.Column("recommended_action", sa.String(20), nullable=True),
        sa.Column("full_analysis", sa.Text(), nullable=False),
        sa.Column("news_articles_json", sa.Text(), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("mover_event_id", name="uq_research_reports_event"),
    )
    op.create_index("idx_research_reports_created_at", "research_reports", ["created_at"])

    # Predictions
    op.create_table(
        "predictions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("coin_id", sa.String(100), nullable=False),
        sa.Column("mover_event_id", sa.Integer(), nullable=True),
        sa.Column("predicted_direction", sa.String(8), nullable=False),
        sa.Column("predicted_magnitude", sa.Float(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=False),
        sa.Column("horizon_hours", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("actual_change", sa.Float(), nullable=True),
        sa.Column("predicted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_predictions_status_predicted_at", "predictions", ["status", "predicted_at"])
    op.create_index("idx_predictions_mover_event", "predictions", ["mover_event_id"])

    # Daily counters
    op.create_table(
        "daily_stats",
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_movers", sa.Integer(), nullable=False),
        sa.Column("pumps", sa.Integer(), nullable=False),
        sa.Column("dumps", sa.Integer(), nullable=False),
        sa.Column("volume_spikes", sa.Integer(), nullable=False),
        sa.Column("research_count", sa.Integer(), nullable=False),
        sa.Column("predictions_made", sa.Integer(), nullable=False),
        sa.Column("predictions_correct", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("date"),
    )


def downgrade() -> None:
    op.drop_table("daily_stats")
    op.drop_index("idx_predictions_mover_event", table_name="predictions")
    op.drop_index("idx_predictions_status_predicted_at", table_name="predictions")
    op.drop_table("predictions")
    op.drop_index("idx_research_reports_created_at", table_name="research_reports")
    op.drop_table("research_reports")
    op.drop_index("idx_mover_events_type_detected", table_name="mover_events")
    op.drop_index("idx_mover_events_coin_detected", table_name="mover_events")
    op.drop_index("idx_mover_events_detected_at", table_name="mover_events")
    op.drop_table("mover_events")
    op.drop_index("idx_price_snapshots_coin_ts", table_name="price_snapshots")
    op.drop_table("price_snapshots")
    op.drop_index("idx_coins_symbol", table_name="coins")
    op.drop_table("coins")
