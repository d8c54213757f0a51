"""SQLAlchemy models for persistent storage.

This module defines the database schema for the coin registry, price
history, detected mover events, research reports, predictions and the
daily counters.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class CoinModel(Base):
    """Registry of coins seen in market snapshots."""

    __tablename__ = "coins"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(40), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_coins_symbol", "symbol"),)


class PriceSnapshotModel(Base):
    """Per-pass price history for the largest coins."""

    __tablename__ = "price_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    coin_id: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    volume_24h: Mapped[float] = mapped_column(Float, nullable=False)
    market_cap: Mapped[float] = mapped_column(Float, nullable=False)
    change_1h: Mapped[float | None] = mapped_column(Float, nullable=True)
    change_24h: Mapped[float | None] = mapped_column(Float, nullable=True)
    change_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("coin_id", "recorded_at", name="uq_price_snapshots_coin_ts"),
        Index("idx_price_snapshots_coin_ts", "coin_id", "recorded_at"),
    )


class MoverEventModel(Base):
    """Detected mover events.

    `outcome_24h` is written once by the evaluator and feeds later
    analogue matching.
    """

    __tablename__ = "mover_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    coin_id: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(40), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    move_type: Mapped[str] = mapped_column(String(20), nullable=False)
    magnitude: Mapped[float] = mapped_column(Float, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    market_cap: Mapped[float] = mapped_column(Float, nullable=False)
    volume_24h: Mapped[float] = mapped_column(Float, nullable=False)
    volume_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    btc_relative: Mapped[float | None] = mapped_column(Float, nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    outcome_24h: Mapped[float | None] = mapped_column(Float, nullable=True)
    outcome_recorded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_mover_events_detected_at", "detected_at"),
        Index("idx_mover_events_coin_detected", "coin_id", "detected_at"),
        Index("idx_mover_events_type_detected", "move_type", "detected_at"),
    )


class ResearchReportModel(Base):
    """LLM catalyst research attached to a mover event."""

    __tablename__ = "research_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mover_event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    catalyst: Mapped[str | None] = mapped_column(Text, nullable=True)
    catalyst_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    news_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment_label: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sentiment_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    key_factors_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    risks_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    continuation_probability: Mapped[float | None] = mapped_column(Float, nullable=True)
    recommended_action: Mapped[str | None] = mapped_column(String(20), nullable=True)
    full_analysis: Mapped[str] = mapped_column(Text, nullable=False)
    news_articles_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("mover_event_id", name="uq_research_reports_event"),
        Index("idx_research_reports_created_at", "created_at"),
    )


class PredictionModel(Base):
    """Directional predictions awaiting or holding their evaluation."""

    __tablename__ = "predictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    coin_id: Mapped[str] = mapped_column(String(100), nullable=False)
    mover_event_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    predicted_direction: Mapped[str] = mapped_column(String(8), nullable=False)
    predicted_magnitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    horizon_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    actual_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    predicted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_predictions_status_predicted_at", "status", "predicted_at"),
        Index("idx_predictions_mover_event", "mover_event_id"),
    )


class DailyStatsModel(Base):
    """Increment-only per-day counters."""

    __tablename__ = "daily_stats"

    day: Mapped[date] = mapped_column("date", Date, primary_key=True)
    total_movers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pumps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dumps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    volume_spikes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    research_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    predictions_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    predictions_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
