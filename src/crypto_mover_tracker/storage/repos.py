"""Repository pattern implementations for data access.

This module provides clean data access abstractions for coins, price
snapshots, mover events, predictions, research reports and daily stats.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, Literal

import sqlalchemy as sa
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from crypto_mover_tracker.detector.models import HistoricalEvent, MoverEvent, MoveType
from crypto_mover_tracker.ingestor.models import CoinMarketSample
from crypto_mover_tracker.storage.models import (
    CoinModel,
    DailyStatsModel,
    MoverEventModel,
    PredictionModel,
    PriceSnapshotModel,
    ResearchReportModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

MoverDirection = Literal["both", "up", "down"]

DAILY_COUNTERS = (
    "total_movers",
    "pumps",
    "dumps",
    "volume_spikes",
    "research_count",
    "predictions_made",
    "predictions_correct",
)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _dialect_insert(session: AsyncSession, target: Any) -> Any:
    """Pick the dialect-specific INSERT that supports ON CONFLICT."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(target)
    return sqlite_insert(target)


@dataclass
class MoverEventDTO:
    """Data transfer object for stored mover events."""

    id: int
    coin_id: str
    symbol: str
    name: str
    move_type: str
    magnitude: float
    price: float
    market_cap: float
    volume_24h: float
    detected_at: datetime
    volume_ratio: float | None = None
    btc_relative: float | None = None
    rank: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    outcome_24h: float | None = None
    outcome_recorded_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: MoverEventModel) -> MoverEventDTO:
        return cls(
            id=model.id,
            coin_id=model.coin_id,
            symbol=model.symbol,
            name=model.name,
            move_type=model.move_type,
            magnitude=model.magnitude,
            price=model.price,
            market_cap=model.market_cap,
            volume_24h=model.volume_24h,
            detected_at=_as_utc(model.detected_at) or model.detected_at,
            volume_ratio=model.volume_ratio,
            btc_relative=model.btc_relative,
            rank=model.rank,
            metadata=json.loads(model.metadata_json or "{}"),
            outcome_24h=model.outcome_24h,
            outcome_recorded_at=_as_utc(model.outcome_recorded_at),
            created_at=_as_utc(model.created_at),
        )

    def to_historical(self) -> HistoricalEvent:
        """Convert to the analogue shape used by the similarity matcher."""
        return HistoricalEvent(
            event_id=self.id,
            coin_id=self.coin_id,
            symbol=self.symbol,
            move_type=MoveType(self.move_type),
            magnitude=self.magnitude,
            market_cap=self.market_cap,
            detected_at=self.detected_at,
            outcome_24h=self.outcome_24h,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "coin_id": self.coin_id,
            "symbol": self.symbol,
            "name": self.name,
            "move_type": self.move_type,
            "magnitude": self.magnitude,
            "price": self.price,
            "market_cap": self.market_cap,
            "volume_24h": self.volume_24h,
            "volume_ratio": self.volume_ratio,
            "btc_relative": self.btc_relative,
            "rank": self.rank,
            "metadata": self.metadata,
            "detected_at": self.detected_at.isoformat(),
            "outcome_24h": self.outcome_24h,
        }


@dataclass
class PredictionDTO:
    """Data transfer object for predictions."""

    coin_id: str
    predicted_direction: str
    confidence: float
    reasoning: str
    predicted_at: datetime
    mover_event_id: int | None = None
    predicted_magnitude: float | None = None
    horizon_hours: int = 24
    status: str = "pending"
    actual_change: float | None = None
    evaluated_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: PredictionModel) -> PredictionDTO:
        return cls(
            id=model.id,
            coin_id=model.coin_id,
            mover_event_id=model.mover_event_id,
            predicted_direction=model.predicted_direction,
            predicted_magnitude=model.predicted_magnitude,
            confidence=model.confidence,
            reasoning=model.reasoning,
            horizon_hours=model.horizon_hours,
            status=model.status,
            actual_change=model.actual_change,
            predicted_at=_as_utc(model.predicted_at) or model.predicted_at,
            evaluated_at=_as_utc(model.evaluated_at),
            created_at=_as_utc(model.created_at),
        )


@dataclass
class ResearchReportDTO:
    """Data transfer object for research reports."""

    mover_event_id: int
    full_analysis: str
    catalyst: str | None = None
    catalyst_confidence: float | None = None
    news_summary: str | None = None
    sentiment_label: str | None = None
    sentiment_score: float | None = None
    key_factors: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    continuation_probability: float | None = None
    recommended_action: str | None = None
    news_articles: list[dict[str, Any]] = field(default_factory=list)
    tokens_used: int | None = None
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: ResearchReportModel) -> ResearchReportDTO:
        return cls(
            id=model.id,
            mover_event_id=model.mover_event_id,
            full_analysis=model.full_analysis,
            catalyst=model.catalyst,
            catalyst_confidence=model.catalyst_confidence,
            news_summary=model.news_summary,
            sentiment_label=model.sentiment_label,
            sentiment_score=model.sentiment_score,
            key_factors=json.loads(model.key_factors_json or "[]"),
            risks=json.loads(model.risks_json or "[]"),
            continuation_probability=model.continuation_probability,
            recommended_action=model.recommended_action,
            news_articles=json.loads(model.news_articles_json or "[]"),
            tokens_used=model.tokens_used,
            created_at=_as_utc(model.created_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mover_event_id": self.mover_event_id,
            "catalyst": self.catalyst,
            "catalyst_confidence": self.catalyst_confidence,
            "news_summary": self.news_summary,
            "sentiment_label": self.sentiment_label,
            "sentiment_score": self.sentiment_score,
            "key_factors": self.key_factors,
            "risks": self.risks,
            "continuation_probability": self.continuation_probability,
            "recommended_action": self.recommended_action,
            "news_articles": self.news_articles,
            "tokens_used": self.tokens_used,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class DailyStatsDTO:
    """Data transfer object for daily counters."""

    day: date
    total_movers: int = 0
    pumps: int = 0
    dumps: int = 0
    volume_spikes: int = 0
    research_count: int = 0
    predictions_made: int = 0
    predictions_correct: int = 0

    @classmethod
    def from_model(cls, model: DailyStatsModel) -> DailyStatsDTO:
        return cls(
            day=model.day,
            total_movers=model.total_movers,
            pumps=model.pumps,
            dumps=model.dumps,
            volume_spikes=model.volume_spikes,
            research_count=model.research_count,
            predictions_made=model.predictions_made,
            predictions_correct=model.predictions_correct,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "total_movers": self.total_movers,
            "pumps": self.pumps,
            "dumps": self.dumps,
            "volume_spikes": self.volume_spikes,
            "research_count": self.research_count,
            "predictions_made": self.predictions_made,
            "predictions_correct": self.predictions_correct,
        }


class CoinRepository:
    """Repository for the coin registry."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_many(self, samples: Sequence[CoinMarketSample]) -> int:
        """Insert or refresh coins by id (idempotent)."""
        if not samples:
            return 0
        now = datetime.now(UTC)
        rows: dict[str, dict[str, Any]] = {}
        for s in samples:
            rows[s.coin_id] = {
                "id": s.coin_id,
                "symbol": s.symbol,
                "name": s.name,
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            }
        stmt = _dialect_insert(self.session, CoinModel).values(list(rows.values()))
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "symbol": stmt.excluded.symbol,
                "name": stmt.excluded.name,
                "is_active": stmt.excluded.is_active,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)


class PriceSnapshotRepository:
    """Repository for per-pass price history."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, samples: Sequence[CoinMarketSample], *, recorded_at: datetime) -> int:
        """Record one price row per coin; a repeated (coin, timestamp) is ignored."""
        if not samples:
            return 0
        rows = [
            {
                "coin_id": s.coin_id,
                "price": s.current_price,
                "volume_24h": s.total_volume,
                "market_cap": s.market_cap,
                "change_1h": s.change_1h,
                "change_24h": s.change_24h,
                "change_7d": s.change_7d,
                "recorded_at": recorded_at,
            }
            for s in samples
        ]
        stmt = _dialect_insert(self.session, PriceSnapshotModel).values(rows)
        stmt = stmt.on_conflict_do_nothing(index_elements=["coin_id", "recorded_at"])
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def list_for_coin(self, coin_id: str, *, limit: int = 100) -> list[PriceSnapshotModel]:
        result = await self.session.execute(
            select(PriceSnapshotModel)
            .where(PriceSnapshotModel.coin_id == coin_id)
            .order_by(PriceSnapshotModel.recorded_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class MoverEventRepository:
    """Repository for detected mover events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, events: Sequence[MoverEvent]) -> list[MoverEventDTO]:
        """Persist events, returning them with their assigned ids (input order)."""
        models = [
            MoverEventModel(
                coin_id=e.coin_id,
                symbol=e.symbol,
                name=e.name,
                move_type=e.move_type.value,
                magnitude=e.magnitude,
                price=e.price,
                market_cap=e.market_cap,
                volume_24h=e.volume_24h,
                volume_ratio=e.volume_ratio,
                btc_relative=e.btc_relative,
                rank=e.rank,
                metadata_json=json.dumps(e.metadata, default=str),
                detected_at=e.detected_at,
            )
            for e in events
        ]
        self.session.add_all(models)
        await self.session.flush()
        return [MoverEventDTO.from_model(m) for m in models]

    async def get(self, event_id: int) -> MoverEventDTO | None:
        result = await self.session.execute(select(MoverEventModel).where(MoverEventModel.id == event_id))
        model = result.scalar_one_or_none()
        return MoverEventDTO.from_model(model) if model else None

    async def get_many(self, event_ids: Sequence[int]) -> dict[int, MoverEventDTO]:
        if not event_ids:
            return {}
        result = await self.session.execute(
            select(MoverEventModel).where(MoverEventModel.id.in_(list(set(event_ids))))
        )
        return {m.id: MoverEventDTO.from_model(m) for m in result.scalars().all()}

    async def list_recent(
        self,
        *,
        since: datetime,
        direction: MoverDirection = "both",
        limit: int = 20,
    ) -> list[MoverEventDTO]:
        """The `limit` most recent events since `since`, re-ranked strongest first."""
        stmt = select(MoverEventModel).where(MoverEventModel.detected_at >= since)
        if direction == "up":
            stmt = stmt.where(MoverEventModel.magnitude > 0)
        elif direction == "down":
            stmt = stmt.where(MoverEventModel.magnitude < 0)
        stmt = stmt.order_by(MoverEventModel.detected_at.desc(), MoverEventModel.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        events = [MoverEventDTO.from_model(m) for m in result.scalars().all()]
        return sorted(events, key=lambda e: abs(e.magnitude), reverse=True)

    async def recent_coin_ids(self, coin_ids: Sequence[str], *, since: datetime) -> set[str]:
        """Which of `coin_ids` already have an event detected since `since`."""
        if not coin_ids:
            return set()
        result = await self.session.execute(
            select(MoverEventModel.coin_id)
            .where(MoverEventModel.coin_id.in_(list(set(coin_ids))))
            .where(MoverEventModel.detected_at >= since)
            .distinct()
        )
        return set(result.scalars().all())

    async def list_history(
        self,
        *,
        since: datetime,
        move_type: MoveType | None = None,
        limit: int = 1000,
    ) -> list[HistoricalEvent]:
        """Past events for analogue matching, most recent first."""
        stmt = select(MoverEventModel).where(MoverEventModel.detected_at >= since)
        if move_type is not None:
            stmt = stmt.where(MoverEventModel.move_type == move_type.value)
        stmt = stmt.order_by(MoverEventModel.detected_at.desc(), MoverEventModel.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [MoverEventDTO.from_model(m).to_historical() for m in result.scalars().all()]

    async def set_outcome(self, event_id: int, outcome_24h: float, *, recorded_at: datetime) -> bool:
        """Write the realized outcome once; returns False if already set or missing."""
        result = await self.session.execute(
            update(MoverEventModel)
            .where(MoverEventModel.id == event_id)
            .where(MoverEventModel.outcome_24h.is_(None))
            .values(outcome_24h=outcome_24h, outcome_recorded_at=recorded_at)
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def count_since(self, since: datetime) -> int:
        result = await self.session.execute(
            select(sa.func.count()).select_from(MoverEventModel).where(MoverEventModel.detected_at >= since)
        )
        return int(result.scalar_one())


class PredictionRepository:
    """Repository for predictions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: PredictionDTO) -> PredictionDTO:
        model = PredictionModel(
            coin_id=dto.coin_id,
            mover_event_id=dto.mover_event_id,
            predicted_direction=dto.predicted_direction,
            predicted_magnitude=dto.predicted_magnitude,
            confidence=dto.confidence,
            reasoning=dto.reasoning,
            horizon_hours=dto.horizon_hours,
            status=dto.status,
            predicted_at=dto.predicted_at,
        )
        self.session.add(model)
        await self.session.flush()
        return PredictionDTO.from_model(model)

    async def get(self, prediction_id: int) -> PredictionDTO | None:
        result = await self.session.execute(select(PredictionModel).where(PredictionModel.id == prediction_id))
        model = result.scalar_one_or_none()
        return PredictionDTO.from_model(model) if model else None

    async def list_due(self, *, cutoff: datetime, limit: int | None = None) -> list[PredictionDTO]:
        """Pending predictions made at or before `cutoff`, oldest first."""
        stmt = (
            select(PredictionModel)
            .where(PredictionModel.status == "pending")
            .where(PredictionModel.predicted_at <= cutoff)
            .order_by(PredictionModel.predicted_at.asc(), PredictionModel.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [PredictionDTO.from_model(m) for m in result.scalars().all()]

    async def mark_evaluated(
        self,
        prediction_id: int,
        *,
        status: str,
        actual_change: float | None,
        evaluated_at: datetime,
    ) -> bool:
        """Move a pending prediction to a terminal status.

        The update is guarded by ``status = 'pending'`` so a second call is
        a no-op and returns False.
        """
        if status == "pending":
            raise ValueError("mark_evaluated requires a terminal status")
        result = await self.session.execute(
            update(PredictionModel)
            .where(PredictionModel.id == prediction_id)
            .where(PredictionModel.status == "pending")
            .values(status=status, actual_change=actual_change, evaluated_at=evaluated_at)
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def status_counts(self, *, since: datetime | None = None) -> dict[str, int]:
        """Number of predictions per status, optionally limited to recent ones."""
        stmt = select(PredictionModel.status, sa.func.count()).group_by(PredictionModel.status)
        if since is not None:
            stmt = stmt.where(PredictionModel.predicted_at >= since)
        result = await self.session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}


class ResearchReportRepository:
    """Repository for research reports."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: ResearchReportDTO) -> ResearchReportDTO:
        model = ResearchReportModel(
            mover_event_id=dto.mover_event_id,
            catalyst=dto.catalyst,
            catalyst_confidence=dto.catalyst_confidence,
            news_summary=dto.news_summary,
            sentiment_label=dto.sentiment_label,
            sentiment_score=dto.sentiment_score,
            key_factors_json=json.dumps(dto.key_factors),
            risks_json=json.dumps(dto.risks),
            continuation_probability=dto.continuation_probability,
            recommended_action=dto.recommended_action,
            full_analysis=dto.full_analysis,
            news_articles_json=json.dumps(dto.news_articles, default=str),
            tokens_used=dto.tokens_used,
        )
        self.session.add(model)
        await self.session.flush()
        return ResearchReportDTO.from_model(model)

    async def get_by_event(self, mover_event_id: int) -> ResearchReportDTO | None:
        result = await self.session.execute(
            select(ResearchReportModel).where(ResearchReportModel.mover_event_id == mover_event_id)
        )
        model = result.scalar_one_or_none()
        return ResearchReportDTO.from_model(model) if model else None

    async def count_since(self, since: datetime) -> int:
        result = await self.session.execute(
            select(sa.func.count())
            .select_from(ResearchReportModel)
            .where(ResearchReportModel.created_at >= since)
        )
        return int(result.scalar_one())


class DailyStatsRepository:
    """Repository for increment-only daily counters."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def increment(self, day: date, **counts: int) -> None:
        """Atomically add `counts` to the row for `day`, creating it if needed.

        Runs as a single ``INSERT ... ON CONFLICT DO UPDATE SET col = col + excluded.col``.
        """
        unknown = set(counts) - set(DAILY_COUNTERS)
        if unknown:
            raise ValueError(f"Unknown daily counters: {sorted(unknown)}")
        deltas = {k: int(v) for k, v in counts.items() if v}
        if not deltas:
            return

        table = DailyStatsModel.__table__
        now = datetime.now(UTC)
        values: dict[str, Any] = {name: 0 for name in DAILY_COUNTERS}
        values.update(deltas)
        values["date"] = day
        values["updated_at"] = now

        stmt = _dialect_insert(self.session, table).values(**values)
        set_: dict[str, Any] = {name: table.c[name] + stmt.excluded[name] for name in deltas}
        set_["updated_at"] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(index_elements=["date"], set_=set_)
        await self.session.execute(stmt)
        await self.session.flush()

    async def get(self, day: date) -> DailyStatsDTO | None:
        result = await self.session.execute(select(DailyStatsModel).where(DailyStatsModel.day == day))
        model = result.scalar_one_or_none()
        return DailyStatsDTO.from_model(model) if model else None

    async def list_since(self, day: date) -> list[DailyStatsDTO]:
        """Rows from `day` onward, most recent first."""
        result = await self.session.execute(
            select(DailyStatsModel).where(DailyStatsModel.day >= day).order_by(DailyStatsModel.day.desc())
        )
        return [DailyStatsDTO.from_model(m) for m in result.scalars().all()]
