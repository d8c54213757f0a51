"""Pipeline orchestration for Crypto Mover Tracker.

This module wires the market data client, the detector, the predictor,
storage, research and alerting into the two scheduled runs:

    collection: snapshot -> detect -> cooldown -> store -> forecast -> alert -> research
    evaluation: due predictions -> current prices -> outcomes -> accuracy
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from anthropic import AsyncAnthropic

from crypto_mover_tracker.alerter.dispatcher import AlertDispatcher
from crypto_mover_tracker.alerter.models import AlertItem
from crypto_mover_tracker.alerter.telegram import TelegramChannel
from crypto_mover_tracker.detector.models import MoverEvent, MoveType
from crypto_mover_tracker.detector.movers import MoverDetector, MoverDetectorConfig
from crypto_mover_tracker.ingestor.coingecko import CoinGeckoClient
from crypto_mover_tracker.predictor.engine import PredictionEngine
from crypto_mover_tracker.predictor.evaluator import (
    AccuracyEvaluator,
    EvaluationResult,
    SessionFactory,
    load_historical_accuracy,
)
from crypto_mover_tracker.predictor.models import Forecast
from crypto_mover_tracker.predictor.similarity import find_similar_events
from crypto_mover_tracker.research.analyst import ResearchAnalyst, ResearchError
from crypto_mover_tracker.research.news import CryptoPanicClient
from crypto_mover_tracker.retry import RetryError, retry_call
from crypto_mover_tracker.storage.repos import (
    CoinRepository,
    DailyStatsRepository,
    MoverEventDTO,
    MoverEventRepository,
    PredictionDTO,
    PredictionRepository,
    PriceSnapshotRepository,
    ResearchReportRepository,
)

if TYPE_CHECKING:
    from crypto_mover_tracker.config import Settings
    from crypto_mover_tracker.ingestor.models import MarketSnapshot
    from crypto_mover_tracker.research.analyst import ResearchResult
    from crypto_mover_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

WRITE_BATCH_SIZE = 100
PRICE_SNAPSHOT_COINS = 500


class MarketDataSource(Protocol):
    async def get_snapshot(self, max_coins: int = ...) -> MarketSnapshot: ...

    async def get_simple_prices(self, coin_ids: list[str]) -> dict[str, float]: ...


class Researcher(Protocol):
    async def analyze(self, event: MoverEventDTO) -> ResearchResult: ...


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass
class PipelineDependencies:
    """Process-wide collaborators, built once and injected into each run."""

    session_factory: SessionFactory
    market_data: MarketDataSource
    dispatcher: AlertDispatcher
    settings: Settings
    analyst: Researcher | None = None
    closers: list[Callable[[], Awaitable[Any]]] = field(default_factory=list, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, db: DatabaseManager) -> PipelineDependencies:
        """Construct the real clients from configuration."""
        closers: list[Callable[[], Awaitable[Any]]] = []

        api_key = settings.coingecko.api_key.get_secret_value() if settings.coingecko.api_key else None
        market_data = CoinGeckoClient(
            api_key=api_key,
            page_delay_seconds=settings.coingecko.page_delay_seconds,
            timeout_seconds=settings.coingecko.timeout_seconds,
        )
        closers.append(market_data.aclose)

        channel: TelegramChannel | None = None
        if settings.telegram.enabled and settings.telegram.bot_token and settings.telegram.chat_id:
            channel = TelegramChannel(settings.telegram.bot_token.get_secret_value(), settings.telegram.chat_id)
            closers.append(channel.aclose)
            logger.info("Telegram channel enabled")
        else:
            logger.warning("No alert channel configured; alerts will only be logged")
        dispatcher = AlertDispatcher(channel, dry_run=settings.dry_run)

        analyst: ResearchAnalyst | None = None
        research = settings.research
        if research.enabled and research.anthropic_api_key is not None:
            news = (
                CryptoPanicClient(research.cryptopanic_api_key.get_secret_value())
                if research.cryptopanic_api_key
                else None
            )
            analyst = ResearchAnalyst(
                AsyncAnthropic(api_key=research.anthropic_api_key.get_secret_value()),
                model=research.model,
                max_tokens=research.max_tokens,
                news_client=news,
            )
            closers.append(analyst.aclose)
            logger.info("Research enabled (model=%s)", research.model)
        else:
            logger.info("Research disabled: ANTHROPIC_API_KEY not set")

        return cls(
            session_factory=db.get_async_session,
            market_data=market_data,
            dispatcher=dispatcher,
            settings=settings,
            analyst=analyst,
            closers=closers,
        )

    async def aclose(self) -> None:
        for close in self.closers:
            try:
                await close()
            except Exception as e:
                logger.warning("Error closing client: %s", e)
        self.closers.clear()


@dataclass
class CollectionResult:
    """Summary of one collection run."""

    coins: int = 0
    coin_batches_failed: int = 0
    snapshots_written: int = 0
    snapshot_batches_failed: int = 0
    movers_detected: int = 0
    movers_new: int = 0
    predictions_made: int = 0
    alerts_sent: int = 0
    alerts_failed: int = 0
    research_done: int = 0
    research_failed: int = 0
    events: list[MoverEventDTO] = field(default_factory=list, repr=False)


class CollectionPipeline:
    """One price collection and mover detection run.

    Example:
        ```python
        deps = PipelineDependencies.from_settings(settings, db)
        result = await CollectionPipeline(deps).run()
        print(result.movers_new)
        ```
    """

    def __init__(self, deps: PipelineDependencies) -> None:
        self._deps = deps
        settings = deps.settings
        self._detector = MoverDetector(
            MoverDetectorConfig(
                price_threshold=settings.detector.price_threshold,
                volume_threshold=settings.detector.volume_threshold,
            )
        )
        self._engine = PredictionEngine()

    async def run(self, now: datetime | None = None) -> CollectionResult:
        """Execute the run.

        Raises:
            CoinGeckoError: If the market snapshot cannot be fetched.
        """
        now = now or datetime.now(UTC)
        settings = self._deps.settings
        result = CollectionResult()

        snapshot = await self._deps.market_data.get_snapshot(max_coins=settings.coingecko.max_coins)
        result.coins = len(snapshot.coins)

        await self._store_coins(snapshot, result)
        await self._store_price_snapshots(snapshot, result)

        movers = self._detector.detect(snapshot)
        result.movers_detected = len(movers)
        logger.info("Detected %d significant movers in %d coins", len(movers), result.coins)
        if not movers:
            return result

        movers = await self._apply_cooldown(movers, now)
        result.movers_new = len(movers)
        if not movers:
            return result

        stored = await self._store_events(movers, now)
        result.events = stored

        top = list(zip(movers, stored, strict=True))[: settings.detector.max_alerts_per_run]
        forecasts = await self._forecast(top, stored, now, result)

        dispatch = await self._deps.dispatcher.dispatch_movers(
            [AlertItem(event=dto, forecast=forecasts.get(dto.id)) for _, dto in top]
        )
        result.alerts_sent = dispatch.sent
        result.alerts_failed = dispatch.failed

        await self._research(stored, now, result)

        logger.info(
            "Collection complete: %d coins, %d movers (%d new), %d predictions, %d alerts, %d research",
            result.coins,
            result.movers_detected,
            result.movers_new,
            result.predictions_made,
            result.alerts_sent,
            result.research_done,
        )
        return result

    async def _store_coins(self, snapshot: MarketSnapshot, result: CollectionResult) -> None:
        for batch in _chunks(snapshot.coins, WRITE_BATCH_SIZE):
            try:
                async with self._deps.session_factory() as session:
                    await CoinRepository(session).upsert_many(batch)
            except Exception as e:
                result.coin_batches_failed += 1
                logger.warning("Coin upsert batch failed (%d rows): %s", len(batch), e)

    async def _store_price_snapshots(self, snapshot: MarketSnapshot, result: CollectionResult) -> None:
        for batch in _chunks(snapshot.coins[:PRICE_SNAPSHOT_COINS], WRITE_BATCH_SIZE):
            try:
                async with self._deps.session_factory() as session:
                    written = await PriceSnapshotRepository(session).insert_many(
                        batch, recorded_at=snapshot.timestamp
                    )
                result.snapshots_written += written
            except Exception as e:
                result.snapshot_batches_failed += 1
                logger.warning("Price snapshot batch failed (%d rows): %s", len(batch), e)

    async def _apply_cooldown(self, movers: list[MoverEvent], now: datetime) -> list[MoverEvent]:
        hours = self._deps.settings.detector.cooldown_hours
        if hours <= 0:
            return movers
        async with self._deps.session_factory() as session:
            recent = await MoverEventRepository(session).recent_coin_ids(
                [m.coin_id for m in movers], since=now - timedelta(hours=hours)
            )
        fresh = [m for m in movers if m.coin_id not in recent]
        logger.info(
            "After cooldown filter: %d new movers (filtered %d)", len(fresh), len(movers) - len(fresh)
        )
        return fresh

    async def _store_events(self, movers: list[MoverEvent], now: datetime) -> list[MoverEventDTO]:
        async with self._deps.session_factory() as session:
            stored = await MoverEventRepository(session).insert_many(movers)
            await DailyStatsRepository(session).increment(
                now.date(),
                total_movers=len(movers),
                pumps=sum(1 for m in movers if m.move_type == MoveType.PUMP),
                dumps=sum(1 for m in movers if m.move_type == MoveType.DUMP),
                volume_spikes=sum(1 for m in movers if m.move_type == MoveType.VOLUME_SPIKE),
            )
        return stored

    async def _forecast(
        self,
        top: list[tuple[MoverEvent, MoverEventDTO]],
        stored: list[MoverEventDTO],
        now: datetime,
        result: CollectionResult,
    ) -> dict[int, Forecast]:
        settings = self._deps.settings
        forecasts: dict[int, Forecast] = {}
        if not top:
            return forecasts

        # Events from this run are never analogues for each other
        new_ids = {dto.id for dto in stored}
        async with self._deps.session_factory() as session:
            history = [
                h
                for h in await MoverEventRepository(session).list_history(
                    since=now - timedelta(days=settings.prediction.history_days)
                )
                if h.event_id not in new_ids
            ]
            accuracy = await load_historical_accuracy(session)

            predictions = PredictionRepository(session)
            for event, dto in top:
                if event.magnitude == 0:
                    continue
                similar = find_similar_events(event, history)
                forecast = self._engine.predict(event, similar, accuracy)
                await predictions.insert(
                    PredictionDTO(
                        coin_id=dto.coin_id,
                        mover_event_id=dto.id,
                        predicted_direction=forecast.direction.value,
                        confidence=forecast.confidence,
                        reasoning=forecast.reasoning,
                        horizon_hours=settings.prediction.horizon_hours,
                        predicted_at=now,
                    )
                )
                forecasts[dto.id] = forecast

            if forecasts:
                await DailyStatsRepository(session).increment(now.date(), predictions_made=len(forecasts))
        result.predictions_made = len(forecasts)
        return forecasts

    async def _research(self, stored: list[MoverEventDTO], now: datetime, result: CollectionResult) -> None:
        analyst = self._deps.analyst
        research = self._deps.settings.research
        if analyst is None or research.per_run <= 0:
            return

        start_of_day = datetime.combine(now.date(), time.min, tzinfo=UTC)
        async with self._deps.session_factory() as session:
            done_today = await ResearchReportRepository(session).count_since(start_of_day)
        budget = min(research.per_run, max(0, research.max_per_day - done_today))
        if budget == 0:
            logger.info("Daily research budget exhausted (%d/%d)", done_today, research.max_per_day)
            return

        for event in stored[:budget]:
            try:
                analysis = await retry_call(
                    lambda e=event: analyst.analyze(e),
                    max_attempts=research.max_attempts,
                    base_delay=self._deps.settings.scheduler.retry_base_delay_seconds,
                    retry_on=(ResearchError,),
                    name=f"research {event.symbol}",
                )
            except RetryError as e:
                result.research_failed += 1
                logger.error("Research failed for %s: %s", event.symbol, e.last_exception)
                continue

            async with self._deps.session_factory() as session:
                await ResearchReportRepository(session).insert(analysis.to_report(event.id))
                await DailyStatsRepository(session).increment(now.date(), research_count=1)
            result.research_done += 1
            await self._deps.dispatcher.dispatch_research(event, analysis)


class EvaluationPipeline:
    """One prediction evaluation run."""

    def __init__(self, deps: PipelineDependencies) -> None:
        prediction = deps.settings.prediction
        self._evaluator = AccuracyEvaluator(
            deps.session_factory,
            deps.market_data,
            horizon_hours=prediction.horizon_hours,
            expiry_hours=prediction.expiry_hours,
            partial_band=prediction.partial_band_percent,
        )

    async def run(self, now: datetime | None = None) -> EvaluationResult:
        return await self._evaluator.evaluate(now)
