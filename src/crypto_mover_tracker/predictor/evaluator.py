"""Prediction evaluation against realized prices.

Pure helpers classify a single outcome and compute the running accuracy;
AccuracyEvaluator reconciles every due prediction in the store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from crypto_mover_tracker.predictor.models import PredictionDirection, PredictionStatus
from crypto_mover_tracker.storage.repos import (
    DailyStatsRepository,
    MoverEventRepository,
    PredictionRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_PARTIAL_BAND = 2.0
DEFAULT_HORIZON_HOURS = 24
DEFAULT_EXPIRY_HOURS = 72

SessionFactory = Callable[[], AbstractAsyncContextManager["AsyncSession"]]


class PriceSource(Protocol):
    """Anything that can quote current USD prices for many coins at once."""

    async def get_simple_prices(self, coin_ids: list[str]) -> dict[str, float]: ...


def classify_outcome(
    direction: PredictionDirection | str,
    actual_change: float,
    *,
    partial_band: float = DEFAULT_PARTIAL_BAND,
) -> PredictionStatus:
    """Score one prediction.

    A flat move (0) counts as down. Wrong-direction moves smaller than
    `partial_band` percent are scored PARTIAL instead of INCORRECT.
    """
    predicted_up = PredictionDirection(direction) == PredictionDirection.UP
    actual_up = actual_change > 0
    if predicted_up == actual_up:
        return PredictionStatus.CORRECT
    if abs(actual_change) < partial_band:
        return PredictionStatus.PARTIAL
    return PredictionStatus.INCORRECT


def compute_actual_change(price_at_detection: float, current_price: float) -> float:
    """Percent change from the detection price to the current price."""
    if price_at_detection <= 0:
        raise ValueError("price_at_detection must be positive")
    return (current_price - price_at_detection) / price_at_detection * 100


def compute_accuracy(correct: int, partial: int, total: int) -> float | None:
    """Running accuracy with half credit for partial results; None without data."""
    if total <= 0:
        return None
    return (correct + 0.5 * partial) / total


def accuracy_from_counts(counts: dict[str, int]) -> float | None:
    """Accuracy over evaluated predictions (pending and expired excluded)."""
    correct = counts.get(PredictionStatus.CORRECT.value, 0)
    partial = counts.get(PredictionStatus.PARTIAL.value, 0)
    incorrect = counts.get(PredictionStatus.INCORRECT.value, 0)
    return compute_accuracy(correct, partial, correct + partial + incorrect)


async def load_historical_accuracy(session: AsyncSession) -> float | None:
    """Current global accuracy as stored, the feedback input for forecasts."""
    counts = await PredictionRepository(session).status_counts()
    return accuracy_from_counts(counts)


@dataclass
class EvaluationResult:
    """Summary of one evaluation run."""

    due: int = 0
    correct: int = 0
    incorrect: int = 0
    partial: int = 0
    expired: int = 0
    skipped: int = 0
    accuracy: float | None = None

    @property
    def evaluated(self) -> int:
        return self.correct + self.incorrect + self.partial


class AccuracyEvaluator:
    """Reconcile due predictions with current prices.

    A prediction is due once it is older than the horizon. If no current
    price is available it stays pending, until it is older than the
    horizon plus `expiry_hours`, at which point it becomes EXPIRED. A
    prediction with no detection price to compare against is expired
    right away.

    Each status write is conditional on the row still being pending, so
    repeated runs are harmless.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        price_source: PriceSource,
        *,
        horizon_hours: int = DEFAULT_HORIZON_HOURS,
        expiry_hours: int = DEFAULT_EXPIRY_HOURS,
        partial_band: float = DEFAULT_PARTIAL_BAND,
    ) -> None:
        self._session_factory = session_factory
        self._price_source = price_source
        self._horizon = timedelta(hours=horizon_hours)
        self._expiry = timedelta(hours=horizon_hours + expiry_hours)
        self._partial_band = partial_band

    async def evaluate(self, now: datetime | None = None) -> EvaluationResult:
        """Run one reconciliation pass.

        Args:
            now: Evaluation time (defaults to the current UTC time).

        Returns:
            Counts for this run plus the recomputed global accuracy.
        """
        now = now or datetime.now(UTC)
        result = EvaluationResult()

        async with self._session_factory() as session:
            due = await PredictionRepository(session).list_due(cutoff=now - self._horizon)
            event_ids = [p.mover_event_id for p in due if p.mover_event_id is not None]
            events = await MoverEventRepository(session).get_many(event_ids)

        result.due = len(due)
        if not due:
            logger.info("No predictions to evaluate")
            async with self._session_factory() as session:
                result.accuracy = await load_historical_accuracy(session)
            return result

        coin_ids = sorted({p.coin_id for p in due})
        prices = await self._price_source.get_simple_prices(coin_ids)
        logger.info("Evaluating %d predictions (%d coins, %d priced)", len(due), len(coin_ids), len(prices))

        async with self._session_factory() as session:
            predictions = PredictionRepository(session)
            movers = MoverEventRepository(session)

            for prediction in due:
                if prediction.id is None:
                    result.skipped += 1
                    logger.warning("Skipping unsaved prediction for %s", prediction.coin_id)
                    continue
                event = events.get(prediction.mover_event_id) if prediction.mover_event_id is not None else None
                current_price = prices.get(prediction.coin_id)

                if event is None or event.price <= 0:
                    if await predictions.mark_evaluated(
                        prediction.id, status=PredictionStatus.EXPIRED.value, actual_change=None, evaluated_at=now
                    ):
                        result.expired += 1
                    logger.warning("Prediction %d has no detection price; expired", prediction.id)
                    continue

                if current_price is None:
                    if prediction.predicted_at <= now - self._expiry:
                        if await predictions.mark_evaluated(
                            prediction.id,
                            status=PredictionStatus.EXPIRED.value,
                            actual_change=None,
                            evaluated_at=now,
                        ):
                            result.expired += 1
                        logger.info(
                            "No price for %s since %s; prediction %d expired",
                            prediction.coin_id,
                            prediction.predicted_at,
                            prediction.id,
                        )
                    else:
                        result.skipped += 1
                        logger.debug("No price data for %s, skipping", prediction.coin_id)
                    continue

                actual_change = compute_actual_change(event.price, current_price)
                status = classify_outcome(
                    prediction.predicted_direction, actual_change, partial_band=self._partial_band
                )
                marked = await predictions.mark_evaluated(
                    prediction.id, status=status.value, actual_change=actual_change, evaluated_at=now
                )
                if not marked:
                    continue

                await movers.set_outcome(event.id, actual_change, recorded_at=now)
                if status == PredictionStatus.CORRECT:
                    result.correct += 1
                elif status == PredictionStatus.PARTIAL:
                    result.partial += 1
                else:
                    result.incorrect += 1
                logger.debug(
                    "%s: predicted %s, actual %+.1f%% = %s",
                    event.symbol,
                    prediction.predicted_direction,
                    actual_change,
                    status.value,
                )

            if result.correct:
                await DailyStatsRepository(session).increment(now.date(), predictions_correct=result.correct)
            result.accuracy = await load_historical_accuracy(session)

        logger.info(
            "Evaluation complete: %d correct, %d incorrect, %d partial, %d expired, %d skipped; accuracy %s",
            result.correct,
            result.incorrect,
            result.partial,
            result.expired,
            result.skipped,
            f"{result.accuracy:.1%}" if result.accuracy is not None else "n/a",
        )
        return result
