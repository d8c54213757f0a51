"""Tests for prediction evaluation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from crypto_mover_tracker.detector.models import MoverEvent, MoveType
from crypto_mover_tracker.predictor.evaluator import (
    AccuracyEvaluator,
    accuracy_from_counts,
    classify_outcome,
    compute_accuracy,
    compute_actual_change,
)
from crypto_mover_tracker.predictor.models import PredictionDirection, PredictionStatus
from crypto_mover_tracker.storage.database import DatabaseManager
from crypto_mover_tracker.storage.repos import (
    DailyStatsRepository,
    MoverEventRepository,
    PredictionDTO,
    PredictionRepository,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class TestClassifyOutcome:
    @pytest.mark.parametrize(
        ("direction", "change", "expected"),
        [
            (PredictionDirection.UP, 4.0, PredictionStatus.CORRECT),
            (PredictionDirection.DOWN, -4.0, PredictionStatus.CORRECT),
            (PredictionDirection.DOWN, 1.5, PredictionStatus.PARTIAL),
            (PredictionDirection.DOWN, 3.0, PredictionStatus.INCORRECT),
            (PredictionDirection.UP, -1.99, PredictionStatus.PARTIAL),
            (PredictionDirection.UP, -2.0, PredictionStatus.INCORRECT),
            (PredictionDirection.DOWN, 0.0, PredictionStatus.CORRECT),
            (PredictionDirection.UP, 0.0, PredictionStatus.PARTIAL),
        ],
    )
    def test_classification(
        self, direction: PredictionDirection, change: float, expected: PredictionStatus
    ) -> None:
        assert classify_outcome(direction, change) == expected

    def test_accepts_string_direction(self) -> None:
        assert classify_outcome("up", 5.0) == PredictionStatus.CORRECT

    def test_custom_partial_band(self) -> None:
        assert classify_outcome("down", 3.0, partial_band=5.0) == PredictionStatus.PARTIAL


class TestAccuracyHelpers:
    def test_actual_change(self) -> None:
        assert compute_actual_change(100.0, 110.0) == pytest.approx(10.0)
        assert compute_actual_change(2.0, 1.0) == pytest.approx(-50.0)

    def test_actual_change_requires_positive_price(self) -> None:
        with pytest.raises(ValueError):
            compute_actual_change(0.0, 1.0)

    def test_accuracy_gives_half_credit_for_partial(self) -> None:
        assert compute_accuracy(correct=6, partial=2, total=10) == pytest.approx(0.7)

    def test_accuracy_without_data(self) -> None:
        assert compute_accuracy(0, 0, 0) is None
        assert accuracy_from_counts({"pending": 4, "expired": 2}) is None

    def test_accuracy_from_counts_ignores_pending_and_expired(self) -> None:
        counts = {"correct": 3, "partial": 2, "incorrect": 5, "pending": 7, "expired": 9}
        assert accuracy_from_counts(counts) == pytest.approx(0.4)


async def seed_prediction(
    db: DatabaseManager,
    *,
    coin_id: str = "xcoin",
    direction: str = "up",
    price: float = 100.0,
    predicted_at: datetime = NOW - timedelta(hours=25),
    with_event: bool = True,
) -> tuple[int | None, int]:
    async with db.get_async_session() as session:
        event_id: int | None = None
        if with_event:
            stored = await MoverEventRepository(session).insert_many(
                [
                    MoverEvent(
                        coin_id=coin_id,
                        symbol=coin_id.upper(),
                        name=coin_id,
                        move_type=MoveType.PUMP,
                        magnitude=15.0,
                        price=price,
                        market_cap=500_000_000,
                        volume_24h=5_000_000,
                        metadata={"timeframe": "24h"},
                        detected_at=predicted_at,
                    )
                ]
            )
            event_id = stored[0].id
        prediction = await PredictionRepository(session).insert(
            PredictionDTO(
                coin_id=coin_id,
                mover_event_id=event_id,
                predicted_direction=direction,
                confidence=0.6,
                reasoning="test",
                predicted_at=predicted_at,
            )
        )
    assert prediction.id is not None
    return event_id, prediction.id


def make_evaluator(db: DatabaseManager, prices: dict[str, float]) -> tuple[AccuracyEvaluator, AsyncMock]:
    source = AsyncMock()
    source.get_simple_prices = AsyncMock(return_value=prices)
    return AccuracyEvaluator(db.get_async_session, source, horizon_hours=24, expiry_hours=72), source


class TestAccuracyEvaluator:
    @pytest.mark.asyncio
    async def test_scores_prediction_and_records_outcome(self, db: DatabaseManager) -> None:
        event_id, prediction_id = await seed_prediction(db, direction="up", price=100.0)
        evaluator, source = make_evaluator(db, {"xcoin": 110.0})

        result = await evaluator.evaluate(now=NOW)

        assert result.due == 1
        assert result.correct == 1
        assert result.evaluated == 1
        assert result.accuracy == pytest.approx(1.0)
        source.get_simple_prices.assert_awaited_once_with(["xcoin"])

        async with db.get_async_session() as session:
            prediction = await PredictionRepository(session).get(prediction_id)
            assert event_id is not None
            event = await MoverEventRepository(session).get(event_id)
            stats = await DailyStatsRepository(session).get(NOW.date())
        assert prediction is not None and prediction.status == "correct"
        assert prediction.actual_change == pytest.approx(10.0)
        assert prediction.evaluated_at == NOW
        assert event is not None and event.outcome_24h == pytest.approx(10.0)
        assert stats is not None and stats.predictions_correct == 1

    @pytest.mark.asyncio
    async def test_partial_and_incorrect(self, db: DatabaseManager) -> None:
        await seed_prediction(db, coin_id="partial", direction="down", price=100.0)
        await seed_prediction(db, coin_id="wrong", direction="down", price=100.0)
        evaluator, _ = make_evaluator(db, {"partial": 101.5, "wrong": 103.0})

        result = await evaluator.evaluate(now=NOW)

        assert result.partial == 1
        assert result.incorrect == 1
        assert result.accuracy == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, db: DatabaseManager) -> None:
        await seed_prediction(db)
        evaluator, source = make_evaluator(db, {"xcoin": 90.0})

        first = await evaluator.evaluate(now=NOW)
        second = await evaluator.evaluate(now=NOW + timedelta(hours=1))

        assert first.incorrect == 1
        assert second.due == 0
        assert second.evaluated == 0
        assert second.accuracy == first.accuracy
        assert source.get_simple_prices.await_count == 1

    @pytest.mark.asyncio
    async def test_predictions_inside_horizon_are_not_due(self, db: DatabaseManager) -> None:
        await seed_prediction(db, predicted_at=NOW - timedelta(hours=23))
        evaluator, source = make_evaluator(db, {"xcoin": 120.0})

        result = await evaluator.evaluate(now=NOW)

        assert result.due == 0
        source.get_simple_prices.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_price_keeps_prediction_pending(self, db: DatabaseManager) -> None:
        _, prediction_id = await seed_prediction(db)
        evaluator, _ = make_evaluator(db, {})

        result = await evaluator.evaluate(now=NOW)

        assert result.skipped == 1
        async with db.get_async_session() as session:
            prediction = await PredictionRepository(session).get(prediction_id)
        assert prediction is not None and prediction.status == "pending"

    @pytest.mark.asyncio
    async def test_missing_price_expires_after_grace_period(self, db: DatabaseManager) -> None:
        _, prediction_id = await seed_prediction(db, predicted_at=NOW - timedelta(hours=24 + 72))
        evaluator, _ = make_evaluator(db, {})

        result = await evaluator.evaluate(now=NOW)

        assert result.expired == 1
        assert result.accuracy is None
        async with db.get_async_session() as session:
            prediction = await PredictionRepository(session).get(prediction_id)
        assert prediction is not None and prediction.status == "expired"

    @pytest.mark.asyncio
    async def test_prediction_without_event_expires(self, db: DatabaseManager) -> None:
        _, prediction_id = await seed_prediction(db, with_event=False)
        evaluator, _ = make_evaluator(db, {"xcoin": 100.0})

        result = await evaluator.evaluate(now=NOW)

        assert result.expired == 1
        async with db.get_async_session() as session:
            prediction = await PredictionRepository(session).get(prediction_id)
        assert prediction is not None and prediction.status == "expired"

    @pytest.mark.asyncio
    async def test_prediction_without_id_is_skipped(self, db: DatabaseManager) -> None:
        unsaved = PredictionDTO(
            coin_id="xcoin",
            predicted_direction="up",
            confidence=0.6,
            reasoning="test",
            predicted_at=NOW - timedelta(hours=25),
        )
        evaluator, _ = make_evaluator(db, {"xcoin": 110.0})

        with patch.object(PredictionRepository, "list_due", AsyncMock(return_value=[unsaved])):
            result = await evaluator.evaluate(now=NOW)

        assert result.due == 1
        assert result.skipped == 1
        assert result.evaluated == 0
        assert result.expired == 0
