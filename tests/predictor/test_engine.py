"""Tests for the prediction engine."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from crypto_mover_tracker.detector.models import HistoricalEvent, MoverEvent, MoveType
from crypto_mover_tracker.detector.movers import detect_movers
from crypto_mover_tracker.ingestor.models import CoinMarketSample, MarketSnapshot
from crypto_mover_tracker.predictor.engine import PredictionEngine
from crypto_mover_tracker.predictor.models import PredictionDirection
from crypto_mover_tracker.predictor.similarity import find_similar_events

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def make_event(magnitude: float = 15.0, market_cap: float = 500_000_000) -> MoverEvent:
    return MoverEvent(
        coin_id="xcoin",
        symbol="X",
        name="X Coin",
        move_type=MoveType.PUMP if magnitude > 0 else MoveType.DUMP,
        magnitude=magnitude,
        price=1.0,
        market_cap=market_cap,
        volume_24h=5_000_000,
        detected_at=NOW,
    )


def make_analogues(outcomes: list[float | None], magnitude: float = 15.0) -> list[HistoricalEvent]:
    return [
        HistoricalEvent(
            event_id=i,
            coin_id=f"coin{i}",
            symbol=f"C{i}",
            move_type=MoveType.PUMP if magnitude > 0 else MoveType.DUMP,
            magnitude=magnitude,
            market_cap=500_000_000,
            detected_at=NOW - timedelta(days=i + 1),
            outcome_24h=outcome,
        )
        for i, outcome in enumerate(outcomes)
    ]


@pytest.fixture
def engine() -> PredictionEngine:
    return PredictionEngine()


class TestDefaults:
    # The no-analogue default is "down" for pumps and dumps alike; pinned as observed behavior.
    @pytest.mark.parametrize("magnitude", [15.0, -15.0])
    def test_no_analogues(self, engine: PredictionEngine, magnitude: float) -> None:
        event = make_event(magnitude)
        forecast = engine.predict(event, [], historical_accuracy=0.9)
        assert forecast.direction == PredictionDirection.DOWN
        assert forecast.confidence == 0.4
        assert forecast.reasoning == (
            "No similar historical events found. "
            f"Default prediction based on typical {event.move_type.value} behavior."
        )
        assert forecast.sample_size == 0

    def test_analogues_without_outcomes(self, engine: PredictionEngine) -> None:
        forecast = engine.predict(make_event(), make_analogues([None, None, None]), historical_accuracy=None)
        assert forecast.direction == PredictionDirection.DOWN
        assert forecast.confidence == 0.5
        assert forecast.reasoning.startswith("Found 3 similar events but no outcome data yet.")


class TestForecast:
    def test_split_outcomes_give_base_confidence(self, engine: PredictionEngine) -> None:
        forecast = engine.predict(make_event(), make_analogues([5.0, -3.0]), historical_accuracy=None)
        assert forecast.direction == PredictionDirection.UP
        assert forecast.confidence == pytest.approx(0.4)

    def test_unanimous_outcomes(self, engine: PredictionEngine) -> None:
        forecast = engine.predict(make_event(), make_analogues([-2.0, -4.0, -6.0]), historical_accuracy=None)
        assert forecast.direction == PredictionDirection.DOWN
        assert forecast.confidence == pytest.approx(0.8)
        assert forecast.reasoning == "Based on 3 similar events: 0% continued up, avg 24h change: -4.0%"

    def test_flat_average_predicts_down(self, engine: PredictionEngine) -> None:
        forecast = engine.predict(make_event(), make_analogues([2.0, -2.0]), historical_accuracy=None)
        assert forecast.direction == PredictionDirection.DOWN

    def test_only_outcomes_are_counted(self, engine: PredictionEngine) -> None:
        forecast = engine.predict(make_event(), make_analogues([4.0, None, 6.0]), historical_accuracy=None)
        assert forecast.reasoning.startswith("Based on 2 similar events: 100% continued up")
        assert forecast.sample_size == 2

    def test_summaries_are_capped_at_five(self, engine: PredictionEngine) -> None:
        forecast = engine.predict(make_event(), make_analogues([1.0] * 8), historical_accuracy=None)
        assert forecast.sample_size == 5
        assert forecast.similar_events[0].coin_id == "coin0"
        assert forecast.similar_events[0].outcome == 1.0

    @pytest.mark.parametrize("accuracy", [None, 0.0, 0.5, 1.0, 5.0, -3.0])
    @pytest.mark.parametrize(
        "outcomes",
        [[], [None], [1.0], [-1.0], [1.0, -1.0], [3.0] * 20],
    )
    def test_confidence_is_clamped(
        self, engine: PredictionEngine, outcomes: list[float | None], accuracy: float | None
    ) -> None:
        forecast = engine.predict(make_event(), make_analogues(outcomes), historical_accuracy=accuracy)
        assert 0.1 <= forecast.confidence <= 0.95


class TestEndToEnd:
    def test_detect_match_and_forecast(self, engine: PredictionEngine) -> None:
        def coin(coin_id: str, change_24h: float) -> CoinMarketSample:
            return CoinMarketSample(
                coin_id=coin_id,
                symbol=coin_id.upper(),
                name=coin_id,
                current_price=1.0,
                market_cap=500_000_000,
                total_volume=5_000_000,
                change_1h=0.0,
                change_24h=change_24h,
            )

        snapshot = MarketSnapshot.from_samples([coin("bitcoin", 2.0), coin("xcoin", 15.0)], timestamp=NOW)
        events = detect_movers(snapshot)
        assert len(events) == 1
        event = events[0]
        assert event.move_type == MoveType.PUMP
        assert event.magnitude == 15.0
        assert event.btc_relative == pytest.approx(13.0)

        # 12 up (+10 each) and 8 down (-7.5 each): average +3%
        history = make_analogues([10.0] * 12 + [-7.5] * 8)
        similar = find_similar_events(event, history)
        assert len(similar) == 20

        forecast = engine.predict(event, similar, historical_accuracy=0.6)
        assert forecast.direction == PredictionDirection.UP
        assert forecast.confidence == pytest.approx(0.516)
        assert forecast.reasoning == "Based on 20 similar events: 60% continued up, avg 24h change: +3.0%"
