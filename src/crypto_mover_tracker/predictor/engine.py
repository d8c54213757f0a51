"""Directional forecasting from historical analogues.

The PredictionEngine turns the outcomes of similar past moves into a
direction and a calibrated confidence. Without usable analogues it falls
back to a flat ``down`` default for both pumps and dumps.
"""

import logging
from collections.abc import Sequence

from crypto_mover_tracker.detector.models import HistoricalEvent
from crypto_mover_tracker.predictor.models import (
    Forecast,
    MoveCandidate,
    PredictionDirection,
    SimilarEventSummary,
)

logger = logging.getLogger(__name__)

DEFAULT_DIRECTION = PredictionDirection.DOWN
NO_ANALOGUE_CONFIDENCE = 0.4
NO_OUTCOME_CONFIDENCE = 0.5

BASE_CONFIDENCE = 0.4
CONSISTENCY_WEIGHT = 0.4
MODEL_WEIGHT = 0.7
ACCURACY_WEIGHT = 0.3

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
MAX_SUMMARY_EVENTS = 5


def _clamp_confidence(value: float) -> float:
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, value))


class PredictionEngine:
    """Forecast the next-horizon direction of a mover.

    Confidence is built from how consistently the analogues moved:
    ``0.4 + |positive_ratio - 0.5| * 2 * 0.4`` (0.4 when split evenly, 0.8
    when unanimous), then blended 70/30 with the tracker's historical
    accuracy when one is available, and clamped to [0.1, 0.95].

    Example:
        ```python
        engine = PredictionEngine()
        similar = find_similar_events(event, history)
        forecast = engine.predict(event, similar, historical_accuracy=0.6)
        ```
    """

    def predict(
        self,
        candidate: MoveCandidate,
        similar: Sequence[HistoricalEvent],
        historical_accuracy: float | None,
    ) -> Forecast:
        """Produce a forecast for `candidate`.

        Args:
            candidate: The event being forecast.
            similar: Analogues from find_similar_events.
            historical_accuracy: Running accuracy in [0, 1], or None.

        Returns:
            Forecast with clamped confidence and up to five analogues.
        """
        move_type = candidate.move_type.value

        if not similar:
            return Forecast(
                direction=DEFAULT_DIRECTION,
                confidence=NO_ANALOGUE_CONFIDENCE,
                reasoning=(
                    "No similar historical events found. "
                    f"Default prediction based on typical {move_type} behavior."
                ),
            )

        with_outcome = [e for e in similar if e.outcome_24h is not None]
        if not with_outcome:
            return Forecast(
                direction=DEFAULT_DIRECTION,
                confidence=_clamp_confidence(NO_OUTCOME_CONFIDENCE),
                reasoning=(
                    f"Found {len(similar)} similar events but no outcome data yet. "
                    "Using pattern-based prediction."
                ),
            )

        outcomes = [float(e.outcome_24h) for e in with_outcome if e.outcome_24h is not None]
        avg_outcome = sum(outcomes) / len(outcomes)
        positive_ratio = sum(1 for o in outcomes if o > 0) / len(outcomes)

        direction = PredictionDirection.UP if avg_outcome > 0 else PredictionDirection.DOWN
        consistency = abs(positive_ratio - 0.5) * 2
        confidence = BASE_CONFIDENCE + consistency * CONSISTENCY_WEIGHT
        if historical_accuracy is not None:
            confidence = confidence * MODEL_WEIGHT + historical_accuracy * ACCURACY_WEIGHT

        sign = "+" if avg_outcome > 0 else ""
        reasoning = (
            f"Based on {len(outcomes)} similar events: "
            f"{positive_ratio * 100:.0f}% continued up, "
            f"avg 24h change: {sign}{avg_outcome:.1f}%"
        )

        forecast = Forecast(
            direction=direction,
            confidence=_clamp_confidence(confidence),
            reasoning=reasoning,
            similar_events=tuple(
                SimilarEventSummary(
                    coin_id=e.coin_id,
                    symbol=e.symbol,
                    magnitude=e.magnitude,
                    outcome=float(e.outcome_24h or 0.0),
                    date=e.detected_at,
                )
                for e in with_outcome[:MAX_SUMMARY_EVENTS]
            ),
        )
        logger.debug(
            "Forecast %s %s (confidence %.3f, %d analogues)",
            move_type,
            direction.value,
            forecast.confidence,
            len(outcomes),
        )
        return forecast
