"""Prediction layer - Analogue matching, forecasting and evaluation."""

from crypto_mover_tracker.predictor.engine import PredictionEngine
from crypto_mover_tracker.predictor.evaluator import (
    AccuracyEvaluator,
    EvaluationResult,
    classify_outcome,
    compute_accuracy,
    compute_actual_change,
    load_historical_accuracy,
)
from crypto_mover_tracker.predictor.models import (
    Forecast,
    MarketCapTier,
    PredictionDirection,
    PredictionStatus,
    SimilarEventSummary,
)
from crypto_mover_tracker.predictor.similarity import find_similar_events, get_market_cap_tier

__all__ = [
    "AccuracyEvaluator",
    "EvaluationResult",
    "Forecast",
    "MarketCapTier",
    "PredictionDirection",
    "PredictionEngine",
    "PredictionStatus",
    "SimilarEventSummary",
    "classify_outcome",
    "compute_accuracy",
    "compute_actual_change",
    "find_similar_events",
    "get_market_cap_tier",
    "load_historical_accuracy",
]
