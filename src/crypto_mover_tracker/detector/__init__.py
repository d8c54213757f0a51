"""Mover detection layer - Price move identification."""

from crypto_mover_tracker.detector.models import HistoricalEvent, MoverEvent, MoveType, Severity
from crypto_mover_tracker.detector.movers import (
    MoverDetector,
    MoverDetectorConfig,
    detect_movers,
    get_move_severity,
)

__all__ = [
    "HistoricalEvent",
    "MoveType",
    "MoverDetector",
    "MoverDetectorConfig",
    "MoverEvent",
    "Severity",
    "detect_movers",
    "get_move_severity",
]
