"""Data models for the predictor module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from crypto_mover_tracker.detector.models import MoveType


class PredictionDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class PredictionStatus(str, Enum):
    """Lifecycle of a stored prediction: PENDING moves once to a terminal state."""

    PENDING = "pending"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    PARTIAL = "partial"
    EXPIRED = "expired"


class MarketCapTier(str, Enum):
    MICRO = "micro"
    SMALL = "small"
    MID = "mid"
    LARGE = "large"


class MoveCandidate(Protocol):
    """Fields of a mover event needed for analogue matching and forecasting."""

    @property
    def move_type(self) -> MoveType: ...

    @property
    def magnitude(self) -> float: ...

    @property
    def market_cap(self) -> float: ...


@dataclass(frozen=True)
class SimilarEventSummary:
    """Analogue shown alongside a forecast for auditability."""

    coin_id: str
    symbol: str
    magnitude: float
    outcome: float
    date: datetime


@dataclass(frozen=True)
class Forecast:
    """Directional forecast produced by the PredictionEngine.

    Attributes:
        direction: Expected direction over the prediction horizon.
        confidence: Calibrated confidence, always within [0.1, 0.95].
        reasoning: Human readable explanation.
        similar_events: Up to five analogues that had outcomes.
    """

    direction: PredictionDirection
    confidence: float
    reasoning: str
    similar_events: tuple[SimilarEventSummary, ...] = field(default_factory=tuple)

    @property
    def sample_size(self) -> int:
        return len(self.similar_events)
