"""Data models for the detector module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class MoveType(str, Enum):
    """Kind of market move.

    Only PUMP and DUMP are emitted today; the others are reserved for
    detectors that need volume baselines or chart levels.
    """

    PUMP = "pump"
    DUMP = "dump"
    VOLUME_SPIKE = "volume_spike"
    BREAKOUT = "breakout"
    BREAKDOWN = "breakdown"


class Severity(str, Enum):
    """Display severity of a move, derived from its absolute magnitude."""

    NOTABLE = "notable"
    SIGNIFICANT = "significant"
    MAJOR = "major"
    EXTREME = "extreme"


@dataclass(frozen=True)
class MoverEvent:
    """A coin whose price change crossed the detection threshold.

    Attributes:
        coin_id: Provider coin identifier (e.g. ``"bitcoin"``).
        symbol: Ticker symbol, upper-cased.
        name: Display name.
        move_type: PUMP for positive magnitude, DUMP otherwise.
        magnitude: Signed percent change that triggered the event.
        price: Price at detection (USD).
        market_cap: Market cap at detection (USD).
        volume_24h: 24h volume at detection (USD).
        volume_ratio: Volume over baseline; None until baselines exist.
        btc_relative: 24h change minus bitcoin's 24h change.
        rank: Market cap rank.
        metadata: Timeframe and auxiliary changes.
        detected_at: Snapshot timestamp.
    """

    coin_id: str
    symbol: str
    name: str
    move_type: MoveType
    magnitude: float
    price: float
    market_cap: float
    volume_24h: float
    volume_ratio: float | None = None
    btc_relative: float | None = None
    rank: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def timeframe(self) -> str:
        """Return ``"24h"`` or ``"1h"``."""
        return str(self.metadata.get("timeframe", "24h"))

    @property
    def is_pump(self) -> bool:
        return self.move_type == MoveType.PUMP


@dataclass(frozen=True)
class HistoricalEvent:
    """A past mover event, optionally enriched with its realized outcome."""

    event_id: int
    coin_id: str
    symbol: str
    move_type: MoveType
    magnitude: float
    market_cap: float
    detected_at: datetime
    outcome_24h: float | None = None

    @property
    def has_outcome(self) -> bool:
        return self.outcome_24h is not None
