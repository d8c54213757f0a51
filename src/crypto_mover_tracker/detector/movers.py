"""Price mover detection.

This module provides the MoverDetector class that turns a market snapshot
into a ranked list of mover events.
"""

import logging
from dataclasses import dataclass

from crypto_mover_tracker.detector.models import MoverEvent, MoveType, Severity
from crypto_mover_tracker.ingestor.models import CoinMarketSample, MarketSnapshot

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_PRICE_THRESHOLD = 0.10  # 10% over 24h, 5% over 1h
DEFAULT_VOLUME_THRESHOLD = 2.0  # 2x baseline volume (not applied yet)

# The 1h window uses half of the 24h threshold
ONE_HOUR_THRESHOLD_FACTOR = 0.5

SEVERITY_EXTREME = 50.0
SEVERITY_MAJOR = 25.0
SEVERITY_SIGNIFICANT = 15.0


@dataclass(frozen=True)
class MoverDetectorConfig:
    """Detection thresholds.

    Attributes:
        price_threshold: 24h threshold as a fraction (0.10 = 10%).
        volume_threshold: Volume spike multiple. Carried for configuration
            parity but not applied: spike detection needs historical volume
            baselines, which are not collected.
    """

    price_threshold: float = DEFAULT_PRICE_THRESHOLD
    volume_threshold: float = DEFAULT_VOLUME_THRESHOLD

    @property
    def threshold_24h_percent(self) -> float:
        return self.price_threshold * 100

    @property
    def threshold_1h_percent(self) -> float:
        return self.threshold_24h_percent * ONE_HOUR_THRESHOLD_FACTOR


class MoverDetector:
    """Detector for coins with outsized price changes.

    Each coin is checked independently:
    - 24h change at or above the threshold: one event on the 24h timeframe
    - otherwise 1h change at or above half the threshold: one 1h event

    Events are returned strongest first (by absolute magnitude). Equal
    magnitudes keep snapshot order.

    Example:
        ```python
        detector = MoverDetector(MoverDetectorConfig(price_threshold=0.10))
        for event in detector.detect(snapshot):
            print(event.symbol, event.magnitude)
        ```
    """

    def __init__(self, config: MoverDetectorConfig | None = None) -> None:
        self._config = config or MoverDetectorConfig()
        logger.info(
            "Volume spike detection disabled (threshold %.1fx): no historical volume baseline",
            self._config.volume_threshold,
        )

    @property
    def config(self) -> MoverDetectorConfig:
        return self._config

    def detect(self, snapshot: MarketSnapshot) -> list[MoverEvent]:
        """Detect movers in a snapshot.

        Args:
            snapshot: One polling pass of market samples.

        Returns:
            Mover events sorted by descending absolute magnitude.
        """
        events: list[MoverEvent] = []
        for coin in snapshot.coins:
            event = self._check_coin(coin, snapshot)
            if event is not None:
                events.append(event)

        # sorted() is stable, so ties keep snapshot order
        events = sorted(events, key=lambda e: abs(e.magnitude), reverse=True)
        logger.debug("Detected %d movers in %d coins", len(events), len(snapshot.coins))
        return events

    def _check_coin(self, coin: CoinMarketSample, snapshot: MarketSnapshot) -> MoverEvent | None:
        change_24h = coin.change_24h or 0.0
        change_1h = coin.change_1h or 0.0
        btc_relative = change_24h - snapshot.btc_change_24h

        if abs(change_24h) >= self._config.threshold_24h_percent:
            magnitude = change_24h
            metadata = {"timeframe": "24h", "change_1h": coin.change_1h, "change_7d": coin.change_7d}
        elif abs(change_1h) >= self._config.threshold_1h_percent:
            magnitude = change_1h
            metadata = {"timeframe": "1h", "change_24h": coin.change_24h}
        else:
            return None

        return MoverEvent(
            coin_id=coin.coin_id,
            symbol=coin.symbol,
            name=coin.name,
            move_type=MoveType.PUMP if magnitude > 0 else MoveType.DUMP,
            magnitude=magnitude,
            price=coin.current_price,
            market_cap=coin.market_cap,
            volume_24h=coin.total_volume,
            volume_ratio=None,
            btc_relative=btc_relative,
            rank=coin.market_cap_rank,
            metadata=metadata,
            detected_at=snapshot.timestamp,
        )


def detect_movers(snapshot: MarketSnapshot, config: MoverDetectorConfig | None = None) -> list[MoverEvent]:
    """Convenience wrapper around MoverDetector.detect."""
    return MoverDetector(config).detect(snapshot)


def get_move_severity(magnitude: float) -> Severity:
    """Classify a move by its absolute magnitude (percent)."""
    size = abs(magnitude)
    if size >= SEVERITY_EXTREME:
        return Severity.EXTREME
    if size >= SEVERITY_MAJOR:
        return Severity.MAJOR
    if size >= SEVERITY_SIGNIFICANT:
        return Severity.SIGNIFICANT
    return Severity.NOTABLE
