"""Data models for the ingestor module."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CoinMarketSample:
    """One coin's market state as reported by the market data provider."""

    coin_id: str
    symbol: str
    name: str
    current_price: float
    market_cap: float
    total_volume: float
    market_cap_rank: int | None = None
    change_1h: float | None = None
    change_24h: float | None = None
    change_7d: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CoinMarketSample":
        """Create a sample from a CoinGecko `/coins/markets` row."""
        rank = data.get("market_cap_rank")
        return cls(
            coin_id=str(data["id"]),
            symbol=str(data.get("symbol", "")).upper(),
            name=str(data.get("name", "")),
            current_price=_optional_float(data.get("current_price")) or 0.0,
            market_cap=_optional_float(data.get("market_cap")) or 0.0,
            total_volume=_optional_float(data.get("total_volume")) or 0.0,
            market_cap_rank=int(rank) if rank is not None else None,
            change_1h=_optional_float(data.get("price_change_percentage_1h_in_currency")),
            change_24h=_optional_float(
                data.get("price_change_percentage_24h_in_currency", data.get("price_change_percentage_24h"))
            ),
            change_7d=_optional_float(data.get("price_change_percentage_7d_in_currency")),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """All coins sampled in one polling pass.

    Attributes:
        coins: Samples ordered by market cap rank as returned by the provider.
        timestamp: When the pass was taken (UTC).
        btc_change_24h: Bitcoin's 24h change in percent, 0 if bitcoin is absent.
    """

    coins: tuple[CoinMarketSample, ...]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    btc_change_24h: float = 0.0

    @classmethod
    def from_samples(
        cls, coins: list[CoinMarketSample], timestamp: datetime | None = None
    ) -> "MarketSnapshot":
        """Build a snapshot, deriving the bitcoin benchmark from the samples."""
        btc = next((c for c in coins if c.coin_id == "bitcoin"), None)
        return cls(
            coins=tuple(coins),
            timestamp=timestamp or datetime.now(UTC),
            btc_change_24h=(btc.change_24h or 0.0) if btc else 0.0,
        )

    def __len__(self) -> int:
        return len(self.coins)
