"""Data ingestion layer - CoinGecko market snapshots."""

from crypto_mover_tracker.ingestor.coingecko import (
    CoinGeckoClient,
    CoinGeckoError,
    CoinGeckoRateLimitError,
)
from crypto_mover_tracker.ingestor.models import CoinMarketSample, MarketSnapshot

__all__ = [
    "CoinGeckoClient",
    "CoinGeckoError",
    "CoinGeckoRateLimitError",
    "CoinMarketSample",
    "MarketSnapshot",
]
