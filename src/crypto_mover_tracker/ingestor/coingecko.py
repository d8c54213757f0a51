"""Async CoinGecko client for market snapshots and spot prices."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

import aiohttp

from crypto_mover_tracker.ingestor.models import CoinMarketSample, MarketSnapshot

logger = logging.getLogger(__name__)

# Constants
PUBLIC_HOST = "https://api.coingecko.com/api/v3"
PRO_HOST = "https://pro-api.coingecko.com/api/v3"
DEMO_KEY_PREFIX = "CG-"

DEFAULT_PER_PAGE = 250
DEFAULT_MAX_COINS = 1000
DEFAULT_PAGE_DELAY_SECONDS = 1.5
DEFAULT_TIMEOUT_SECONDS = 30.0

MIN_MARKET_CAP = 1_000_000
MIN_VOLUME = 100_000

SIMPLE_PRICE_BATCH_SIZE = 250


class CoinGeckoError(Exception):
    """Base exception for CoinGecko client errors."""


class CoinGeckoRateLimitError(CoinGeckoError):
    """Raised when the provider answers HTTP 429."""


class CoinGeckoClient:
    """Thin async wrapper over the CoinGecko REST API.

    Demo keys (prefixed ``CG-``) are sent to the public host with the
    ``x-cg-demo-api-key`` header; any other key is treated as a pro key.

    Example:
        >>> async with CoinGeckoClient(api_key="CG-xxx") as client:
        ...     snapshot = await client.get_snapshot(max_coins=500)
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        page_delay_seconds: float = DEFAULT_PAGE_DELAY_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_key = api_key
        self._page_delay_seconds = page_delay_seconds
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

        if api_key and not api_key.startswith(DEMO_KEY_PREFIX):
            self._base_url = PRO_HOST
            self._headers = {"x-cg-pro-api-key": api_key}
        else:
            self._base_url = PUBLIC_HOST
            self._headers = {"x-cg-demo-api-key": api_key} if api_key else {}
        self._headers["accept"] = "application/json"

        logger.info("Initialized CoinGeckoClient with host=%s", self._base_url)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    async def __aenter__(self) -> CoinGeckoClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the owned HTTP session."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(self, path: str, params: dict[str, Any]) -> Any:
        """GET a JSON document, mapping transport failures to CoinGeckoError."""
        url = f"{self._base_url}{path}"
        try:
            async with self._get_session().get(url, params=params, headers=self._headers) as resp:
                if resp.status == 429:
                    raise CoinGeckoRateLimitError("CoinGecko rate limit exceeded")
                if resp.status >= 400:
                    body = await resp.text()
                    raise CoinGeckoError(f"CoinGecko API error {resp.status}: {body[:200]}")
                return await resp.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise CoinGeckoError(f"CoinGecko request failed: {e}") from e

    async def get_market_page(self, page: int, per_page: int = DEFAULT_PER_PAGE) -> list[CoinMarketSample]:
        """Fetch one page of `/coins/markets` ordered by market cap.

        Args:
            page: 1-based page number.
            per_page: Rows per page (provider maximum is 250).

        Returns:
            Parsed samples; an empty list past the last page.
        """
        data = await self._request(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": per_page,
                "page": page,
                "sparkline": "false",
                "price_change_percentage": "1h,24h,7d",
            },
        )
        if not isinstance(data, list):
            raise CoinGeckoError(f"Unexpected /coins/markets payload: {type(data).__name__}")

        samples: list[CoinMarketSample] = []
        for row in data:
            try:
                samples.append(CoinMarketSample.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("Skipping malformed market row: %s", e)
        return samples

    async def get_snapshot(
        self, max_coins: int = DEFAULT_MAX_COINS, per_page: int = DEFAULT_PER_PAGE
    ) -> MarketSnapshot:
        """Collect a full market snapshot.

        Pages are fetched sequentially with a fixed delay until an empty
        page or `max_coins` rows. Coins below the market cap or volume
        floors are dropped.
        """
        collected: list[CoinMarketSample] = []
        page = 1
        while len(collected) < max_coins:
            if page > 1 and self._page_delay_seconds > 0:
                await asyncio.sleep(self._page_delay_seconds)
            rows = await self.get_market_page(page, per_page=per_page)
            if not rows:
                break
            collected.extend(rows)
            logger.debug("Fetched page %d (%d coins, %d total)", page, len(rows), len(collected))
            if len(rows) < per_page:
                break
            page += 1

        coins = [
            c
            for c in collected[:max_coins]
            if c.market_cap >= MIN_MARKET_CAP and c.total_volume >= MIN_VOLUME
        ]
        snapshot = MarketSnapshot.from_samples(coins, timestamp=datetime.now(UTC))
        logger.info(
            "Collected market snapshot: %d coins (%d before filters), BTC 24h %.2f%%",
            len(coins),
            len(collected[:max_coins]),
            snapshot.btc_change_24h,
        )
        return snapshot

    async def get_simple_prices(self, coin_ids: list[str]) -> dict[str, float]:
        """Fetch current USD prices for `coin_ids`.

        Coins unknown to the provider are absent from the result.
        """
        unique_ids = list(dict.fromkeys(coin_ids))
        prices: dict[str, float] = {}
        for start in range(0, len(unique_ids), SIMPLE_PRICE_BATCH_SIZE):
            batch = unique_ids[start : start + SIMPLE_PRICE_BATCH_SIZE]
            data = await self._request(
                "/simple/price",
                {"ids": ",".join(batch), "vs_currencies": "usd"},
            )
            if not isinstance(data, dict):
                raise CoinGeckoError(f"Unexpected /simple/price payload: {type(data).__name__}")
            for coin_id, quote in data.items():
                usd = quote.get("usd") if isinstance(quote, dict) else None
                if usd is not None:
                    prices[coin_id] = float(usd)
        return prices
