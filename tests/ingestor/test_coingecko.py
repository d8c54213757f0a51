"""Tests for the CoinGecko client."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from crypto_mover_tracker.ingestor.coingecko import (
    PRO_HOST,
    PUBLIC_HOST,
    CoinGeckoClient,
    CoinGeckoError,
    CoinGeckoRateLimitError,
)


def market_row(coin_id: str, *, market_cap: float = 50_000_000, volume: float = 1_000_000) -> dict[str, Any]:
    return {
        "id": coin_id,
        "symbol": coin_id[:3],
        "name": coin_id.title(),
        "current_price": 1.0,
        "market_cap": market_cap,
        "market_cap_rank": 1,
        "total_volume": volume,
        "price_change_percentage_24h_in_currency": 1.0,
    }


def mock_response(status: int, *, json_data: Any = None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data)
    resp.text = AsyncMock(return_value=text)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


class TestHostSelection:
    def test_no_key_uses_public_host(self) -> None:
        client = CoinGeckoClient()
        assert client.base_url == PUBLIC_HOST
        assert "x-cg-demo-api-key" not in client.headers

    def test_demo_key_uses_public_host(self) -> None:
        client = CoinGeckoClient(api_key="CG-demo")
        assert client.base_url == PUBLIC_HOST
        assert client.headers["x-cg-demo-api-key"] == "CG-demo"

    def test_pro_key_uses_pro_host(self) -> None:
        client = CoinGeckoClient(api_key="pro-key")
        assert client.base_url == PRO_HOST
        assert client.headers["x-cg-pro-api-key"] == "pro-key"


class TestRequest:
    @pytest.mark.asyncio
    async def test_rate_limit_raises(self) -> None:
        session = MagicMock()
        session.get.return_value = mock_response(429)
        client = CoinGeckoClient(session=session)
        with pytest.raises(CoinGeckoRateLimitError):
            await client.get_market_page(1)

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        session = MagicMock()
        session.get.return_value = mock_response(500, text="server error")
        client = CoinGeckoClient(session=session)
        with pytest.raises(CoinGeckoError, match="500"):
            await client.get_market_page(1)

    @pytest.mark.asyncio
    async def test_unexpected_payload_raises(self) -> None:
        session = MagicMock()
        session.get.return_value = mock_response(200, json_data={"error": "bad"})
        client = CoinGeckoClient(session=session)
        with pytest.raises(CoinGeckoError):
            await client.get_market_page(1)

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self) -> None:
        session = MagicMock()
        session.close = AsyncMock()
        client = CoinGeckoClient(session=session)
        await client.aclose()
        session.close.assert_not_awaited()


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_paginates_until_short_page(self) -> None:
        client = CoinGeckoClient(page_delay_seconds=0)
        pages = [
            [market_row(f"coin{i}") for i in range(2)],
            [market_row("coin2")],
        ]
        with patch.object(client, "_request", new=AsyncMock(side_effect=pages)) as request:
            snapshot = await client.get_snapshot(max_coins=10, per_page=2)
        assert request.await_count == 2
        assert [c.coin_id for c in snapshot.coins] == ["coin0", "coin1", "coin2"]

    @pytest.mark.asyncio
    async def test_stops_at_max_coins(self) -> None:
        client = CoinGeckoClient(page_delay_seconds=0)
        page = [market_row(f"coin{i}") for i in range(2)]
        with patch.object(client, "_request", new=AsyncMock(return_value=page)) as request:
            snapshot = await client.get_snapshot(max_coins=3, per_page=2)
        assert request.await_count == 2
        assert len(snapshot) == 3

    @pytest.mark.asyncio
    async def test_filters_illiquid_coins(self) -> None:
        client = CoinGeckoClient(page_delay_seconds=0)
        page = [
            market_row("ok"),
            market_row("tiny", market_cap=999_999),
            market_row("thin", volume=99_999),
        ]
        with patch.object(client, "_request", new=AsyncMock(return_value=page)):
            snapshot = await client.get_snapshot(max_coins=10, per_page=250)
        assert [c.coin_id for c in snapshot.coins] == ["ok"]

    @pytest.mark.asyncio
    async def test_waits_between_pages(self) -> None:
        client = CoinGeckoClient(page_delay_seconds=1.5)
        pages = [[market_row("a")], []]
        with (
            patch.object(client, "_request", new=AsyncMock(side_effect=pages)),
            patch("crypto_mover_tracker.ingestor.coingecko.asyncio.sleep", new=AsyncMock()) as sleep,
        ):
            await client.get_snapshot(max_coins=10, per_page=1)
        sleep.assert_awaited_once_with(1.5)


class TestSimplePrices:
    @pytest.mark.asyncio
    async def test_returns_usd_prices_for_known_coins(self) -> None:
        client = CoinGeckoClient()
        payload = {"bitcoin": {"usd": 65000}, "ethereum": {"usd": 3200.5}, "ghost": {}}
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)) as request:
            prices = await client.get_simple_prices(["bitcoin", "ethereum", "ghost", "bitcoin"])
        assert prices == {"bitcoin": 65000.0, "ethereum": 3200.5}
        params = request.await_args.args[1]
        assert params["ids"] == "bitcoin,ethereum,ghost"

    @pytest.mark.asyncio
    async def test_batches_large_requests(self) -> None:
        client = CoinGeckoClient()
        ids = [f"coin{i}" for i in range(260)]
        with patch.object(client, "_request", new=AsyncMock(return_value={})) as request:
            assert await client.get_simple_prices(ids) == {}
        assert request.await_count == 2
