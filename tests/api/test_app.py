"""Tests for the read API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from crypto_mover_tracker.api.app import create_app
from crypto_mover_tracker.detector.models import MoverEvent, MoveType
from crypto_mover_tracker.storage.database import DatabaseManager
from crypto_mover_tracker.storage.repos import (
    DailyStatsRepository,
    MoverEventDTO,
    MoverEventRepository,
    PredictionDTO,
    PredictionRepository,
    ResearchReportDTO,
    ResearchReportRepository,
)


def event(coin_id: str, magnitude: float, hours_ago: float) -> MoverEvent:
    return MoverEvent(
        coin_id=coin_id,
        symbol=coin_id.upper(),
        name=coin_id.title(),
        move_type=MoveType.PUMP if magnitude > 0 else MoveType.DUMP,
        magnitude=magnitude,
        price=1.0,
        market_cap=100_000_000,
        volume_24h=5_000_000,
        metadata={"timeframe": "24h"},
        detected_at=datetime.now(UTC) - timedelta(hours=hours_ago),
    )


@pytest.fixture
async def seeded(db: DatabaseManager) -> list[MoverEventDTO]:
    """Four events (one older than a day), one report, four predictions."""
    now = datetime.now(UTC)
    async with db.get_async_session() as session:
        events = await MoverEventRepository(session).insert_many(
            [
                event("pump", 30.0, 1),
                event("dump", -40.0, 2),
                event("small", 12.0, 3),
                event("old", 60.0, 48),
            ]
        )
        await ResearchReportRepository(session).insert(
            ResearchReportDTO(
                mover_event_id=events[0].id,
                full_analysis="{}",
                catalyst="Binance listing",
                sentiment_label="bullish",
                key_factors=["listing"],
            )
        )
        predictions = PredictionRepository(session)
        for status in ("correct", "partial", "incorrect", "pending"):
            stored = await predictions.insert(
                PredictionDTO(
                    coin_id="pump",
                    mover_event_id=events[0].id,
                    predicted_direction="down",
                    confidence=0.6,
                    reasoning="test",
                    predicted_at=now - timedelta(hours=30),
                )
            )
            if status != "pending":
                assert stored.id is not None
                await predictions.mark_evaluated(stored.id, status=status, actual_change=1.0, evaluated_at=now)
        await DailyStatsRepository(session).increment(now.date(), total_movers=3, pumps=2, dumps=1)
    return events


@pytest.fixture
async def client(db: DatabaseManager) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=create_app(db))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestMovers:
    @pytest.mark.asyncio
    async def test_default_window_ranked_by_magnitude(
        self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]
    ) -> None:
        resp = await client.get("/movers")
        assert resp.status_code == 200
        body = resp.json()
        assert [m["coin_id"] for m in body["movers"]] == ["dump", "pump", "small"]
        assert body["total"] == 3
        assert body["params"] == {"hours": 24, "direction": "both", "limit": 20}
        assert body["movers"][0]["magnitude"] == -40.0

    @pytest.mark.asyncio
    async def test_direction_filter(self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]) -> None:
        up = (await client.get("/movers", params={"direction": "up"})).json()
        down = (await client.get("/movers", params={"direction": "down"})).json()
        assert [m["coin_id"] for m in up["movers"]] == ["pump", "small"]
        assert [m["coin_id"] for m in down["movers"]] == ["dump"]

    @pytest.mark.asyncio
    async def test_limit_takes_most_recent(self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]) -> None:
        body = (await client.get("/movers", params={"limit": 2})).json()
        assert [m["coin_id"] for m in body["movers"]] == ["dump", "pump"]

    @pytest.mark.asyncio
    async def test_wider_window(self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]) -> None:
        body = (await client.get("/movers", params={"hours": 72})).json()
        assert body["total"] == 4
        assert body["movers"][0]["coin_id"] == "old"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [{"hours": 0}, {"limit": 0}, {"limit": 500}, {"direction": "sideways"}],
    )
    async def test_invalid_params(self, client: httpx.AsyncClient, params: dict[str, object]) -> None:
        resp = await client.get("/movers", params=params)
        assert resp.status_code == 422


class TestResearch:
    @pytest.mark.asyncio
    async def test_found(self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]) -> None:
        resp = await client.get(f"/research/{seeded[0].id}")
        assert resp.status_code == 200
        report = resp.json()["report"]
        assert report["mover_event_id"] == seeded[0].id
        assert report["catalyst"] == "Binance listing"
        assert report["key_factors"] == ["listing"]

    @pytest.mark.asyncio
    async def test_missing(self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]) -> None:
        resp = await client.get(f"/research/{seeded[1].id}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Research report not found"}


class TestStats:
    @pytest.mark.asyncio
    async def test_summary(self, client: httpx.AsyncClient, seeded: list[MoverEventDTO]) -> None:
        resp = await client.get("/stats")
        assert resp.status_code == 200
        body = resp.json()

        assert body["period"]["days"] == 7
        assert body["summary"]["total_movers"] == 4
        assert body["summary"]["research_reports"] == 1
        # (1 correct + 0.5 partial) / 3 evaluated; pending excluded
        assert body["summary"]["prediction_accuracy"] == pytest.approx(0.5)
        assert body["predictions"] == {"total": 3, "correct": 1, "incorrect": 1, "partial": 1}
        assert body["daily_stats"][0]["total_movers"] == 3
        assert body["daily_stats"][0]["pumps"] == 2

    @pytest.mark.asyncio
    async def test_empty_database(self, client: httpx.AsyncClient) -> None:
        body = (await client.get("/stats", params={"days": 1})).json()
        assert body["summary"] == {"total_movers": 0, "research_reports": 0, "prediction_accuracy": None}
        assert body["predictions"]["total"] == 0
        assert body["daily_stats"] == []
