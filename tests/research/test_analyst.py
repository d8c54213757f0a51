"""Tests for LLM catalyst research."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from crypto_mover_tracker.research.analyst import (
    ResearchAnalyst,
    ResearchError,
    ResearchParseError,
    build_context,
    parse_research_response,
    strip_code_fence,
)
from crypto_mover_tracker.research.news import NewsArticle, parse_articles
from crypto_mover_tracker.storage.repos import MoverEventDTO

ANALYSIS = {
    "catalyst": "Binance listing announcement",
    "catalyst_confidence": 0.8,
    "sentiment": {"label": "bullish", "score": 0.65, "reasoning": "Listing demand"},
    "key_factors": ["listing", "volume surge"],
    "risks": ["sell the news"],
    "continuation_probability": 0.4,
    "summary": "Listing drove the move.",
    "recommended_action": "Watch",
}


def make_event() -> MoverEventDTO:
    return MoverEventDTO(
        id=11,
        coin_id="xcoin",
        symbol="XCN",
        name="X Coin",
        move_type="pump",
        magnitude=32.5,
        price=0.042,
        market_cap=250_000_000,
        volume_24h=40_000_000,
        detected_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        rank=180,
    )


def make_response(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=900, output_tokens=300),
    )


def make_client(response: object = None, *, side_effect: object = None) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response, side_effect=side_effect)
    client.close = AsyncMock()
    return client


class TestParsing:
    def test_strip_code_fence(self) -> None:
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'

    def test_parse_full_response(self) -> None:
        result = parse_research_response(json.dumps(ANALYSIS))
        assert result.catalyst == "Binance listing announcement"
        assert result.sentiment_label == "bullish"
        assert result.sentiment_score == 0.65
        assert result.key_factors == ["listing", "volume surge"]
        assert result.sentiment_display == "bullish (65%)"

    def test_parse_fenced_response_with_missing_fields(self) -> None:
        result = parse_research_response('```json\n{"catalyst": "Unknown"}\n```')
        assert result.catalyst == "Unknown"
        assert result.sentiment_label == "neutral"
        assert result.sentiment_score is None
        assert result.risks == []

    @pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"summary": "no catalyst"}'])
    def test_malformed_response_raises(self, text: str) -> None:
        with pytest.raises(ResearchParseError):
            parse_research_response(text)

    def test_to_report_keeps_raw_analysis(self) -> None:
        result = parse_research_response(json.dumps(ANALYSIS))
        result.news_articles = [NewsArticle(title="Listed", source="CoinDesk", published_at="2026-03-01")]
        report = result.to_report(11)
        assert report.mover_event_id == 11
        assert json.loads(report.full_analysis) == ANALYSIS
        assert report.news_summary == "Listing drove the move."
        assert report.news_articles == [{"title": "Listed", "source": "CoinDesk", "published_at": "2026-03-01"}]


class TestContext:
    def test_context_lists_event_and_articles(self) -> None:
        context = build_context(make_event(), [NewsArticle("Listed on Binance", "CoinDesk", "2026-03-01")])
        assert "**Coin**: XCN (X Coin)" in context
        assert "**Magnitude**: +32.50%" in context
        assert "Listed on Binance" in context

    def test_context_without_news(self) -> None:
        assert "No recent news articles found" in build_context(make_event(), [])

    def test_parse_articles(self) -> None:
        data = {
            "results": [
                {"title": "One", "source": {"title": "Src"}, "published_at": "t1"},
                {"title": "Two", "published_at": "t2"},
                "junk",
            ]
        }
        assert parse_articles(data) == [
            NewsArticle("One", "Src", "t1"),
            NewsArticle("Two", "Unknown", "t2"),
        ]
        assert parse_articles(data, limit=1) == [NewsArticle("One", "Src", "t1")]
        assert parse_articles(None) == []


class TestResearchAnalyst:
    @pytest.mark.asyncio
    async def test_analyze(self) -> None:
        client = make_client(make_response(json.dumps(ANALYSIS)))
        news = MagicMock()
        news.fetch_news = AsyncMock(return_value=[NewsArticle("Listed", "CoinDesk", "2026-03-01")])
        analyst = ResearchAnalyst(client, model="test-model", max_tokens=500, news_client=news)

        result = await analyst.analyze(make_event())

        assert result.catalyst == "Binance listing announcement"
        assert result.tokens_used == 1200
        assert len(result.news_articles) == 1
        news.fetch_news.assert_awaited_once_with("XCN")
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 500
        assert "Listed" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_unparseable_answer_raises_parse_error(self) -> None:
        analyst = ResearchAnalyst(make_client(make_response("I think it went up.")))
        with pytest.raises(ResearchParseError):
            await analyst.analyze(make_event())

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self) -> None:
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.APIConnectionError(request=request)
        analyst = ResearchAnalyst(make_client(side_effect=error))
        with pytest.raises(ResearchError) as exc_info:
            await analyst.analyze(make_event())
        assert not isinstance(exc_info.value, ResearchParseError)

    @pytest.mark.asyncio
    async def test_non_text_response_raises(self) -> None:
        response = SimpleNamespace(content=[SimpleNamespace(type="tool_use")], usage=None)
        analyst = ResearchAnalyst(make_client(response))
        with pytest.raises(ResearchError):
            await analyst.analyze(make_event())

    @pytest.mark.asyncio
    async def test_aclose_closes_clients(self) -> None:
        client = make_client()
        news = MagicMock()
        news.aclose = AsyncMock()
        await ResearchAnalyst(client, news_client=news).aclose()
        client.close.assert_awaited_once()
        news.aclose.assert_awaited_once()
