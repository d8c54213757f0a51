"""LLM catalyst research for mover events.

This module asks Anthropic's Messages API why a coin moved and parses the
structured JSON answer into a ResearchResult.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anthropic

from crypto_mover_tracker.research.news import CryptoPanicClient, NewsArticle
from crypto_mover_tracker.storage.repos import ResearchReportDTO

if TYPE_CHECKING:
    from crypto_mover_tracker.storage.repos import MoverEventDTO

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 2000

SYSTEM_PROMPT = """You are a cryptocurrency market analyst specializing in identifying catalysts for \
significant price movements. Your job is to analyze market events and provide clear, actionable insights.

When analyzing a crypto move, you should:
1. Identify the most likely catalyst(s) for the move
2. Assess whether the move is likely to continue or reverse
3. Provide a sentiment assessment
4. Rate your confidence in the analysis

Be concise but thorough. Focus on facts and data-driven insights. Avoid speculation without evidence."""

RESPONSE_FORMAT = """Please provide your analysis in the following JSON format:
{
    "catalyst": "Brief description of the most likely catalyst for this move",
    "catalyst_confidence": 0.0-1.0,
    "sentiment": {
        "label": "bullish/bearish/neutral",
        "score": -1.0 to 1.0,
        "reasoning": "Brief explanation"
    },
    "key_factors": ["factor1", "factor2", "factor3"],
    "risks": ["risk1", "risk2"],
    "continuation_probability": 0.0-1.0,
    "summary": "2-3 sentence executive summary",
    "recommended_action": "Watch/Consider Entry/Avoid/Take Profits"
}

Respond ONLY with the JSON, no additional text."""


class ResearchError(Exception):
    """Base exception for research failures (API errors, unexpected responses)."""


class ResearchParseError(ResearchError):
    """Raised when the model's answer is not the expected JSON document."""


@dataclass
class ResearchResult:
    """Parsed catalyst analysis for one mover event."""

    catalyst: str
    catalyst_confidence: float | None
    sentiment_label: str
    sentiment_score: float | None
    sentiment_reasoning: str
    key_factors: list[str]
    risks: list[str]
    continuation_probability: float | None
    summary: str
    recommended_action: str
    raw: dict[str, Any]
    news_articles: list[NewsArticle] = field(default_factory=list)
    tokens_used: int | None = None

    @property
    def sentiment_display(self) -> str:
        if self.sentiment_score is None:
            return self.sentiment_label
        return f"{self.sentiment_label} ({self.sentiment_score * 100:.0f}%)"

    def to_report(self, mover_event_id: int) -> ResearchReportDTO:
        return ResearchReportDTO(
            mover_event_id=mover_event_id,
            full_analysis=json.dumps(self.raw),
            catalyst=self.catalyst,
            catalyst_confidence=self.catalyst_confidence,
            news_summary=self.summary,
            sentiment_label=self.sentiment_label,
            sentiment_score=self.sentiment_score,
            key_factors=self.key_factors,
            risks=self.risks,
            continuation_probability=self.continuation_probability,
            recommended_action=self.recommended_action,
            news_articles=[a.to_dict() for a in self.news_articles],
            tokens_used=self.tokens_used,
        )


def _to_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _to_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (optionally tagged json)."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        parts = cleaned.split("```")
        cleaned = parts[1] if len(parts) > 1 else cleaned.strip("`")
        if cleaned.startswith("json"):
            cleaned = cleaned[4:]
    return cleaned.strip()


def parse_research_response(text: str) -> ResearchResult:
    """Parse the model's JSON answer.

    Raises:
        ResearchParseError: If the text is not a JSON object with a catalyst.
    """
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ResearchParseError(f"Failed to parse research response: {e}") from e
    if not isinstance(data, dict) or "catalyst" not in data:
        raise ResearchParseError("Research response is missing the catalyst field")

    sentiment = data.get("sentiment") if isinstance(data.get("sentiment"), dict) else {}
    return ResearchResult(
        catalyst=str(data.get("catalyst") or ""),
        catalyst_confidence=_to_float(data.get("catalyst_confidence")),
        sentiment_label=str(sentiment.get("label") or "neutral"),
        sentiment_score=_to_float(sentiment.get("score")),
        sentiment_reasoning=str(sentiment.get("reasoning") or ""),
        key_factors=_to_str_list(data.get("key_factors")),
        risks=_to_str_list(data.get("risks")),
        continuation_probability=_to_float(data.get("continuation_probability")),
        summary=str(data.get("summary") or ""),
        recommended_action=str(data.get("recommended_action") or ""),
        raw=data,
    )


def build_context(event: MoverEventDTO, articles: list[NewsArticle]) -> str:
    """Render the event and headlines as a markdown prompt section."""
    sign = "+" if event.magnitude > 0 else ""
    sections = [
        "## Event Details\n"
        f"- **Coin**: {event.symbol} ({event.name})\n"
        f"- **Move Type**: {event.move_type}\n"
        f"- **Magnitude**: {sign}{event.magnitude:.2f}%\n"
        f"- **Detected**: {event.detected_at.isoformat()}\n"
        f"- **Price**: ${event.price:.6f}\n"
        f"- **Market Cap**: ${event.market_cap:,.0f}\n"
        f"- **24h Volume**: ${event.volume_24h:,.0f}\n"
        f"- **Rank**: #{event.rank or 'N/A'}"
    ]
    if articles:
        sections.append("\n## Recent News Articles")
        for i, article in enumerate(articles, start=1):
            sections.append(
                f"\n### Article {i}\n"
                f"- **Title**: {article.title}\n"
                f"- **Source**: {article.source}\n"
                f"- **Date**: {article.published_at}"
            )
    else:
        sections.append("\n## News\nNo recent news articles found for this coin.")
    return "\n".join(sections)


class ResearchAnalyst:
    """Explain a mover event with an LLM.

    Example:
        ```python
        analyst = ResearchAnalyst(AsyncAnthropic(api_key=key))
        result = await analyst.analyze(event)
        print(result.catalyst)
        ```
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        news_client: CryptoPanicClient | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._news_client = news_client

    async def aclose(self) -> None:
        if self._news_client is not None:
            await self._news_client.aclose()
        await self._client.close()

    async def analyze(self, event: MoverEventDTO) -> ResearchResult:
        """Run one research call for `event`.

        Raises:
            ResearchError: If the API call fails or returns no text.
            ResearchParseError: If the answer is not valid JSON.
        """
        articles: list[NewsArticle] = []
        if self._news_client is not None:
            articles = await self._news_client.fetch_news(event.symbol)

        prompt = (
            "Analyze this cryptocurrency price movement and provide your findings.\n\n"
            f"{build_context(event, articles)}\n\n{RESPONSE_FORMAT}"
        )
        logger.debug("Research query for %s (prompt %d chars)", event.symbol, len(prompt))

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise ResearchError(f"Anthropic API call failed: {e}") from e

        text_blocks = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not text_blocks:
            raise ResearchError("Unexpected response type from Anthropic")

        try:
            result = parse_research_response(text_blocks[0])
        except ResearchParseError:
            logger.warning("Unparseable research response for %s: %.200s", event.symbol, text_blocks[0])
            raise

        result.news_articles = articles
        usage = getattr(response, "usage", None)
        if usage is not None:
            result.tokens_used = int(usage.input_tokens) + int(usage.output_tokens)

        logger.info(
            "Research for %s: catalyst=%r sentiment=%s tokens=%s",
            event.symbol,
            result.catalyst[:80],
            result.sentiment_label,
            result.tokens_used,
        )
        return result
