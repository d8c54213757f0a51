"""Research layer - LLM catalyst analysis of mover events."""

from crypto_mover_tracker.research.analyst import (
    ResearchAnalyst,
    ResearchError,
    ResearchParseError,
    ResearchResult,
    parse_research_response,
)
from crypto_mover_tracker.research.news import CryptoPanicClient, NewsArticle

__all__ = [
    "CryptoPanicClient",
    "NewsArticle",
    "ResearchAnalyst",
    "ResearchError",
    "ResearchParseError",
    "ResearchResult",
    "parse_research_response",
]
