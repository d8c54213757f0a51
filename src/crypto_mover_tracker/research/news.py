"""CryptoPanic headline lookup used as research context."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

CRYPTOPANIC_URL = "https://cryptopanic.com/api/v1/posts/"
MAX_ARTICLES = 10


@dataclass(frozen=True)
class NewsArticle:
    title: str
    source: str
    published_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CryptoPanicClient:
    """Fetch important headlines for a ticker.

    News is best-effort context: any failure is logged and yields no
    articles rather than failing the research run.
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout_seconds: float = 15.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def fetch_news(self, symbol: str, *, limit: int = MAX_ARTICLES) -> list[NewsArticle]:
        params = {
            "auth_token": self._api_key,
            "currencies": symbol.upper(),
            "filter": "important",
            "public": "true",
        }
        try:
            async with self._get_session().get(CRYPTOPANIC_URL, params=params) as resp:
                if resp.status != 200:
                    logger.warning("CryptoPanic API error for %s: HTTP %d", symbol, resp.status)
                    return []
                data = await resp.json()
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.warning("Failed to fetch news for %s: %s", symbol, e)
            return []

        return parse_articles(data, limit=limit)


def parse_articles(data: Any, *, limit: int = MAX_ARTICLES) -> list[NewsArticle]:
    results = data.get("results") if isinstance(data, dict) else None
    articles: list[NewsArticle] = []
    for item in (results or [])[:limit]:
        if not isinstance(item, dict):
            continue
        source = item.get("source")
        articles.append(
            NewsArticle(
                title=str(item.get("title", "")),
                source=str(source.get("title", "Unknown")) if isinstance(source, dict) else "Unknown",
                published_at=str(item.get("published_at", "")),
            )
        )
    return articles
