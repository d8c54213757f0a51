"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest

from crypto_mover_tracker.config import Settings, clear_settings_cache
from crypto_mover_tracker.storage.database import DatabaseManager

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"

_OPTIONAL_ENV = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "ANTHROPIC_API_KEY",
    "CRYPTOPANIC_API_KEY",
    "COINGECKO_API_KEY",
)


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[Settings]:
    """Settings for an isolated, dry-run, retry-without-delay environment."""
    for name in _OPTIONAL_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", SQLITE_MEMORY_URL)
    monkeypatch.setenv("DRY_RUN", "true")
    monkeypatch.setenv("TASK_RETRY_BASE_DELAY_SECONDS", "0")
    clear_settings_cache()
    yield Settings()
    clear_settings_cache()


@pytest.fixture
async def db() -> AsyncIterator[DatabaseManager]:
    """In-memory SQLite database with the full schema."""
    manager = DatabaseManager(SQLITE_MEMORY_URL)
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()
