"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass, field

from crypto_mover_tracker.predictor.models import Forecast
from crypto_mover_tracker.storage.repos import MoverEventDTO


@dataclass(frozen=True)
class FormattedAlert:
    """A rendered alert ready for delivery.

    Attributes:
        title: Short headline.
        telegram_markdown: Body for Telegram (legacy Markdown parse mode).
        plain_text: Body for logs and dry runs.
        links: Named URLs referenced by the alert.
    """

    title: str
    telegram_markdown: str
    plain_text: str
    links: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AlertItem:
    """One ranked mover with its optional forecast."""

    event: MoverEventDTO
    forecast: Forecast | None = None


@dataclass
class DispatchResult:
    """Outcome of one dispatch call."""

    total: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def all_sent(self) -> bool:
        return self.failed == 0
