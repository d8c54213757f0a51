"""Alert dispatch with pacing and retries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from crypto_mover_tracker.alerter.formatter import AlertFormatter
from crypto_mover_tracker.alerter.models import AlertItem, DispatchResult, FormattedAlert
from crypto_mover_tracker.retry import RetryError, retry_call

if TYPE_CHECKING:
    from crypto_mover_tracker.research.analyst import ResearchResult
    from crypto_mover_tracker.storage.repos import MoverEventDTO

logger = logging.getLogger(__name__)

DEFAULT_INDIVIDUAL_ALERTS = 3
DEFAULT_MESSAGE_DELAY_SECONDS = 1.0
DEFAULT_SEND_ATTEMPTS = 3


class AlertChannel(Protocol):
    name: str

    async def send(self, alert: FormattedAlert) -> None: ...


class AlertDispatcher:
    """Deliver ranked mover alerts to a channel.

    The strongest movers each get their own message, spaced by a fixed
    delay; the rest are rolled into one summary. With `dry_run` (or no
    channel) messages are only logged.
    """

    def __init__(
        self,
        channel: AlertChannel | None,
        *,
        formatter: AlertFormatter | None = None,
        dry_run: bool = False,
        individual_alerts: int = DEFAULT_INDIVIDUAL_ALERTS,
        message_delay_seconds: float = DEFAULT_MESSAGE_DELAY_SECONDS,
        send_attempts: int = DEFAULT_SEND_ATTEMPTS,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._channel = channel
        self._formatter = formatter or AlertFormatter()
        self._dry_run = dry_run or channel is None
        self._individual_alerts = individual_alerts
        self._message_delay_seconds = message_delay_seconds
        self._send_attempts = send_attempts
        self._retry_base_delay = retry_base_delay

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def _deliver(self, alert: FormattedAlert, result: DispatchResult) -> bool:
        result.total += 1
        if self._dry_run or self._channel is None:
            logger.info("[DRY RUN] %s\n%s", alert.title, alert.plain_text)
            result.sent += 1
            return True

        channel = self._channel
        try:
            await retry_call(
                lambda: channel.send(alert),
                max_attempts=self._send_attempts,
                base_delay=self._retry_base_delay,
                name=f"{channel.name} send",
            )
        except RetryError as e:
            result.failed += 1
            result.errors.append(f"{alert.title}: {e.last_exception}")
            logger.warning("Failed to deliver alert %r: %s", alert.title, e.last_exception)
            return False
        result.sent += 1
        return True

    async def dispatch_movers(self, items: Sequence[AlertItem]) -> DispatchResult:
        """Send individual alerts for the top movers and a summary for the rest.

        Args:
            items: Movers in rank order (strongest first).
        """
        result = DispatchResult()
        if not items:
            return result

        top = items[: self._individual_alerts]
        rest = items[self._individual_alerts :]

        for i, item in enumerate(top):
            if i > 0 and self._message_delay_seconds > 0:
                await asyncio.sleep(self._message_delay_seconds)
            await self._deliver(self._formatter.format_mover(item), result)

        if rest:
            if self._message_delay_seconds > 0:
                await asyncio.sleep(self._message_delay_seconds)
            summary = self._formatter.format_summary(rest, start_index=len(top) + 1)
            await self._deliver(summary, result)

        logger.info("Dispatched %d/%d alerts (%d movers)", result.sent, result.total, len(items))
        return result

    async def dispatch_research(self, event: MoverEventDTO, research: ResearchResult) -> bool:
        """Send a research summary for `event`."""
        result = DispatchResult()
        return await self._deliver(self._formatter.format_research(event, research), result)
