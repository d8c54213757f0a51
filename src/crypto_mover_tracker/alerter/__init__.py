"""Alerting layer - Telegram notifications for movers and research."""

from crypto_mover_tracker.alerter.dispatcher import AlertChannel, AlertDispatcher
from crypto_mover_tracker.alerter.formatter import AlertFormatter
from crypto_mover_tracker.alerter.models import AlertItem, DispatchResult, FormattedAlert
from crypto_mover_tracker.alerter.telegram import TelegramChannel, TelegramError

__all__ = [
    "AlertChannel",
    "AlertDispatcher",
    "AlertFormatter",
    "AlertItem",
    "DispatchResult",
    "FormattedAlert",
    "TelegramChannel",
    "TelegramError",
]
