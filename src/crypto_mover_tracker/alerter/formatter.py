"""Alert message formatter.

This module turns mover events, forecasts and research results into
Telegram markdown and plain-text messages.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from crypto_mover_tracker.alerter.models import AlertItem, FormattedAlert
from crypto_mover_tracker.detector.models import Severity
from crypto_mover_tracker.detector.movers import get_move_severity

if TYPE_CHECKING:
    from crypto_mover_tracker.research.analyst import ResearchResult
    from crypto_mover_tracker.storage.repos import MoverEventDTO

COINGECKO_COIN_URL = "https://www.coingecko.com/en/coins/{coin_id}"
TRADINGVIEW_SYMBOL_URL = "https://www.tradingview.com/symbols/{symbol}USD/"

SEVERITY_MARKERS = {
    Severity.EXTREME: "🔥🔥🔥",
    Severity.MAJOR: "🔥🔥",
    Severity.SIGNIFICANT: "🔥",
    Severity.NOTABLE: "",
}

# Only mention BTC-relative performance when it is meaningful
BTC_RELATIVE_MENTION_THRESHOLD = 2.0

MAX_CATALYST_CHARS = 300
MAX_REASONING_CHARS = 400
MAX_KEY_FACTORS = 5


def format_price(price: float) -> str:
    """Format a USD price with precision suited to its size."""
    if price >= 1:
        return f"{price:,.2f}"
    if price >= 0.01:
        return f"{price:.4f}"
    return f"{price:.6f}"


def format_number(num: float) -> str:
    """Format a large USD amount as 1.23B / 4.56M / 7.89K."""
    if num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.2f}B"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.2f}M"
    if num >= 1_000:
        return f"{num / 1_000:.2f}K"
    return f"{num:.2f}"


def format_change(magnitude: float, decimals: int = 2) -> str:
    sign = "+" if magnitude > 0 else ""
    return f"{sign}{magnitude:.{decimals}f}%"


def escape_markdown(text: str) -> str:
    """Escape Telegram legacy Markdown control characters."""
    for char in ("_", "*", "`", "["):
        text = text.replace(char, f"\\{char}")
    return text


class AlertFormatter:
    """Formats movers, forecasts and research into alert messages."""

    def format_mover(self, item: AlertItem) -> FormattedAlert:
        """Format one mover (and its forecast, if any) as an individual alert."""
        event = item.event
        symbol = event.symbol.upper()
        links = self._build_links(event)
        direction_emoji = "🚀" if event.magnitude > 0 else "📉"
        severity = get_move_severity(event.magnitude)
        marker = SEVERITY_MARKERS[severity]

        title = f"{symbol} {format_change(event.magnitude)} ({severity.value})"

        md = [
            " ".join(p for p in (direction_emoji, marker, f"*{escape_markdown(symbol)}*") if p)
            + f" ({escape_markdown(event.name)})",
            "",
            f"📊 *Change:* {format_change(event.magnitude)} ({event.metadata.get('timeframe', '24h')})",
            f"💰 *Price:* ${format_price(event.price)}",
            f"📈 *Market Cap:* ${format_number(event.market_cap)}",
            f"💎 *Volume 24h:* ${format_number(event.volume_24h)}",
        ]
        plain = [
            f"{symbol} ({event.name}) {format_change(event.magnitude)} [{severity.value}]",
            f"Price: ${format_price(event.price)} | MCap: ${format_number(event.market_cap)} "
            f"| Vol 24h: ${format_number(event.volume_24h)}",
        ]

        btc_line = self._btc_relative_line(event.btc_relative)
        if btc_line:
            md.append(f"₿ *vs BTC:* {btc_line}")
            plain.append(f"vs BTC: {btc_line}")
        if event.rank:
            md.append(f"🏆 *Rank:* #{event.rank}")

        if item.forecast is not None:
            forecast = item.forecast
            dir_emoji = "📈" if forecast.direction.value == "up" else "📉"
            md.extend(
                [
                    "",
                    f"{dir_emoji} *Prediction:* {forecast.direction.value.upper()} "
                    f"({forecast.confidence * 100:.0f}% confidence)",
                    f"_{escape_markdown(forecast.reasoning[:MAX_REASONING_CHARS])}_",
                ]
            )
            plain.append(
                f"Prediction: {forecast.direction.value.upper()} "
                f"({forecast.confidence * 100:.0f}%) - {forecast.reasoning}"
            )

        md.extend(
            [
                "",
                f"⏰ _{event.detected_at.isoformat()}_",
                "",
                f"[CoinGecko]({links['coingecko']}) | [TradingView]({links['tradingview']})",
            ]
        )
        return FormattedAlert(
            title=title,
            telegram_markdown="\n".join(md),
            plain_text="\n".join(plain),
            links=links,
        )

    def format_summary(self, items: Sequence[AlertItem], *, start_index: int = 1) -> FormattedAlert:
        """Format the movers that did not get an individual alert as one list."""
        md = ["📊 *Additional Movers:*", ""]
        plain = ["Additional movers:"]
        for offset, item in enumerate(items):
            event = item.event
            emoji = "🚀" if event.magnitude > 0 else "📉"
            line = f"{event.symbol.upper()}: {format_change(event.magnitude, 1)}"
            md.append(f"{start_index + offset}. {emoji} {escape_markdown(line)}")
            plain.append(f"{start_index + offset}. {line}")
        return FormattedAlert(
            title=f"{len(items)} additional movers",
            telegram_markdown="\n".join(md),
            plain_text="\n".join(plain),
        )

    def format_research(self, event: MoverEventDTO, result: ResearchResult) -> FormattedAlert:
        """Format a research summary for a mover."""
        symbol = event.symbol.upper()
        emoji = "🚀" if event.magnitude > 0 else "📉"
        md = [
            f"📋 *Research Summary: {escape_markdown(symbol)}*",
            f"{emoji} Move: {format_change(event.magnitude, 1)}",
            "",
        ]
        plain = [f"Research {symbol} {format_change(event.magnitude, 1)}"]

        if result.catalyst:
            catalyst = result.catalyst[:MAX_CATALYST_CHARS]
            md.extend(["*Likely Catalyst:*", escape_markdown(catalyst), ""])
            plain.append(f"Catalyst: {catalyst}")
        md.append(f"*Sentiment:* {escape_markdown(result.sentiment_display)}")
        plain.append(f"Sentiment: {result.sentiment_display}")

        if result.key_factors:
            md.extend(["", "*Key Factors:*"])
            for factor in result.key_factors[:MAX_KEY_FACTORS]:
                md.append(f"• {escape_markdown(factor)}")
            plain.append("Key factors: " + "; ".join(result.key_factors[:MAX_KEY_FACTORS]))

        return FormattedAlert(
            title=f"Research: {symbol}",
            telegram_markdown="\n".join(md),
            plain_text="\n".join(plain),
            links=self._build_links(event),
        )

    def _build_links(self, event: MoverEventDTO) -> dict[str, str]:
        return {
            "coingecko": COINGECKO_COIN_URL.format(coin_id=event.coin_id),
            "tradingview": TRADINGVIEW_SYMBOL_URL.format(symbol=event.symbol.upper()),
        }

    @staticmethod
    def _btc_relative_line(btc_relative: float | None) -> str | None:
        if btc_relative is None or abs(btc_relative) <= BTC_RELATIVE_MENTION_THRESHOLD:
            return None
        vs = "outperforming" if btc_relative > 0 else "underperforming"
        return f"{vs} by {abs(btc_relative):.1f}%"
