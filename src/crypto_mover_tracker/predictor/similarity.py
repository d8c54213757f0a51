"""Historical analogue matching for mover events."""

from collections.abc import Iterable

from crypto_mover_tracker.detector.models import HistoricalEvent, MoveType
from crypto_mover_tracker.predictor.models import MarketCapTier, MoveCandidate

DEFAULT_SIMILAR_LIMIT = 20

MIN_MAGNITUDE_RATIO = 0.5
MAX_MAGNITUDE_RATIO = 2.0

LARGE_CAP_FLOOR = 10_000_000_000
MID_CAP_FLOOR = 1_000_000_000
SMALL_CAP_FLOOR = 100_000_000


def get_market_cap_tier(market_cap: float) -> MarketCapTier:
    """Bucket a market cap (USD) into a liquidity tier."""
    if market_cap >= LARGE_CAP_FLOOR:
        return MarketCapTier.LARGE
    if market_cap >= MID_CAP_FLOOR:
        return MarketCapTier.MID
    if market_cap >= SMALL_CAP_FLOOR:
        return MarketCapTier.SMALL
    return MarketCapTier.MICRO


def _same_direction(move_type: MoveType, magnitude: float) -> bool:
    if move_type == MoveType.PUMP:
        return magnitude > 0
    if move_type == MoveType.DUMP:
        return magnitude < 0
    return False


def find_similar_events(
    candidate: MoveCandidate,
    history: Iterable[HistoricalEvent],
    *,
    limit: int = DEFAULT_SIMILAR_LIMIT,
) -> list[HistoricalEvent]:
    """Select past events comparable to `candidate`.

    A historical event matches when it moved in the candidate's direction,
    its absolute magnitude is within 0.5x to 2x of the candidate's, and
    both sit in the same market cap tier. Input order is preserved.

    Args:
        candidate: Event being forecast (needs move_type, magnitude, market_cap).
        history: Past events, typically most recent first.
        limit: Maximum number of matches returned.

    Raises:
        ValueError: If the candidate magnitude is zero.
    """
    if candidate.magnitude == 0:
        raise ValueError("Cannot match analogues for a zero-magnitude move")

    reference = abs(candidate.magnitude)
    tier = get_market_cap_tier(candidate.market_cap)

    matches: list[HistoricalEvent] = []
    for event in history:
        if len(matches) >= limit:
            break
        if not _same_direction(candidate.move_type, event.magnitude):
            continue
        ratio = abs(event.magnitude) / reference
        if not MIN_MAGNITUDE_RATIO <= ratio <= MAX_MAGNITUDE_RATIO:
            continue
        if get_market_cap_tier(event.market_cap) != tier:
            continue
        matches.append(event)
    return matches
