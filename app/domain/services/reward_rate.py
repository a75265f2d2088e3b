from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal, InvalidOperation
from enum import Enum

SECONDS_PER_DAY = 86400
DAYS_PER_WEEK = 7
PAYOUT_WINDOW_SECONDS = SECONDS_PER_DAY * DAYS_PER_WEEK
WEEKS_PER_YEAR = 52

DecimalLike = Decimal | str | int | None


class AprPeriod(str, Enum):
    WEEKLY = "weekly"
    ANNUAL = "annual"

    @property
    def payout_windows(self) -> int:
        if self is AprPeriod.ANNUAL:
            return WEEKS_PER_YEAR
        return 1


def to_decimal_or_zero(value: DecimalLike) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal("0")
    return parsed if parsed.is_finite() else Decimal("0")


def compute_payouts(
    inflation_rate: DecimalLike,
    relative_weights: Mapping[str, DecimalLike] | None,
    gauge_addresses: Iterable[str],
) -> dict[str, Decimal]:
    """Reward tokens each gauge pays out over one week.

    payout = inflation_rate * 7 * 86400 * relative_weight. A missing rate or
    a gauge absent from ``relative_weights`` counts as zero.
    """
    rate = to_decimal_or_zero(inflation_rate)
    weights = {str(address).lower(): weight for address, weight in (relative_weights or {}).items()}

    payouts: dict[str, Decimal] = {}
    for gauge_address in gauge_addresses:
        weight = weights.get(gauge_address.lower())
        payouts[gauge_address] = (
            rate
            * Decimal(DAYS_PER_WEEK)
            * Decimal(SECONDS_PER_DAY)
            * to_decimal_or_zero(weight)
        )
    return payouts


def compute_aprs(
    payouts: Mapping[str, Decimal],
    price_for: Callable[[str], DecimalLike],
    *,
    reward_token_address: str,
    period: AprPeriod = AprPeriod.WEEKLY,
) -> dict[str, Decimal]:
    """Price-denominate each payout with the reward token's spot price."""
    price = to_decimal_or_zero(price_for(reward_token_address))
    windows = Decimal(period.payout_windows)
    return {
        gauge_address: to_decimal_or_zero(payout) * price * windows
        for gauge_address, payout in payouts.items()
    }
