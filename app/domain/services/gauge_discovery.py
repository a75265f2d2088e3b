from __future__ import annotations

from collections.abc import Iterable, Sequence

from app.domain.entities.staking import GaugeShare, LiquidityGauge


def gauge_addresses(
    gauge_shares: Iterable[GaugeShare] | None,
    liquidity_gauges: Iterable[LiquidityGauge] | None,
) -> tuple[str, ...]:
    """Gauges the user is staked in followed by the gauges of their pools.

    Duplicates keep their first position; gauges without an id are dropped.
    """
    staked = [share.gauge_id for share in gauge_shares or ()]
    of_user_pools = [gauge.id for gauge in liquidity_gauges or () if gauge.id is not None]
    return tuple(dict.fromkeys([*staked, *of_user_pools]))


def staked_pool_ids(gauge_shares: Iterable[GaugeShare] | None) -> tuple[str, ...]:
    return tuple(dict.fromkeys(share.pool_id for share in gauge_shares or ()))


def has_liquidity_gauge(liquidity_gauges: Sequence[LiquidityGauge] | None) -> bool:
    if not liquidity_gauges:
        return False
    return liquidity_gauges[0].id is not None
