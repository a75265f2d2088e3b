from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from app.domain.entities.staking import (
    GaugeShare,
    LiquidityGauge,
    PoolToken,
    StakedPool,
    StakingData,
)


def _dec_or_none(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def map_row_to_gauge_share(row: Mapping[str, Any]) -> GaugeShare:
    gauge = row.get("gauge") or {}
    return GaugeShare(
        gauge_id=gauge["id"],
        pool_id=gauge.get("poolId"),
        balance=str(row.get("balance") or "0"),
    )


def map_row_to_liquidity_gauge(row: Mapping[str, Any]) -> LiquidityGauge:
    return LiquidityGauge(id=row.get("id"), pool_id=row.get("poolId"))


def _has_gauge(row: Mapping[str, Any]) -> bool:
    gauge = row.get("gauge") or {}
    return gauge.get("id") is not None and gauge.get("poolId") is not None


def map_payload_to_staking_data(data: Mapping[str, Any]) -> StakingData:
    return StakingData(
        gauge_shares=tuple(
            map_row_to_gauge_share(row)
            for row in data.get("gaugeShares") or []
            if _has_gauge(row)
        ),
        liquidity_gauges=tuple(
            map_row_to_liquidity_gauge(row) for row in data.get("liquidityGauges") or []
        ),
    )


def map_row_to_pool_token(row: Mapping[str, Any]) -> PoolToken:
    return PoolToken(
        address=row["address"],
        symbol=row.get("symbol"),
        balance=_dec_or_none(row.get("balance")),
    )


def map_row_to_staked_pool(row: Mapping[str, Any]) -> StakedPool:
    return StakedPool(
        id=row["id"],
        address=row["address"],
        pool_type=row.get("poolType"),
        symbol=row.get("symbol"),
        total_liquidity=_dec_or_none(row.get("totalLiquidity")),
        total_shares=_dec_or_none(row.get("totalShares")),
        tokens=tuple(map_row_to_pool_token(token) for token in row.get("tokens") or []),
    )
