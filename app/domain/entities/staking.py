from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class GaugeShare:
    gauge_id: str
    pool_id: str
    balance: str


@dataclass(frozen=True)
class LiquidityGauge:
    id: str | None
    pool_id: str | None


@dataclass(frozen=True)
class StakingData:
    gauge_shares: tuple[GaugeShare, ...] = ()
    liquidity_gauges: tuple[LiquidityGauge, ...] = ()


@dataclass(frozen=True)
class PoolToken:
    address: str
    symbol: str | None
    balance: Decimal | None


@dataclass(frozen=True)
class StakedPool:
    id: str
    address: str
    pool_type: str | None
    symbol: str | None
    total_liquidity: Decimal | None
    total_shares: Decimal | None
    tokens: tuple[PoolToken, ...] = ()


@dataclass(frozen=True)
class TransactionHandle:
    tx_hash: str
    gauge_address: str
    amount: int
