from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from app.domain.entities.staking import GaugeShare, LiquidityGauge, StakedPool


@dataclass(frozen=True)
class GetStakingOverviewInput:
    account: str
    pool_address: str | None = None


@dataclass(frozen=True)
class QueryStatusOutput:
    state: str
    error: str | None = None


@dataclass(frozen=True)
class StakingOverviewOutput:
    account: str
    pool_address: str | None
    user_pool_ids: list[str]
    gauge_shares: list[GaugeShare]
    liquidity_gauges: list[LiquidityGauge]
    gauge_addresses: list[str]
    staked_pool_ids: list[str]
    staked_pools: list[StakedPool]
    staked_shares: str
    is_pool_eligible_for_staking: bool
    inflation_rate: str
    pool_payouts: dict[str, Decimal]
    pool_aprs: dict[str, Decimal]
    is_loading: bool
    queries: dict[str, QueryStatusOutput] = field(default_factory=dict)


@dataclass(frozen=True)
class StakeActionInput:
    account: str
    pool_address: str | None = None


@dataclass(frozen=True)
class StakeActionOutput:
    pool_address: str
    gauge_address: str
    tx_hash: str
    amount: int


@dataclass(frozen=True)
class StakedSharesOutput:
    pool_address: str
    gauge_address: str
    staked_shares: str
