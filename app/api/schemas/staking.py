from __future__ import annotations

from pydantic import BaseModel, Field


class GaugeShareResponse(BaseModel):
    gauge_id: str
    pool_id: str | None
    balance: str


class LiquidityGaugeResponse(BaseModel):
    id: str | None
    pool_id: str | None


class PoolTokenResponse(BaseModel):
    address: str
    symbol: str | None
    balance: str | None


class StakedPoolResponse(BaseModel):
    id: str
    address: str
    pool_type: str | None
    symbol: str | None
    total_liquidity: str | None
    total_shares: str | None
    tokens: list[PoolTokenResponse]


class QueryStatusResponse(BaseModel):
    state: str = Field(..., description="idle, loading, ready or failed.")
    error: str | None = None


class StakingOverviewResponse(BaseModel):
    account: str
    pool_address: str | None
    user_pool_ids: list[str]
    gauge_shares: list[GaugeShareResponse]
    liquidity_gauges: list[LiquidityGaugeResponse]
    gauge_addresses: list[str]
    staked_pool_ids: list[str]
    staked_pools: list[StakedPoolResponse]
    staked_shares: str
    is_pool_eligible_for_staking: bool
    inflation_rate: str = Field(..., description="Reward tokens emitted per second.")
    pool_payouts: dict[str, str] = Field(..., description="Reward tokens per gauge per week.")
    pool_aprs: dict[str, str] = Field(..., description="Payouts priced in USD for the APR period.")
    is_loading: bool
    queries: dict[str, QueryStatusResponse]


class StakeActionRequest(BaseModel):
    account: str
    pool_address: str


class StakeActionResponse(BaseModel):
    pool_address: str
    gauge_address: str
    tx_hash: str
    amount: str = Field(..., description="Raw amount in 18-decimal units.")


class StakedSharesResponse(BaseModel):
    pool_address: str
    gauge_address: str
    staked_shares: str
