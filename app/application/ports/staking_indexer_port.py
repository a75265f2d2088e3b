from __future__ import annotations

from typing import Protocol

from app.domain.entities.staking import LiquidityGauge, StakingData


class StakingIndexerPort(Protocol):
    async def fetch_staking_data(self, *, account: str, pool_ids: list[str]) -> StakingData:
        ...

    async def fetch_pool_liquidity_gauges(self, *, pool_address: str) -> list[LiquidityGauge]:
        ...
