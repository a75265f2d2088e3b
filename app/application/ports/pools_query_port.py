from __future__ import annotations

from typing import Protocol

from app.domain.entities.staking import StakedPool


class PoolsQueryPort(Protocol):
    async def get_user_pool_ids(self, *, account: str) -> list[str]:
        ...

    async def get_pools(self, *, pool_ids: list[str]) -> list[StakedPool]:
        ...
