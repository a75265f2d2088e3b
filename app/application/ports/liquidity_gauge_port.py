from __future__ import annotations

from typing import Callable, Protocol

from app.domain.entities.staking import TransactionHandle


class LiquidityGaugePort(Protocol):
    address: str

    async def stake(self, *, amount: int, account: str) -> TransactionHandle:
        ...

    async def unstake(self, *, amount: int, account: str) -> TransactionHandle:
        ...

    async def balance_of(self, *, account: str) -> int:
        ...


LiquidityGaugeFactory = Callable[[str], LiquidityGaugePort]
