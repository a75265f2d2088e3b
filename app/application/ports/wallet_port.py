from __future__ import annotations

from typing import Protocol


class WalletPort(Protocol):
    @property
    def account(self) -> str:
        ...

    async def balance_for(self, *, token_address: str) -> str:
        ...
