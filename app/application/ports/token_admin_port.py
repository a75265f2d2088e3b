from __future__ import annotations

from typing import Protocol


class TokenAdminPort(Protocol):
    async def get_inflation_rate(self) -> str:
        ...
