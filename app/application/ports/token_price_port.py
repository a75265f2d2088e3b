from __future__ import annotations

from decimal import Decimal
from typing import Protocol


class TokenPricePort(Protocol):
    async def get_price_usd(self, *, token_address: str) -> Decimal | None:
        ...
