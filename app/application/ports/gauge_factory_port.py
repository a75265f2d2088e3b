from __future__ import annotations

from typing import Protocol


class GaugeFactoryPort(Protocol):
    async def get_pool_gauge(self, *, pool_address: str) -> str:
        ...
