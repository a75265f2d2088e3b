from __future__ import annotations

from typing import Protocol


class GaugeControllerPort(Protocol):
    async def get_relative_weights(
        self,
        *,
        gauge_addresses: list[str],
        timestamp: int,
    ) -> dict[str, str]:
        ...
