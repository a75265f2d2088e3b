from __future__ import annotations

from decimal import Decimal

from app.application.ports.token_price_port import TokenPricePort
from app.domain.exceptions import PriceLookupDomainError
from app.infrastructure.clients.pricing import PriceLookupError, PriceService


class PriceServiceAdapter(TokenPricePort):
    def __init__(self, price_service: PriceService, *, network: str):
        self._price_service = price_service
        self._network = network

    async def get_price_usd(self, *, token_address: str) -> Decimal | None:
        try:
            return await self._price_service.get_price_usd(
                token=token_address,
                network=self._network,
            )
        except PriceLookupError as exc:
            raise PriceLookupDomainError(str(exc)) from exc
