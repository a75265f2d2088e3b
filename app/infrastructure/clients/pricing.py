from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal, InvalidOperation

import httpx


logger = logging.getLogger(__name__)


class PriceLookupError(RuntimeError):
    pass


# Network name -> Coingecko asset platform id.
COINGECKO_PLATFORMS = {
    "ethereum": "ethereum",
    "mainnet": "ethereum",
    "eth": "ethereum",
    "polygon": "polygon-pos",
    "matic": "polygon-pos",
    "arbitrum": "arbitrum-one",
    "arbitrum-one": "arbitrum-one",
    "gnosis": "xdai",
    "base": "base",
}


class PriceOverrides:
    """Fixed USD prices from PRICE_OVERRIDES.

    Shape: ``{"<network>": {"<token address>": price}, "default": {...}}``.
    Network buckets win over ``default``; addresses match case-insensitively.
    """

    def __init__(self, data: dict | None):
        self._buckets: dict[str, dict[str, Decimal]] = {}
        for network, bucket in (data or {}).items():
            if not isinstance(bucket, dict):
                continue
            self._buckets[str(network).strip().lower()] = {
                str(token).strip().lower(): _to_price(value, source="PRICE_OVERRIDES")
                for token, value in bucket.items()
            }

    def get_price(self, network: str, token: str) -> Decimal | None:
        token_key = token.strip().lower()
        for bucket_key in (network.strip().lower(), "default"):
            price = self._buckets.get(bucket_key, {}).get(token_key)
            if price is not None:
                return price
        return None


class TokenPriceCache:
    def __init__(self, ttl_seconds: float):
        self._ttl_seconds = ttl_seconds
        self._entries: dict[tuple[str, str], tuple[float, Decimal]] = {}

    def get(self, key: tuple[str, str]) -> Decimal | None:
        if self._ttl_seconds <= 0:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, price = entry
        if expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return price

    def put(self, key: tuple[str, str], price: Decimal) -> None:
        if self._ttl_seconds > 0:
            self._entries[key] = (time.monotonic() + self._ttl_seconds, price)


class CoingeckoPriceProvider:
    def __init__(self, api_base: str, timeout_seconds: float, cache_ttl_seconds: float = 300):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout_seconds
        self._cache = TokenPriceCache(cache_ttl_seconds)
        self._inflight: dict[tuple[str, str], asyncio.Lock] = {}

    async def get_price_usd(self, network: str, token_address: str) -> Decimal:
        platform = COINGECKO_PLATFORMS.get(network.strip().lower())
        if platform is None:
            raise PriceLookupError(f"Unsupported network for pricing: {network}")
        address = token_address.strip().lower()
        if not address.startswith("0x"):
            raise PriceLookupError("Coingecko pricing requires a token address.")

        key = (platform, address)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        # Concurrent lookups for one token share a single request.
        lock = self._inflight.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            price = await self._request_price(platform=platform, address=address)
            self._cache.put(key, price)
            return price

    async def _request_price(self, *, platform: str, address: str) -> Decimal:
        url = f"{self.api_base}/simple/token_price/{platform}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    url,
                    params={"contract_addresses": address, "vs_currencies": "usd"},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PriceLookupError(f"Coingecko request failed: {exc}") from exc

        quote = payload.get(address) if isinstance(payload, dict) else None
        if not isinstance(quote, dict) or "usd" not in quote:
            raise PriceLookupError(f"Price not found for token {address}.")

        price = _to_price(quote["usd"], source="coingecko")
        logger.info("coingecko: fetched_price platform=%s token=%s usd=%s", platform, address, price)
        return price


class PriceService:
    def __init__(self, overrides: PriceOverrides, coingecko: CoingeckoPriceProvider):
        self.overrides = overrides
        self.coingecko = coingecko

    async def get_price_usd(self, *, token: str, network: str) -> Decimal:
        override = self.overrides.get_price(network, token)
        if override is not None:
            return override
        return await self.coingecko.get_price_usd(network, token)


def _to_price(value, *, source: str) -> Decimal:
    try:
        price = Decimal(str(value))
    except InvalidOperation as exc:
        raise PriceLookupError(f"Invalid price from {source}: {value!r}") from exc
    if not price.is_finite():
        raise PriceLookupError(f"Invalid price from {source}: {value!r}")
    return price
