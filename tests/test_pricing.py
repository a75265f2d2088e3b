from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx
import pytest

from app.domain.exceptions import PriceLookupDomainError, RemoteFetchError
from app.infrastructure.clients.pricing import (
    CoingeckoPriceProvider,
    PriceLookupError,
    PriceOverrides,
    PriceService,
)
from app.infrastructure.clients.token_price_provider import PriceServiceAdapter

BAL = "0xba100000625a3754423978a60c9317c58a424e3D"


def _mock_coingecko(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def _service(overrides: dict | None = None) -> PriceService:
    return PriceService(
        overrides=PriceOverrides(overrides or {}),
        coingecko=CoingeckoPriceProvider(api_base="https://api.coingecko.com/api/v3/", timeout_seconds=5),
    )


def test_overrides_match_network_then_default_bucket():
    overrides = PriceOverrides({"ethereum": {BAL.lower(): "5.5"}, "default": {"0xother": 1}})

    assert overrides.get_price("Ethereum", BAL) == Decimal("5.5")
    assert overrides.get_price("polygon", "0xOTHER") == Decimal("1")
    assert overrides.get_price("polygon", BAL) is None


def test_price_service_prefers_override_without_request(monkeypatch: pytest.MonkeyPatch):
    def handler(_request: httpx.Request) -> httpx.Response:
        raise AssertionError("coingecko should not be called")

    _mock_coingecko(monkeypatch, handler)
    service = _service({"ethereum": {BAL.lower(): "4"}})

    assert asyncio.run(service.get_price_usd(token=BAL, network="ethereum")) == Decimal("4")


def test_coingecko_price_is_cached(monkeypatch: pytest.MonkeyPatch):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={BAL.lower(): {"usd": 3.25}})

    _mock_coingecko(monkeypatch, handler)
    service = _service()

    async def run() -> tuple[Decimal, Decimal]:
        first = await service.get_price_usd(token=BAL, network="ethereum")
        second = await service.get_price_usd(token=BAL, network="ethereum")
        return first, second

    assert asyncio.run(run()) == (Decimal("3.25"), Decimal("3.25"))
    assert len(requests) == 1
    assert requests[0].url.path == "/api/v3/simple/token_price/ethereum"
    assert requests[0].url.params["vs_currencies"] == "usd"


def test_coingecko_missing_price_raises(monkeypatch: pytest.MonkeyPatch):
    _mock_coingecko(monkeypatch, lambda _request: httpx.Response(200, json={}))
    service = _service()

    with pytest.raises(PriceLookupError):
        asyncio.run(service.get_price_usd(token=BAL, network="ethereum"))


def test_unsupported_network_raises():
    provider = CoingeckoPriceProvider(api_base="https://api.coingecko.com/api/v3", timeout_seconds=5)

    with pytest.raises(PriceLookupError):
        asyncio.run(provider.get_price_usd("fantom", BAL))


def test_adapter_maps_lookup_errors_to_domain_errors(monkeypatch: pytest.MonkeyPatch):
    _mock_coingecko(monkeypatch, lambda _request: httpx.Response(500))
    adapter = PriceServiceAdapter(_service(), network="ethereum")

    with pytest.raises(PriceLookupDomainError) as exc_info:
        asyncio.run(adapter.get_price_usd(token_address=BAL))

    assert isinstance(exc_info.value, RemoteFetchError)


def test_adapter_returns_override_price():
    adapter = PriceServiceAdapter(_service({"default": {BAL.lower(): "7"}}), network="gnosis")

    assert asyncio.run(adapter.get_price_usd(token_address=BAL)) == Decimal("7")
