from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException

from app.application.use_cases.get_staking_overview import GetStakingOverviewUseCase
from app.application.use_cases.manage_stake import ManageStakeUseCase
from app.application.use_cases.staking_session import StakingSession
from app.domain.services.reward_rate import AprPeriod
from app.infrastructure.clients.gauge_subgraph_client import GaugeSubgraphClient
from app.infrastructure.clients.pools_subgraph_client import PoolsSubgraphClient
from app.infrastructure.clients.pricing import CoingeckoPriceProvider, PriceOverrides, PriceService
from app.infrastructure.clients.subgraph_client import SubgraphClientSettings
from app.infrastructure.clients.token_price_provider import PriceServiceAdapter
from app.infrastructure.contracts.balancer_contracts import (
    Web3GaugeController,
    Web3GaugeFactory,
    Web3LiquidityGauge,
    Web3TokenAdmin,
    Web3Wallet,
    build_web3,
)
from app.shared.config import get_settings


def _subgraph_settings(subgraph: str) -> SubgraphClientSettings:
    settings = get_settings()
    return SubgraphClientSettings(
        subgraph=subgraph,
        graph_gateway_base=settings.graph_gateway_base,
        graph_api_key=settings.graph_api_key,
        timeout_seconds=settings.graph_request_timeout_seconds,
        max_retries=settings.graph_max_retries,
        min_interval_ms=settings.graph_min_interval_ms,
    )


@lru_cache(maxsize=1)
def _get_web3():
    settings = get_settings()
    if not settings.rpc_url:
        raise HTTPException(status_code=500, detail="RPC_URL is required.")
    return build_web3(settings.rpc_url)


@lru_cache(maxsize=1)
def _get_gauge_subgraph_client() -> GaugeSubgraphClient:
    settings = get_settings()
    if not settings.gauge_subgraph_url:
        raise HTTPException(status_code=500, detail="GAUGE_SUBGRAPH_URL is required.")
    return GaugeSubgraphClient(_subgraph_settings(settings.gauge_subgraph_url))


@lru_cache(maxsize=1)
def _get_pools_subgraph_client() -> PoolsSubgraphClient:
    settings = get_settings()
    if not settings.pools_subgraph_url:
        raise HTTPException(status_code=500, detail="POOLS_SUBGRAPH_URL is required.")
    return PoolsSubgraphClient(_subgraph_settings(settings.pools_subgraph_url))


@lru_cache(maxsize=1)
def _get_price_service() -> PriceService:
    settings = get_settings()
    overrides = PriceOverrides(settings.price_overrides)
    coingecko = CoingeckoPriceProvider(
        api_base=settings.coingecko_api_base,
        timeout_seconds=settings.coingecko_timeout_seconds,
        cache_ttl_seconds=settings.coingecko_cache_ttl_seconds,
    )
    return PriceService(overrides=overrides, coingecko=coingecko)


def _required_address(name: str, value: str) -> str:
    if not value:
        raise HTTPException(status_code=500, detail=f"{name} is required.")
    return value


def build_staking_session(*, account: str, pool_address: str | None = None) -> StakingSession:
    settings = get_settings()
    w3 = _get_web3()
    try:
        apr_period = AprPeriod(settings.apr_period.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=f"Invalid APR_PERIOD: {settings.apr_period}") from exc

    return StakingSession(
        wallet=Web3Wallet(w3, account),
        staking_indexer=_get_gauge_subgraph_client(),
        pools_query=_get_pools_subgraph_client(),
        token_admin=Web3TokenAdmin(
            w3, _required_address("TOKEN_ADMIN_ADDRESS", settings.token_admin_address)
        ),
        gauge_controller=Web3GaugeController(
            w3, _required_address("GAUGE_CONTROLLER_ADDRESS", settings.gauge_controller_address)
        ),
        gauge_factory=Web3GaugeFactory(
            w3, _required_address("GAUGE_FACTORY_ADDRESS", settings.gauge_factory_address)
        ),
        liquidity_gauge=lambda gauge_address: Web3LiquidityGauge(w3, gauge_address),
        price_port=PriceServiceAdapter(_get_price_service(), network=settings.network),
        reward_token_address=_required_address("REWARD_TOKEN_ADDRESS", settings.reward_token_address),
        pool_address=pool_address,
        apr_period=apr_period,
    )


def get_staking_overview_use_case() -> GetStakingOverviewUseCase:
    return GetStakingOverviewUseCase(session_factory=build_staking_session)


def get_manage_stake_use_case() -> ManageStakeUseCase:
    return ManageStakeUseCase(session_factory=build_staking_session)
