from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _json(name: str) -> dict:
    value = _env(name)
    if not value:
        return {}
    return json.loads(value)


@dataclass(frozen=True)
class Settings:
    network: str
    rpc_url: str
    gauge_subgraph_url: str
    pools_subgraph_url: str
    graph_api_key: str
    graph_gateway_base: str
    graph_request_timeout_seconds: float
    graph_max_retries: int
    graph_min_interval_ms: int
    token_admin_address: str
    gauge_controller_address: str
    gauge_factory_address: str
    reward_token_address: str
    price_overrides: dict
    coingecko_api_base: str
    coingecko_timeout_seconds: float
    coingecko_cache_ttl_seconds: float
    apr_period: str
    log_level: str
    api_token: str


def get_settings() -> Settings:
    return Settings(
        network=_env("NETWORK", "ethereum"),
        rpc_url=_env("RPC_URL", ""),
        gauge_subgraph_url=_env("GAUGE_SUBGRAPH_URL", ""),
        pools_subgraph_url=_env("POOLS_SUBGRAPH_URL", ""),
        graph_api_key=_env("GRAPH_API_KEY", ""),
        graph_gateway_base=_env("GRAPH_GATEWAY_BASE", "https://gateway.thegraph.com/api"),
        graph_request_timeout_seconds=float(_env("GRAPH_REQUEST_TIMEOUT_SECONDS", "10")),
        graph_max_retries=int(_env("GRAPH_MAX_RETRIES", "3")),
        graph_min_interval_ms=int(_env("GRAPH_MIN_INTERVAL_MS", "0")),
        token_admin_address=_env("TOKEN_ADMIN_ADDRESS", ""),
        gauge_controller_address=_env("GAUGE_CONTROLLER_ADDRESS", ""),
        gauge_factory_address=_env("GAUGE_FACTORY_ADDRESS", ""),
        reward_token_address=_env("REWARD_TOKEN_ADDRESS", ""),
        price_overrides=_json("PRICE_OVERRIDES"),
        coingecko_api_base=_env("COINGECKO_API_BASE", "https://api.coingecko.com/api/v3"),
        coingecko_timeout_seconds=float(_env("COINGECKO_TIMEOUT_SECONDS", "10")),
        coingecko_cache_ttl_seconds=float(_env("COINGECKO_CACHE_TTL_SECONDS", "300")),
        apr_period=_env("APR_PERIOD", "weekly"),
        log_level=_env("LOG_LEVEL", "INFO"),
        api_token=_env("API_TOKEN", ""),
    )
