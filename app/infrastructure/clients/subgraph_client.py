from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx


logger = logging.getLogger(__name__)


class SubgraphError(RuntimeError):
    pass


@dataclass(frozen=True)
class SubgraphClientSettings:
    subgraph: str
    graph_gateway_base: str
    graph_api_key: str
    timeout_seconds: float
    max_retries: int
    min_interval_ms: int


class SubgraphClient:
    def __init__(self, settings: SubgraphClientSettings):
        self._settings = settings
        self._lock = asyncio.Lock()
        self._last_request_at = 0.0

    @property
    def url(self) -> str:
        return self._build_gateway_url(self._settings.subgraph)

    async def _post_graphql(self, *, query: str, variables: dict) -> dict:
        url = self.url
        attempts = max(1, self._settings.max_retries)
        delay = 0.25
        last_exc: Exception | None = None

        for attempt in range(1, attempts + 1):
            await self._respect_rate_limit()
            try:
                async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
                    response = await client.post(
                        url,
                        json={"query": query, "variables": variables},
                    )
                    response.raise_for_status()
                    payload = response.json()

                errors = payload.get("errors") or []
                if errors:
                    message = " | ".join(str(err.get("message", err)) for err in errors)
                    raise SubgraphError(message)

                return payload
            except (httpx.HTTPError, SubgraphError, ValueError) as exc:
                last_exc = exc
                if attempt == attempts:
                    break
                logger.warning(
                    "subgraph_client: graphql_retry attempt=%s/%s error=%s",
                    attempt,
                    attempts,
                    exc,
                )
                await asyncio.sleep(delay)
                delay *= 2

        raise SubgraphError(f"GraphQL request failed after retries: {last_exc}") from last_exc

    async def _respect_rate_limit(self) -> None:
        min_interval = max(0, self._settings.min_interval_ms) / 1000.0
        if min_interval <= 0:
            return

        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_at
            if elapsed < min_interval:
                await asyncio.sleep(min_interval - elapsed)
            self._last_request_at = time.monotonic()

    def _build_gateway_url(self, subgraph: str) -> str:
        subgraph = (subgraph or "").strip()
        if not subgraph:
            raise SubgraphError("Subgraph URL or id is not configured.")
        if subgraph.startswith("http://") or subgraph.startswith("https://"):
            return subgraph.rstrip("/")
        base = self._settings.graph_gateway_base.rstrip("/")
        api_key = self._settings.graph_api_key.strip()
        if api_key:
            return f"{base}/{api_key}/subgraphs/id/{subgraph}"
        return f"{base}/subgraphs/id/{subgraph}"
