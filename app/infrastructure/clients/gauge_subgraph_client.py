from __future__ import annotations

import logging

from app.domain.entities.staking import LiquidityGauge, StakingData
from app.domain.exceptions import RemoteFetchError
from app.infrastructure.clients.subgraph_client import SubgraphClient, SubgraphError
from app.infrastructure.mappers.staking_mapper import (
    map_payload_to_staking_data,
    map_row_to_liquidity_gauge,
)


logger = logging.getLogger(__name__)


STAKING_DATA_QUERY = """
query StakingData($user: String!, $poolIds: [String!]!) {
  gaugeShares(where: { user: $user }) {
    balance
    gauge {
      id
      poolId
    }
  }
  liquidityGauges(where: { poolId_in: $poolIds }) {
    id
    poolId
  }
}
"""

POOL_LIQUIDITY_GAUGES_QUERY = """
query PoolLiquidityGauges($poolAddress: String!) {
  liquidityGauges(where: { poolAddress: $poolAddress }) {
    id
    poolId
  }
}
"""


class GaugeSubgraphClient(SubgraphClient):
    async def fetch_staking_data(self, *, account: str, pool_ids: list[str]) -> StakingData:
        if not pool_ids:
            return StakingData()

        user = account.lower()
        try:
            payload = await self._post_graphql(
                query=STAKING_DATA_QUERY,
                variables={"user": user, "poolIds": list(pool_ids)},
            )
        except SubgraphError as exc:
            raise RemoteFetchError(f"Failed to fetch staking data: {exc}") from exc

        data = map_payload_to_staking_data(payload.get("data") or {})
        logger.info(
            "gauge_subgraph_client: fetched_staking_data user=%s pool_ids=%s gauge_shares=%s liquidity_gauges=%s",
            user,
            len(pool_ids),
            len(data.gauge_shares),
            len(data.liquidity_gauges),
        )
        return data

    async def fetch_pool_liquidity_gauges(self, *, pool_address: str) -> list[LiquidityGauge]:
        address = (pool_address or "").lower()
        if not address:
            return []

        try:
            payload = await self._post_graphql(
                query=POOL_LIQUIDITY_GAUGES_QUERY,
                variables={"poolAddress": address},
            )
        except SubgraphError as exc:
            raise RemoteFetchError(f"Failed to fetch pool liquidity gauges: {exc}") from exc

        rows = (payload.get("data") or {}).get("liquidityGauges") or []
        gauges = [map_row_to_liquidity_gauge(row) for row in rows]
        logger.info(
            "gauge_subgraph_client: fetched_pool_liquidity_gauges pool=%s gauges=%s",
            address,
            len(gauges),
        )
        return gauges
