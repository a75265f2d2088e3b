from __future__ import annotations

import logging

from app.domain.entities.staking import StakedPool
from app.domain.exceptions import RemoteFetchError
from app.infrastructure.clients.subgraph_client import SubgraphClient, SubgraphError
from app.infrastructure.mappers.staking_mapper import map_row_to_staked_pool


logger = logging.getLogger(__name__)


USER_POOL_SHARES_QUERY = """
query UserPoolShares($account: String!) {
  poolShares(where: { userAddress: $account, balance_gt: "0" }) {
    balance
    poolId {
      id
    }
  }
}
"""

POOLS_BY_ID_QUERY = """
query PoolsById($poolIds: [String!]!) {
  pools(where: { id_in: $poolIds }) {
    id
    address
    poolType
    symbol
    totalLiquidity
    totalShares
    tokens {
      address
      symbol
      balance
    }
  }
}
"""


class PoolsSubgraphClient(SubgraphClient):
    async def get_user_pool_ids(self, *, account: str) -> list[str]:
        user = (account or "").lower()
        if not user:
            return []

        try:
            payload = await self._post_graphql(
                query=USER_POOL_SHARES_QUERY,
                variables={"account": user},
            )
        except SubgraphError as exc:
            raise RemoteFetchError(f"Failed to fetch user pools: {exc}") from exc

        rows = (payload.get("data") or {}).get("poolShares") or []
        pool_ids: list[str] = []
        for row in rows:
            pool_id = (row.get("poolId") or {}).get("id")
            if pool_id is None or pool_id in pool_ids:
                continue
            pool_ids.append(pool_id)

        logger.info(
            "pools_subgraph_client: fetched_user_pool_ids user=%s pools=%s",
            user,
            len(pool_ids),
        )
        return pool_ids

    async def get_pools(self, *, pool_ids: list[str]) -> list[StakedPool]:
        if not pool_ids:
            return []

        try:
            payload = await self._post_graphql(
                query=POOLS_BY_ID_QUERY,
                variables={"poolIds": list(pool_ids)},
            )
        except SubgraphError as exc:
            raise RemoteFetchError(f"Failed to fetch pools: {exc}") from exc

        rows = (payload.get("data") or {}).get("pools") or []
        pools = [map_row_to_staked_pool(row) for row in rows]
        logger.info(
            "pools_subgraph_client: fetched_pools requested=%s fetched=%s",
            len(pool_ids),
            len(pools),
        )
        return pools
