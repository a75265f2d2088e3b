from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from app.application.ports.clock_port import ClockPort, SystemClock
from app.application.ports.gauge_controller_port import GaugeControllerPort
from app.application.ports.gauge_factory_port import GaugeFactoryPort
from app.application.ports.liquidity_gauge_port import LiquidityGaugeFactory, LiquidityGaugePort
from app.application.ports.pools_query_port import PoolsQueryPort
from app.application.ports.staking_indexer_port import StakingIndexerPort
from app.application.ports.token_admin_port import TokenAdminPort
from app.application.ports.token_price_port import TokenPricePort
from app.application.ports.wallet_port import WalletPort
from app.application.reactive.graph import DataflowGraph
from app.application.reactive.state import Idle, Loading, QueryState, Ready, value_or
from app.domain.entities.staking import (
    GaugeShare,
    LiquidityGauge,
    StakedPool,
    StakingData,
    TransactionHandle,
)
from app.domain.exceptions import GaugeResolutionError, MissingPoolAddressError, StakingInputError
from app.domain.services.gauge_discovery import gauge_addresses, has_liquidity_gauge, staked_pool_ids
from app.domain.services.reward_rate import AprPeriod, compute_aprs, compute_payouts
from app.domain.services.units import format_units, parse_units


logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

QUERY_NAMES = (
    "user_pool_ids",
    "staking_data",
    "staked_pools",
    "pool_eligibility",
    "staked_shares",
    "inflation_rate",
    "relative_weights",
    "reward_token_price",
)

_EMPTY_STAKING_DATA = StakingData()


class StakingSession:
    """A user's staking position, recomputed as its inputs and queries change.

    Must be driven from a running event loop: changing the pool address or
    refetching dispatches queries immediately; ``settle()`` waits for them.

    Stake and unstake do not refresh any state. Once the transaction is
    confirmed the caller must call ``refetch_staked_shares()`` (and usually
    ``refetch_staking_data()``), otherwise balance reads may be stale.
    """

    def __init__(
        self,
        *,
        wallet: WalletPort,
        staking_indexer: StakingIndexerPort,
        pools_query: PoolsQueryPort,
        token_admin: TokenAdminPort,
        gauge_controller: GaugeControllerPort,
        gauge_factory: GaugeFactoryPort,
        liquidity_gauge: LiquidityGaugeFactory,
        price_port: TokenPricePort,
        reward_token_address: str,
        clock: ClockPort | None = None,
        pool_address: str | None = None,
        apr_period: AprPeriod = AprPeriod.WEEKLY,
    ):
        self._wallet = wallet
        self._staking_indexer = staking_indexer
        self._pools_query = pools_query
        self._token_admin = token_admin
        self._gauge_controller = gauge_controller
        self._gauge_factory = gauge_factory
        self._liquidity_gauge = liquidity_gauge
        self._price_port = price_port
        self._clock = clock or SystemClock()
        self._apr_period = apr_period
        self._action_locks: dict[str, asyncio.Lock] = {}
        self._graph = self._build_graph(
            pool_address=pool_address,
            reward_token_address=reward_token_address,
        )

    def _build_graph(self, *, pool_address: str | None, reward_token_address: str) -> DataflowGraph:
        graph = DataflowGraph()
        graph.add_input("account", self._wallet.account or "")
        graph.add_input("default_pool_address", pool_address or "")
        graph.add_input("pool_address_override", "")
        graph.add_input("reward_token_address", reward_token_address)

        graph.add_derived(
            "pool_address",
            lambda override, default: override or default,
            deps=("pool_address_override", "default_pool_address"),
        )

        # Identity & pool context
        graph.add_query(
            "user_pool_ids",
            self._fetch_user_pool_ids,
            key=lambda account: account.lower() if account else None,
            deps=("account",),
        )
        graph.add_derived(
            "user_pool_id_list",
            lambda state: value_or(state, ()),
            deps=("user_pool_ids",),
        )

        # Staking data aggregator
        graph.add_query(
            "staking_data",
            self._fetch_staking_data,
            key=lambda account, pool_ids: (account.lower(), pool_ids) if account and pool_ids else None,
            deps=("account", "user_pool_id_list"),
        )
        graph.add_derived(
            "user_gauge_shares",
            lambda state: value_or(state, _EMPTY_STAKING_DATA).gauge_shares,
            deps=("staking_data",),
        )
        graph.add_derived(
            "user_liquidity_gauges",
            lambda state: value_or(state, _EMPTY_STAKING_DATA).liquidity_gauges,
            deps=("staking_data",),
        )
        graph.add_derived(
            "gauge_addresses",
            gauge_addresses,
            deps=("user_gauge_shares", "user_liquidity_gauges"),
        )
        # Empty only until the first snapshot for the current key arrives.
        graph.add_derived(
            "staked_pool_ids",
            lambda state, shares: (
                () if isinstance(state, Loading) and state.previous is None else staked_pool_ids(shares)
            ),
            deps=("staking_data", "user_gauge_shares"),
        )

        # Staked position set
        graph.add_query(
            "staked_pools",
            self._fetch_staked_pools,
            key=lambda pool_ids: pool_ids or None,
            deps=("staked_pool_ids",),
        )

        # Eligibility
        graph.add_query(
            "pool_eligibility",
            self._fetch_pool_eligibility,
            key=lambda address: address.lower() if address else None,
            deps=("pool_address",),
        )
        graph.add_derived(
            "is_pool_eligible_for_staking",
            lambda state: isinstance(state, Ready) and has_liquidity_gauge(state.value),
            deps=("pool_eligibility",),
        )

        # Staked position resolver
        graph.add_query(
            "staked_shares",
            self._fetch_staked_shares,
            key=lambda account, address: (account.lower(), address) if account and address else None,
            deps=("account", "pool_address"),
        )

        # Reward-rate engine
        graph.add_query(
            "inflation_rate",
            self._fetch_inflation_rate,
            key=lambda: "inflation_rate",
            deps=(),
        )
        graph.add_query(
            "relative_weights",
            self._fetch_relative_weights,
            key=lambda addresses: addresses or None,
            deps=("gauge_addresses",),
        )
        graph.add_query(
            "reward_token_price",
            self._fetch_reward_token_price,
            key=lambda address: address.lower() if address else None,
            deps=("reward_token_address",),
        )
        graph.add_derived(
            "pool_payouts",
            lambda rate, weights, addresses: compute_payouts(
                value_or(rate, "0"),
                value_or(weights, {}),
                addresses,
            ),
            deps=("inflation_rate", "relative_weights", "gauge_addresses"),
        )
        graph.add_derived(
            "pool_aprs",
            lambda payouts, price, token: compute_aprs(
                payouts,
                lambda _address: value_or(price, None),
                reward_token_address=token,
                period=self._apr_period,
            ),
            deps=("pool_payouts", "reward_token_price", "reward_token_address"),
        )
        return graph

    # Lifecycle

    async def refresh(self) -> None:
        self._graph.propagate()
        await self._graph.settle()

    async def settle(self) -> None:
        await self._graph.settle()

    def set_pool_address(self, address: str) -> None:
        self._graph.set_input("pool_address_override", address or "")

    def refetch_staking_data(self) -> None:
        self._graph.refetch("staking_data")

    def refetch_staked_shares(self) -> None:
        self._graph.refetch("staked_shares")

    # Read accessors

    @property
    def account(self) -> str:
        return self._graph.get("account")

    @property
    def pool_address(self) -> str:
        # Read from the inputs so actions work before the first refresh.
        return self._graph.get("pool_address_override") or self._graph.get("default_pool_address")

    @property
    def user_pool_ids(self) -> tuple[str, ...]:
        return self._graph.get("user_pool_id_list")

    @property
    def user_gauge_shares(self) -> tuple[GaugeShare, ...]:
        return self._graph.get("user_gauge_shares")

    @property
    def user_liquidity_gauges(self) -> tuple[LiquidityGauge, ...]:
        return self._graph.get("user_liquidity_gauges")

    @property
    def gauge_addresses(self) -> tuple[str, ...]:
        return self._graph.get("gauge_addresses")

    @property
    def staked_pool_ids(self) -> tuple[str, ...]:
        return self._graph.get("staked_pool_ids")

    @property
    def staked_pools(self) -> tuple[StakedPool, ...]:
        return value_or(self.state("staked_pools"), ())

    @property
    def staked_shares(self) -> str:
        return value_or(self.state("staked_shares"), "0")

    @property
    def is_pool_eligible_for_staking(self) -> bool:
        return self._graph.get("is_pool_eligible_for_staking")

    @property
    def is_staked_pools_query_enabled(self) -> bool:
        return len(self.staked_pool_ids) > 0

    @property
    def inflation_rate(self) -> str:
        return value_or(self.state("inflation_rate"), "0")

    @property
    def pool_payouts(self) -> dict[str, Decimal]:
        return self._graph.get("pool_payouts")

    @property
    def pool_aprs(self) -> dict[str, Decimal]:
        return self._graph.get("pool_aprs")

    @property
    def is_loading(self) -> bool:
        staking_data = self.state("staking_data")
        return (
            isinstance(self.state("staked_pools"), Loading)
            or isinstance(staking_data, Loading)
            or isinstance(staking_data, Idle)
        )

    def state(self, name: str) -> QueryState:
        if name not in QUERY_NAMES:
            raise KeyError(f"Unknown query: {name}")
        return self._graph.get(name)

    def query_states(self) -> dict[str, QueryState]:
        return {name: self._graph.get(name) for name in QUERY_NAMES}

    # Actions

    async def get_gauge_address(self, pool_address: str) -> str:
        gauge_address = await self._gauge_factory.get_pool_gauge(pool_address=pool_address)
        if not gauge_address or gauge_address.lower() == ZERO_ADDRESS:
            raise GaugeResolutionError(f"No gauge registered for pool {pool_address}.")
        return gauge_address

    async def stake_bpt(self, pool_address: str | None = None) -> TransactionHandle:
        address = self._require_pool_address(pool_address, action="stake")
        async with self._lock_for(address):
            gauge = await self._gauge_for(address)
            balance = await self._wallet.balance_for(token_address=address)
            amount = self._to_raw_amount(balance)
            logger.info(
                "staking_session: stake pool=%s gauge=%s amount=%s",
                address,
                gauge.address,
                amount,
            )
            return await gauge.stake(amount=amount, account=self.account)

    async def unstake_bpt(self, pool_address: str | None = None) -> TransactionHandle:
        address = self._require_pool_address(pool_address, action="unstake")
        async with self._lock_for(address):
            gauge = await self._gauge_for(address)
            if address.lower() == self.pool_address.lower() and isinstance(self.state("staked_shares"), Ready):
                shares = self.staked_shares
            else:
                shares = format_units(await gauge.balance_of(account=self.account))
            amount = self._to_raw_amount(shares)
            logger.info(
                "staking_session: unstake pool=%s gauge=%s amount=%s",
                address,
                gauge.address,
                amount,
            )
            return await gauge.unstake(amount=amount, account=self.account)

    async def get_staked_shares(self, pool_address: str | None = None) -> str:
        _gauge_address, shares = await self.get_staked_position(pool_address)
        return shares

    async def get_staked_position(self, pool_address: str | None = None) -> tuple[str, str]:
        """Gauge address and staked balance for the pool, from one gauge lookup."""
        address = self._require_pool_address(pool_address, action="get staked shares")
        async with self._lock_for(address):
            gauge = await self._gauge_for(address)
            balance = await gauge.balance_of(account=self.account)
            return gauge.address, format_units(balance)

    # Query fetchers

    async def _fetch_user_pool_ids(self, account: str) -> tuple[str, ...]:
        pool_ids = await self._pools_query.get_user_pool_ids(account=account)
        return tuple(pool_ids)

    async def _fetch_staking_data(self, key: tuple[str, tuple[str, ...]]) -> StakingData:
        account, pool_ids = key
        return await self._staking_indexer.fetch_staking_data(account=account, pool_ids=list(pool_ids))

    async def _fetch_staked_pools(self, pool_ids: tuple[str, ...]) -> tuple[StakedPool, ...]:
        pools = await self._pools_query.get_pools(pool_ids=list(pool_ids))
        return tuple(pools)

    async def _fetch_pool_eligibility(self, pool_address: str) -> tuple[LiquidityGauge, ...]:
        gauges = await self._staking_indexer.fetch_pool_liquidity_gauges(pool_address=pool_address)
        return tuple(gauges)

    async def _fetch_staked_shares(self, key: tuple[str, str]) -> str:
        _account, pool_address = key
        return await self.get_staked_shares(pool_address)

    async def _fetch_inflation_rate(self, _key: str) -> str:
        return await self._token_admin.get_inflation_rate()

    async def _fetch_relative_weights(self, addresses: tuple[str, ...]) -> dict[str, str]:
        timestamp = self._clock.now_unix()
        return await self._gauge_controller.get_relative_weights(
            gauge_addresses=list(addresses),
            timestamp=timestamp,
        )

    async def _fetch_reward_token_price(self, token_address: str) -> Decimal | None:
        return await self._price_port.get_price_usd(token_address=token_address)

    # Helpers

    def _require_pool_address(self, pool_address: str | None, *, action: str) -> str:
        address = pool_address or self.pool_address
        if not address:
            raise MissingPoolAddressError(
                f"Attempted to {action}, however the staking session has no pool address."
            )
        return address

    def _lock_for(self, pool_address: str) -> asyncio.Lock:
        key = pool_address.lower()
        lock = self._action_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._action_locks[key] = lock
        return lock

    async def _gauge_for(self, pool_address: str) -> LiquidityGaugePort:
        gauge_address = await self.get_gauge_address(pool_address)
        return self._liquidity_gauge(gauge_address)

    @staticmethod
    def _to_raw_amount(value: str | None) -> int:
        try:
            return parse_units(value or "0")
        except ValueError as exc:
            raise StakingInputError(str(exc)) from exc
