from __future__ import annotations

import asyncio
from decimal import Decimal
import unittest

from app.application.reactive.state import Failed, Idle, Loading, Ready
from app.application.use_cases.staking_session import StakingSession
from app.domain.entities.staking import (
    GaugeShare,
    LiquidityGauge,
    StakedPool,
    StakingData,
    TransactionHandle,
)
from app.domain.exceptions import (
    GaugeResolutionError,
    MissingPoolAddressError,
    RemoteFetchError,
)
from app.domain.services.reward_rate import AprPeriod

ONE = 10**18
REWARD_TOKEN = "0xReward"


class FakeWallet:
    def __init__(self, account: str = "0xUser", balances: dict[str, str] | None = None):
        self._account = account
        self.balances = balances or {}

    @property
    def account(self) -> str:
        return self._account

    async def balance_for(self, *, token_address: str) -> str:
        return self.balances.get(token_address.lower(), "0")


class FakeStakingIndexer:
    def __init__(
        self,
        *,
        staking_data: StakingData | None = None,
        pool_gauges: dict[str, list[LiquidityGauge]] | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.staking_data = staking_data or StakingData()
        self.pool_gauges = pool_gauges or {}
        self.gate = gate
        self.staking_calls: list[tuple[str, tuple[str, ...]]] = []
        self.eligibility_calls: list[str] = []

    async def fetch_staking_data(self, *, account: str, pool_ids: list[str]) -> StakingData:
        self.staking_calls.append((account, tuple(pool_ids)))
        if self.gate is not None:
            await self.gate.wait()
        return self.staking_data

    async def fetch_pool_liquidity_gauges(self, *, pool_address: str) -> list[LiquidityGauge]:
        self.eligibility_calls.append(pool_address)
        return list(self.pool_gauges.get(pool_address, []))


class FakePoolsQuery:
    def __init__(self, *, user_pool_ids: list[str] | None = None, pools: list[StakedPool] | None = None):
        self.user_pool_ids = user_pool_ids or []
        self.pools = pools or []
        self.user_pool_calls: list[str] = []
        self.pool_calls: list[tuple[str, ...]] = []

    async def get_user_pool_ids(self, *, account: str) -> list[str]:
        self.user_pool_calls.append(account)
        return list(self.user_pool_ids)

    async def get_pools(self, *, pool_ids: list[str]) -> list[StakedPool]:
        self.pool_calls.append(tuple(pool_ids))
        return [pool for pool in self.pools if pool.id in pool_ids]


class FakeTokenAdmin:
    def __init__(self, rate: str = "0"):
        self.rate = rate
        self.calls = 0

    async def get_inflation_rate(self) -> str:
        self.calls += 1
        return self.rate


class FakeGaugeController:
    def __init__(self, weights: dict[str, str] | None = None, error: Exception | None = None):
        self.weights = weights or {}
        self.error = error
        self.calls: list[tuple[tuple[str, ...], int]] = []

    async def get_relative_weights(self, *, gauge_addresses: list[str], timestamp: int) -> dict[str, str]:
        self.calls.append((tuple(gauge_addresses), timestamp))
        if self.error is not None:
            raise self.error
        return {address: self.weights[address] for address in gauge_addresses if address in self.weights}


class FakeGaugeFactory:
    def __init__(self, gauges: dict[str, str] | None = None):
        self.gauges = gauges or {}
        self.calls: list[str] = []

    async def get_pool_gauge(self, *, pool_address: str) -> str:
        self.calls.append(pool_address)
        return self.gauges.get(pool_address.lower(), "0x0000000000000000000000000000000000000000")


class FakeLiquidityGauge:
    def __init__(self, address: str, *, balance: int = 0, gate: asyncio.Event | None = None):
        self.address = address
        self.balance = balance
        self.gate = gate
        self.stake_gate: asyncio.Event | None = None
        self.calls: list[tuple[str, int | str]] = []

    async def stake(self, *, amount: int, account: str) -> TransactionHandle:
        self.calls.append(("stake", amount))
        if self.stake_gate is not None:
            await self.stake_gate.wait()
        return TransactionHandle(tx_hash="0xstake", gauge_address=self.address, amount=amount)

    async def unstake(self, *, amount: int, account: str) -> TransactionHandle:
        self.calls.append(("unstake", amount))
        return TransactionHandle(tx_hash="0xunstake", gauge_address=self.address, amount=amount)

    async def balance_of(self, *, account: str) -> int:
        self.calls.append(("balance_of", account))
        if self.gate is not None:
            await self.gate.wait()
        return self.balance


class FakePricePort:
    def __init__(self, price: Decimal | None = None, error: Exception | None = None):
        self.price = price
        self.error = error

    async def get_price_usd(self, *, token_address: str) -> Decimal | None:
        if self.error is not None:
            raise self.error
        return self.price


class FixedClock:
    def __init__(self, now: int):
        self.now = now

    def now_unix(self) -> int:
        return self.now


async def _drain(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _default_staking_data() -> StakingData:
    return StakingData(
        gauge_shares=(GaugeShare(gauge_id="0xg1", pool_id="P1", balance="10"),),
        liquidity_gauges=(
            LiquidityGauge(id="0xg1", pool_id="P1"),
            LiquidityGauge(id="0xg2", pool_id="P2"),
        ),
    )


class StakingSessionTests(unittest.IsolatedAsyncioTestCase):
    def _make_session(self, **overrides) -> StakingSession:
        self.wallet = overrides.pop("wallet", FakeWallet(balances={"0xpool": "2.5"}))
        self.indexer = overrides.pop(
            "staking_indexer",
            FakeStakingIndexer(
                staking_data=_default_staking_data(),
                pool_gauges={"0xpool": [LiquidityGauge(id="0xg1", pool_id="P1")]},
            ),
        )
        self.pools = overrides.pop(
            "pools_query",
            FakePoolsQuery(
                user_pool_ids=["P1", "P2"],
                pools=[
                    StakedPool(
                        id="P1",
                        address="0xpool",
                        pool_type="Weighted",
                        symbol="B-50WETH-50DAI",
                        total_liquidity=Decimal("1000"),
                        total_shares=Decimal("10"),
                    )
                ],
            ),
        )
        self.token_admin = overrides.pop("token_admin", FakeTokenAdmin("1000"))
        self.controller = overrides.pop("gauge_controller", FakeGaugeController({"0xg1": "0.5"}))
        self.factory = overrides.pop("gauge_factory", FakeGaugeFactory({"0xpool": "0xg1"}))
        self.gauges = overrides.pop(
            "gauges",
            {"0xg1": FakeLiquidityGauge("0xg1", balance=ONE + ONE // 2)},
        )
        self.price = overrides.pop("price_port", FakePricePort(Decimal("2")))
        self.clock = overrides.pop("clock", FixedClock(1_700_000_000))
        return StakingSession(
            wallet=self.wallet,
            staking_indexer=self.indexer,
            pools_query=self.pools,
            token_admin=self.token_admin,
            gauge_controller=self.controller,
            gauge_factory=self.factory,
            liquidity_gauge=lambda address: self.gauges[address],
            price_port=self.price,
            reward_token_address=REWARD_TOKEN,
            clock=self.clock,
            **overrides,
        )

    async def test_full_pipeline_computes_payouts_and_aprs(self):
        session = self._make_session(pool_address="0xpool")

        await session.refresh()

        self.assertEqual(session.user_pool_ids, ("P1", "P2"))
        self.assertEqual(self.indexer.staking_calls, [("0xuser", ("P1", "P2"))])
        self.assertEqual(session.gauge_addresses, ("0xg1", "0xg2"))
        self.assertEqual(session.staked_pool_ids, ("P1",))
        self.assertEqual([pool.id for pool in session.staked_pools], ["P1"])
        self.assertEqual(session.pool_payouts, {"0xg1": Decimal("302400000"), "0xg2": Decimal("0")})
        self.assertEqual(session.pool_aprs, {"0xg1": Decimal("604800000"), "0xg2": Decimal("0")})
        self.assertEqual(self.controller.calls, [(("0xg1", "0xg2"), 1_700_000_000)])
        self.assertTrue(session.is_pool_eligible_for_staking)
        self.assertEqual(session.staked_shares, "1.5")
        self.assertFalse(session.is_loading)

    async def test_annual_apr_period_multiplies_weekly_payout(self):
        session = self._make_session(apr_period=AprPeriod.ANNUAL)

        await session.refresh()

        self.assertEqual(session.pool_aprs["0xg1"], Decimal("302400000") * 2 * 52)

    async def test_staked_pools_fetch_waits_for_staking_data_and_fires_once(self):
        gate = asyncio.Event()
        indexer = FakeStakingIndexer(staking_data=_default_staking_data(), gate=gate)
        session = self._make_session(staking_indexer=indexer)

        refresh = asyncio.create_task(session.refresh())
        await _drain()

        self.assertIsInstance(session.state("staking_data"), Loading)
        self.assertEqual(session.staked_pool_ids, ())
        self.assertFalse(session.is_staked_pools_query_enabled)
        self.assertIsInstance(session.state("staked_pools"), Idle)
        self.assertEqual(self.pools.pool_calls, [])
        self.assertTrue(session.is_loading)

        gate.set()
        await refresh

        self.assertEqual(self.pools.pool_calls, [("P1",)])
        self.assertIsInstance(session.state("staked_pools"), Ready)

    async def test_stale_staked_shares_for_previous_pool_are_discarded(self):
        gate_a = asyncio.Event()
        gauges = {
            "0xga": FakeLiquidityGauge("0xga", balance=ONE, gate=gate_a),
            "0xgb": FakeLiquidityGauge("0xgb", balance=2 * ONE),
        }
        session = self._make_session(
            gauge_factory=FakeGaugeFactory({"0xa": "0xga", "0xb": "0xgb"}),
            gauges=gauges,
        )
        await session.refresh()
        self.assertIsInstance(session.state("staked_shares"), Idle)

        session.set_pool_address("0xA")
        await _drain()
        self.assertIsInstance(session.state("staked_shares"), Loading)

        session.set_pool_address("0xB")
        await _drain()
        self.assertEqual(session.staked_shares, "2.0")

        gate_a.set()
        await session.settle()

        self.assertEqual(gauges["0xga"].calls, [("balance_of", "0xUser")])
        self.assertEqual(session.staked_shares, "2.0")
        self.assertEqual(session.pool_address, "0xB")

    async def test_actions_require_a_pool_address(self):
        session = self._make_session()
        await session.refresh()

        with self.assertRaises(MissingPoolAddressError):
            await session.stake_bpt()
        with self.assertRaises(MissingPoolAddressError):
            await session.unstake_bpt()
        with self.assertRaises(MissingPoolAddressError):
            await session.get_staked_shares()

    async def test_actions_still_require_pool_address_after_successful_reads(self):
        session = self._make_session()
        await session.refresh()

        self.assertEqual(await session.get_staked_shares("0xpool"), "1.5")

        with self.assertRaises(MissingPoolAddressError):
            await session.get_staked_shares()

    async def test_staked_position_resolves_gauge_once(self):
        session = self._make_session()

        position = await session.get_staked_position("0xpool")

        self.assertEqual(position, ("0xg1", "1.5"))
        self.assertEqual(self.factory.calls, ["0xpool"])

    async def test_eligibility_is_false_without_pool_address(self):
        session = self._make_session()

        await session.refresh()

        self.assertIsInstance(session.state("pool_eligibility"), Idle)
        self.assertFalse(session.is_pool_eligible_for_staking)
        self.assertEqual(self.indexer.eligibility_calls, [])

    async def test_eligibility_query_uses_lower_cased_pool_address(self):
        session = self._make_session(pool_address="0xPOOL")

        await session.refresh()

        self.assertEqual(self.indexer.eligibility_calls, ["0xpool"])
        self.assertTrue(session.is_pool_eligible_for_staking)

    async def test_pool_without_gauge_is_not_eligible(self):
        session = self._make_session(pool_address="0xother")

        await session.refresh()

        self.assertIsInstance(session.state("pool_eligibility"), Ready)
        self.assertFalse(session.is_pool_eligible_for_staking)

    async def test_override_takes_precedence_over_constructor_pool_address(self):
        session = self._make_session(pool_address="0xother")
        await session.refresh()

        session.set_pool_address("0xpool")
        await session.settle()

        self.assertEqual(session.pool_address, "0xpool")
        self.assertTrue(session.is_pool_eligible_for_staking)
        self.assertEqual(session.staked_shares, "1.5")

    async def test_stake_transfers_full_wallet_balance(self):
        session = self._make_session(pool_address="0xpool")

        tx = await session.stake_bpt()

        self.assertEqual(tx.tx_hash, "0xstake")
        self.assertEqual(self.gauges["0xg1"].calls, [("stake", 5 * ONE // 2)])

    async def test_unstake_withdraws_tracked_staked_shares(self):
        session = self._make_session(pool_address="0xpool")
        await session.refresh()

        tx = await session.unstake_bpt()

        self.assertEqual(tx.amount, ONE + ONE // 2)
        self.assertIn(("unstake", ONE + ONE // 2), self.gauges["0xg1"].calls)

    async def test_unstake_reads_balance_for_other_pool(self):
        gauges = {
            "0xg1": FakeLiquidityGauge("0xg1", balance=ONE),
            "0xg9": FakeLiquidityGauge("0xg9", balance=3 * ONE),
        }
        session = self._make_session(
            pool_address="0xpool",
            gauge_factory=FakeGaugeFactory({"0xpool": "0xg1", "0xnine": "0xg9"}),
            gauges=gauges,
        )
        await session.refresh()

        tx = await session.unstake_bpt("0xnine")

        self.assertEqual(tx.amount, 3 * ONE)

    async def test_gauge_resolution_failure_blocks_stake(self):
        session = self._make_session(pool_address="0xnogauge")

        with self.assertRaises(GaugeResolutionError):
            await session.stake_bpt()

    async def test_stake_and_balance_read_are_serialized_per_pool(self):
        session = self._make_session(pool_address="0xpool")
        gauge = self.gauges["0xg1"]
        gauge.stake_gate = asyncio.Event()

        stake = asyncio.create_task(session.stake_bpt())
        await _drain()
        read = asyncio.create_task(session.get_staked_shares())
        await _drain()

        self.assertEqual([name for name, _ in gauge.calls], ["stake"])

        gauge.stake_gate.set()
        await stake
        self.assertEqual(await read, "1.5")
        self.assertEqual([name for name, _ in gauge.calls], ["stake", "balance_of"])

    async def test_refetch_staked_shares_rereads_after_confirmation(self):
        session = self._make_session(pool_address="0xpool")
        await session.refresh()
        self.assertEqual(session.staked_shares, "1.5")

        self.gauges["0xg1"].balance = 0
        session.refetch_staked_shares()
        self.assertIsInstance(session.state("staked_shares"), Loading)
        self.assertEqual(session.staked_shares, "1.5")
        await session.settle()

        self.assertEqual(session.staked_shares, "0.0")

    async def test_refetch_staking_data_keeps_staked_pools_until_ids_change(self):
        session = self._make_session()
        await session.refresh()
        self.indexer.gate = asyncio.Event()

        session.refetch_staking_data()
        await _drain()

        self.assertEqual(session.state("staking_data"), Loading(previous=_default_staking_data()))
        self.assertEqual(session.staked_pool_ids, ("P1",))
        self.assertTrue(session.is_staked_pools_query_enabled)
        self.assertIsInstance(session.state("staked_pools"), Ready)
        self.assertEqual([pool.id for pool in session.staked_pools], ["P1"])

        self.indexer.gate.set()
        await session.settle()

        self.assertEqual(len(self.indexer.staking_calls), 2)
        self.assertEqual(self.pools.pool_calls, [("P1",)])

    async def test_refetch_staking_data_fetches_staked_pools_when_ids_change(self):
        session = self._make_session()
        await session.refresh()

        self.indexer.staking_data = StakingData(
            gauge_shares=(
                GaugeShare(gauge_id="0xg1", pool_id="P1", balance="10"),
                GaugeShare(gauge_id="0xg2", pool_id="P2", balance="4"),
            ),
            liquidity_gauges=_default_staking_data().liquidity_gauges,
        )
        session.refetch_staking_data()
        await session.settle()

        self.assertEqual(session.staked_pool_ids, ("P1", "P2"))
        self.assertEqual(self.pools.pool_calls, [("P1",), ("P1", "P2")])

    async def test_failed_weights_degrade_to_zero_payouts(self):
        session = self._make_session(
            gauge_controller=FakeGaugeController(error=RemoteFetchError("rpc down")),
        )

        await session.refresh()

        self.assertIsInstance(session.state("relative_weights"), Failed)
        self.assertEqual(session.pool_payouts, {"0xg1": Decimal("0"), "0xg2": Decimal("0")})

    async def test_missing_price_degrades_to_zero_aprs(self):
        session = self._make_session(price_port=FakePricePort(error=RemoteFetchError("no price")))

        await session.refresh()

        self.assertEqual(session.pool_payouts["0xg1"], Decimal("302400000"))
        self.assertEqual(session.pool_aprs["0xg1"], Decimal("0"))

    async def test_inflation_rate_is_fetched_once(self):
        session = self._make_session(pool_address="0xpool")
        await session.refresh()

        session.set_pool_address("0xother")
        session.refetch_staking_data()
        await session.settle()

        self.assertEqual(self.token_admin.calls, 1)
        self.assertEqual(session.inflation_rate, "1000")

    async def test_no_user_pools_keeps_staking_data_idle(self):
        session = self._make_session(pools_query=FakePoolsQuery(user_pool_ids=[]))

        await session.refresh()

        self.assertIsInstance(session.state("staking_data"), Idle)
        self.assertEqual(self.indexer.staking_calls, [])
        self.assertEqual(session.gauge_addresses, ())
        self.assertEqual(session.pool_payouts, {})
        self.assertIsInstance(session.state("relative_weights"), Idle)
        self.assertTrue(session.is_loading)


if __name__ == "__main__":
    unittest.main()
