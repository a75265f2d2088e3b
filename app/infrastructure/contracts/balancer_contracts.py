from __future__ import annotations

import asyncio
import logging

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from app.domain.entities.staking import TransactionHandle
from app.domain.exceptions import GaugeResolutionError, RemoteFetchError, TransactionError
from app.domain.services.units import POOL_TOKEN_DECIMALS, format_units
from app.infrastructure.contracts.abis import (
    ERC20_ABI,
    GAUGE_CONTROLLER_ABI,
    GAUGE_FACTORY_ABI,
    LIQUIDITY_GAUGE_ABI,
    TOKEN_ADMIN_ABI,
)


logger = logging.getLogger(__name__)

# Failures raised by the contract call itself or by the HTTP transport underneath.
RPC_ERRORS = (Web3Exception, aiohttp.ClientError, ValueError, OSError, asyncio.TimeoutError)


def build_web3(rpc_url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))


def _checksum(address: str) -> str:
    return AsyncWeb3.to_checksum_address(address)


class Web3TokenAdmin:
    def __init__(self, w3: AsyncWeb3, address: str):
        self._contract = w3.eth.contract(address=_checksum(address), abi=TOKEN_ADMIN_ABI)

    async def get_inflation_rate(self) -> str:
        try:
            raw = await self._contract.functions.getInflationRate().call()
        except RPC_ERRORS as exc:
            raise RemoteFetchError(f"Failed to read inflation rate: {exc}") from exc
        return format_units(raw, POOL_TOKEN_DECIMALS)


class Web3GaugeController:
    def __init__(self, w3: AsyncWeb3, address: str):
        self._contract = w3.eth.contract(address=_checksum(address), abi=GAUGE_CONTROLLER_ABI)

    async def get_relative_weights(
        self,
        *,
        gauge_addresses: list[str],
        timestamp: int,
    ) -> dict[str, str]:
        async def _weight(gauge_address: str) -> tuple[str, str]:
            raw = await self._contract.functions.gauge_relative_weight(
                _checksum(gauge_address),
                int(timestamp),
            ).call()
            return gauge_address, format_units(raw, POOL_TOKEN_DECIMALS)

        try:
            results = await asyncio.gather(*(_weight(address) for address in gauge_addresses))
        except RPC_ERRORS as exc:
            raise RemoteFetchError(f"Failed to read gauge relative weights: {exc}") from exc

        logger.info(
            "gauge_controller: fetched_relative_weights gauges=%s timestamp=%s",
            len(results),
            timestamp,
        )
        return dict(results)


class Web3GaugeFactory:
    def __init__(self, w3: AsyncWeb3, address: str):
        self._contract = w3.eth.contract(address=_checksum(address), abi=GAUGE_FACTORY_ABI)

    async def get_pool_gauge(self, *, pool_address: str) -> str:
        try:
            return await self._contract.functions.getPoolGauge(_checksum(pool_address)).call()
        except RPC_ERRORS as exc:
            raise GaugeResolutionError(
                f"Failed to resolve gauge for pool {pool_address}: {exc}"
            ) from exc


class Web3LiquidityGauge:
    """Stake, unstake and balance reads against one gauge.

    Transactions are sent with ``from`` set to the account; signing is left to
    the connected node.
    """

    def __init__(self, w3: AsyncWeb3, address: str):
        self.address = _checksum(address)
        self._contract = w3.eth.contract(address=self.address, abi=LIQUIDITY_GAUGE_ABI)

    async def stake(self, *, amount: int, account: str) -> TransactionHandle:
        return await self._transact("deposit", amount=amount, account=account)

    async def unstake(self, *, amount: int, account: str) -> TransactionHandle:
        return await self._transact("withdraw", amount=amount, account=account)

    async def balance_of(self, *, account: str) -> int:
        try:
            return int(await self._contract.functions.balanceOf(_checksum(account)).call())
        except RPC_ERRORS as exc:
            raise RemoteFetchError(f"Failed to read gauge balance: {exc}") from exc

    async def _transact(self, method: str, *, amount: int, account: str) -> TransactionHandle:
        try:
            tx_hash = await getattr(self._contract.functions, method)(int(amount)).transact(
                {"from": _checksum(account)}
            )
        except RPC_ERRORS as exc:
            logger.warning(
                "liquidity_gauge: transaction_failed method=%s gauge=%s amount=%s error=%s",
                method,
                self.address,
                amount,
                exc,
            )
            raise TransactionError(f"{method} on gauge {self.address} failed: {exc}") from exc

        handle = TransactionHandle(
            tx_hash=AsyncWeb3.to_hex(tx_hash),
            gauge_address=self.address,
            amount=int(amount),
        )
        logger.info(
            "liquidity_gauge: transaction_sent method=%s gauge=%s amount=%s tx=%s",
            method,
            self.address,
            amount,
            handle.tx_hash,
        )
        return handle


class Web3Wallet:
    def __init__(self, w3: AsyncWeb3, account: str):
        self._w3 = w3
        self._account = account

    @property
    def account(self) -> str:
        return self._account

    async def balance_for(self, *, token_address: str) -> str:
        try:
            contract = self._w3.eth.contract(address=_checksum(token_address), abi=ERC20_ABI)
            raw = await contract.functions.balanceOf(_checksum(self._account)).call()
        except RPC_ERRORS as exc:
            raise RemoteFetchError(f"Failed to read token balance: {exc}") from exc
        return format_units(raw, POOL_TOKEN_DECIMALS)
