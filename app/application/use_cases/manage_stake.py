from __future__ import annotations

from app.application.dto.staking import StakeActionInput, StakeActionOutput, StakedSharesOutput
from app.application.use_cases.get_staking_overview import StakingSessionFactory
from app.domain.exceptions import StakingInputError


class ManageStakeUseCase:
    """Stake, unstake and balance reads for a single pool.

    Transactions are returned unconfirmed; balances read right after a stake
    or unstake may not reflect it yet.
    """

    def __init__(self, *, session_factory: StakingSessionFactory):
        self._session_factory = session_factory

    async def stake(self, command: StakeActionInput) -> StakeActionOutput:
        session = self._open(command)
        tx = await session.stake_bpt()
        return StakeActionOutput(
            pool_address=session.pool_address,
            gauge_address=tx.gauge_address,
            tx_hash=tx.tx_hash,
            amount=tx.amount,
        )

    async def unstake(self, command: StakeActionInput) -> StakeActionOutput:
        session = self._open(command)
        tx = await session.unstake_bpt()
        return StakeActionOutput(
            pool_address=session.pool_address,
            gauge_address=tx.gauge_address,
            tx_hash=tx.tx_hash,
            amount=tx.amount,
        )

    async def staked_shares(self, command: StakeActionInput) -> StakedSharesOutput:
        session = self._open(command)
        gauge_address, shares = await session.get_staked_position()
        return StakedSharesOutput(
            pool_address=session.pool_address,
            gauge_address=gauge_address,
            staked_shares=shares,
        )

    def _open(self, command: StakeActionInput):
        if not command.account or not command.account.strip():
            raise StakingInputError("account is required.")
        return self._session_factory(
            account=command.account.strip(),
            pool_address=command.pool_address,
        )
