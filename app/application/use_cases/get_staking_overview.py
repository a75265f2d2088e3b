from __future__ import annotations

from typing import Callable

from app.application.dto.staking import (
    GetStakingOverviewInput,
    QueryStatusOutput,
    StakingOverviewOutput,
)
from app.application.reactive.state import Failed, state_tag
from app.application.use_cases.staking_session import StakingSession
from app.domain.exceptions import StakingInputError

StakingSessionFactory = Callable[..., StakingSession]


class GetStakingOverviewUseCase:
    def __init__(self, *, session_factory: StakingSessionFactory):
        self._session_factory = session_factory

    async def execute(self, command: GetStakingOverviewInput) -> StakingOverviewOutput:
        if not command.account or not command.account.strip():
            raise StakingInputError("account is required.")

        session = self._session_factory(
            account=command.account.strip(),
            pool_address=command.pool_address,
        )
        await session.refresh()

        queries = {}
        for name, state in session.query_states().items():
            queries[name] = QueryStatusOutput(
                state=state_tag(state),
                error=str(state.error) if isinstance(state, Failed) else None,
            )

        return StakingOverviewOutput(
            account=session.account,
            pool_address=session.pool_address or None,
            user_pool_ids=list(session.user_pool_ids),
            gauge_shares=list(session.user_gauge_shares),
            liquidity_gauges=list(session.user_liquidity_gauges),
            gauge_addresses=list(session.gauge_addresses),
            staked_pool_ids=list(session.staked_pool_ids),
            staked_pools=list(session.staked_pools),
            staked_shares=session.staked_shares,
            is_pool_eligible_for_staking=session.is_pool_eligible_for_staking,
            inflation_rate=session.inflation_rate,
            pool_payouts=dict(session.pool_payouts),
            pool_aprs=dict(session.pool_aprs),
            is_loading=session.is_loading,
            queries=queries,
        )
