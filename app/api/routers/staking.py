from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException

from app.api.auth import require_jwt
from app.api.deps import get_manage_stake_use_case, get_staking_overview_use_case
from app.api.schemas.staking import (
    GaugeShareResponse,
    LiquidityGaugeResponse,
    PoolTokenResponse,
    QueryStatusResponse,
    StakeActionRequest,
    StakeActionResponse,
    StakedPoolResponse,
    StakedSharesResponse,
    StakingOverviewResponse,
)
from app.application.dto.staking import GetStakingOverviewInput, StakeActionInput, StakeActionOutput
from app.application.use_cases.get_staking_overview import GetStakingOverviewUseCase
from app.application.use_cases.manage_stake import ManageStakeUseCase
from app.domain.exceptions import (
    DomainError,
    GaugeResolutionError,
    MissingPoolAddressError,
    RemoteFetchError,
    StakingInputError,
    TransactionError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _dec_to_str_or_none(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _raise_http(exc: DomainError) -> None:
    if isinstance(exc, (MissingPoolAddressError, StakingInputError)):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, GaugeResolutionError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, TransactionError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, RemoteFetchError):
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def _action_response(result: StakeActionOutput) -> StakeActionResponse:
    return StakeActionResponse(
        pool_address=result.pool_address,
        gauge_address=result.gauge_address,
        tx_hash=result.tx_hash,
        amount=str(result.amount),
    )


@router.get("/v1/staking/overview", response_model=StakingOverviewResponse)
async def get_staking_overview(
    account: str,
    pool_address: str | None = None,
    _token: str = Depends(require_jwt),
    use_case: GetStakingOverviewUseCase = Depends(get_staking_overview_use_case),
):
    try:
        result = await use_case.execute(
            GetStakingOverviewInput(account=account, pool_address=pool_address)
        )
    except DomainError as exc:
        _raise_http(exc)

    return StakingOverviewResponse(
        account=result.account,
        pool_address=result.pool_address,
        user_pool_ids=result.user_pool_ids,
        gauge_shares=[
            GaugeShareResponse(gauge_id=row.gauge_id, pool_id=row.pool_id, balance=row.balance)
            for row in result.gauge_shares
        ],
        liquidity_gauges=[
            LiquidityGaugeResponse(id=row.id, pool_id=row.pool_id) for row in result.liquidity_gauges
        ],
        gauge_addresses=result.gauge_addresses,
        staked_pool_ids=result.staked_pool_ids,
        staked_pools=[
            StakedPoolResponse(
                id=pool.id,
                address=pool.address,
                pool_type=pool.pool_type,
                symbol=pool.symbol,
                total_liquidity=_dec_to_str_or_none(pool.total_liquidity),
                total_shares=_dec_to_str_or_none(pool.total_shares),
                tokens=[
                    PoolTokenResponse(
                        address=token.address,
                        symbol=token.symbol,
                        balance=_dec_to_str_or_none(token.balance),
                    )
                    for token in pool.tokens
                ],
            )
            for pool in result.staked_pools
        ],
        staked_shares=result.staked_shares,
        is_pool_eligible_for_staking=result.is_pool_eligible_for_staking,
        inflation_rate=result.inflation_rate,
        pool_payouts={address: str(value) for address, value in result.pool_payouts.items()},
        pool_aprs={address: str(value) for address, value in result.pool_aprs.items()},
        is_loading=result.is_loading,
        queries={
            name: QueryStatusResponse(state=status.state, error=status.error)
            for name, status in result.queries.items()
        },
    )


@router.get("/v1/staking/staked-shares", response_model=StakedSharesResponse)
async def get_staked_shares(
    account: str,
    pool_address: str,
    _token: str = Depends(require_jwt),
    use_case: ManageStakeUseCase = Depends(get_manage_stake_use_case),
):
    try:
        result = await use_case.staked_shares(
            StakeActionInput(account=account, pool_address=pool_address)
        )
    except DomainError as exc:
        _raise_http(exc)

    return StakedSharesResponse(
        pool_address=result.pool_address,
        gauge_address=result.gauge_address,
        staked_shares=result.staked_shares,
    )


@router.post("/v1/staking/stake", response_model=StakeActionResponse)
async def stake(
    req: StakeActionRequest,
    _token: str = Depends(require_jwt),
    use_case: ManageStakeUseCase = Depends(get_manage_stake_use_case),
):
    try:
        result = await use_case.stake(
            StakeActionInput(account=req.account, pool_address=req.pool_address)
        )
    except DomainError as exc:
        logger.warning(
            "staking_router: stake_failed account=%s pool=%s detail=%s",
            req.account,
            req.pool_address,
            exc,
        )
        _raise_http(exc)

    return _action_response(result)


@router.post("/v1/staking/unstake", response_model=StakeActionResponse)
async def unstake(
    req: StakeActionRequest,
    _token: str = Depends(require_jwt),
    use_case: ManageStakeUseCase = Depends(get_manage_stake_use_case),
):
    try:
        result = await use_case.unstake(
            StakeActionInput(account=req.account, pool_address=req.pool_address)
        )
    except DomainError as exc:
        logger.warning(
            "staking_router: unstake_failed account=%s pool=%s detail=%s",
            req.account,
            req.pool_address,
            exc,
        )
        _raise_http(exc)

    return _action_response(result)
