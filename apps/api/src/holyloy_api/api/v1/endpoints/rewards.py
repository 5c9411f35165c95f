"""API endpoints for Global Numbers, StepUp and Ripple rewards, and wallets."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from holyloy_api.api.dependencies.security import require_rewards_api_key
from holyloy_api.db.session import get_session, get_session_factory
from holyloy_api.models.wallet import WalletTrack
from holyloy_api.observability.rewards import get_reward_store
from holyloy_api.services.rewards import (
    ConflictRetryableError,
    InsufficientBalanceError,
    InvariantViolationError,
    NotFoundError,
    RewardCascade,
    RewardEngineError,
    run_cascade,
)


router = APIRouter(prefix="/rewards", tags=["rewards"])


class PointsEarnedRequest(BaseModel):
    points: int = Field(..., ge=0, description="Points earned by the activity")
    isConvertible: bool = Field(True, description="False for reward-sourced points")


class AssignmentResponse(BaseModel):
    customerId: UUID
    numbersIssued: List[int]
    remainingBalance: int


class GlobalNumbersResponse(BaseModel):
    customerId: UUID
    globalNumbers: List[int]


class StepUpRewardResponse(BaseModel):
    id: UUID
    recipientGlobalNumber: int
    triggerGlobalNumber: int
    multiplier: int
    rewardPoints: int
    description: str
    awardedAt: Optional[datetime]


class StepUpRewardsResponse(BaseModel):
    customerId: UUID
    totalEarned: int
    rewards: List[StepUpRewardResponse]


class RippleRewardResponse(BaseModel):
    id: UUID
    referredId: UUID
    stepUpRewardAmount: int
    rippleRewardAmount: int
    createdAt: Optional[datetime]


class RippleRewardsResponse(BaseModel):
    referrerId: UUID
    rewards: List[RippleRewardResponse]


class TrackBalanceResponse(BaseModel):
    balance: float
    earned: float
    spent: float
    transferred: float


class WalletResponse(BaseModel):
    id: UUID
    customerId: UUID
    tracks: dict[str, TrackBalanceResponse]
    lastTransactionAt: Optional[datetime]


class LedgerEntryResponse(BaseModel):
    id: UUID
    track: str
    direction: str
    amount: float
    balanceAfter: float
    description: str
    metadata: dict[str, Any]
    createdAt: Optional[datetime]


class TransferRequest(BaseModel):
    fromTrack: WalletTrack
    toTrack: WalletTrack
    amount: float = Field(..., gt=0, description="Amount debited from the source track")
    description: Optional[str] = Field(None, description="Ledger description override")


class TransferResponse(BaseModel):
    id: UUID
    fromTrack: str
    toTrack: str
    amount: float
    serviceCharge: float
    netAmount: float
    status: str


class ReplayResponse(BaseModel):
    globalNumber: int
    awarded: List[StepUpRewardResponse]


def _raise_http(error: Exception) -> None:
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    if isinstance(error, ConflictRetryableError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error)) from error
    if isinstance(error, InsufficientBalanceError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    if isinstance(error, InvariantViolationError):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error)) from error
    if isinstance(error, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    raise error


def _step_up_response(record) -> StepUpRewardResponse:
    return StepUpRewardResponse(
        id=record.id,
        recipientGlobalNumber=record.recipient_global_number,
        triggerGlobalNumber=record.trigger_global_number,
        multiplier=record.multiplier,
        rewardPoints=record.reward_points,
        description=record.description,
        awardedAt=record.awarded_at,
    )


@router.post(
    "/customers/{customer_id}/points",
    response_model=AssignmentResponse,
    summary="Apply a point-earning event",
)
async def earn_points(
    customer_id: UUID,
    payload: PointsEarnedRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AssignmentResponse:
    async def operation(cascade: RewardCascade):
        return await cascade.on_points_earned(
            customer_id,
            payload.points,
            is_convertible=payload.isConvertible,
        )

    try:
        result = await run_cascade(session_factory, operation, operation_name="points_earned")
    except (RewardEngineError, ValueError) as error:
        _raise_http(error)
    return AssignmentResponse(
        customerId=customer_id,
        numbersIssued=result.numbers_issued,
        remainingBalance=result.remaining_balance,
    )


@router.get("/customers/{customer_id}/global-numbers", response_model=GlobalNumbersResponse)
async def list_global_numbers(
    customer_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> GlobalNumbersResponse:
    try:
        numbers = await RewardCascade(session).get_global_numbers(customer_id)
    except RewardEngineError as error:
        _raise_http(error)
    return GlobalNumbersResponse(customerId=customer_id, globalNumbers=numbers)


@router.get("/customers/{customer_id}/step-up-rewards", response_model=StepUpRewardsResponse)
async def list_step_up_rewards(
    customer_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> StepUpRewardsResponse:
    cascade = RewardCascade(session)
    try:
        await cascade.accounts.get_account(customer_id)
    except RewardEngineError as error:
        _raise_http(error)
    records = await cascade.get_step_up_rewards(customer_id)
    total = await cascade.get_total_step_up_earned(customer_id)
    return StepUpRewardsResponse(
        customerId=customer_id,
        totalEarned=total,
        rewards=[_step_up_response(record) for record in records],
    )


@router.get("/customers/{customer_id}/ripple-rewards", response_model=RippleRewardsResponse)
async def list_ripple_rewards(
    customer_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> RippleRewardsResponse:
    cascade = RewardCascade(session)
    try:
        await cascade.accounts.get_account(customer_id)
    except RewardEngineError as error:
        _raise_http(error)
    records = await cascade.get_ripple_rewards(customer_id)
    return RippleRewardsResponse(
        referrerId=customer_id,
        rewards=[
            RippleRewardResponse(
                id=record.id,
                referredId=record.referred_id,
                stepUpRewardAmount=record.step_up_reward_amount,
                rippleRewardAmount=record.ripple_reward_amount,
                createdAt=record.created_at,
            )
            for record in records
        ],
    )


@router.get("/customers/{customer_id}/wallet", response_model=WalletResponse)
async def get_wallet(
    customer_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> WalletResponse:
    try:
        wallet = await RewardCascade(session).ledger.get_wallet(customer_id)
    except RewardEngineError as error:
        _raise_http(error)
    tracks = {
        track.value: TrackBalanceResponse(
            balance=float(getattr(wallet, f"{track.value}_balance") or 0),
            earned=float(getattr(wallet, f"{track.value}_earned") or 0),
            spent=float(getattr(wallet, f"{track.value}_spent") or 0),
            transferred=float(getattr(wallet, f"{track.value}_transferred") or 0),
        )
        for track in WalletTrack
    }
    return WalletResponse(
        id=wallet.id,
        customerId=wallet.customer_id,
        tracks=tracks,
        lastTransactionAt=wallet.last_transaction_at,
    )


@router.get("/customers/{customer_id}/wallet/ledger", response_model=List[LedgerEntryResponse])
async def list_wallet_ledger(
    customer_id: UUID,
    track: Optional[str] = Query(None, description="Filter by wallet track"),
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> List[LedgerEntryResponse]:
    ledger = RewardCascade(session).ledger
    track_filter: WalletTrack | None = None
    if track is not None:
        try:
            track_filter = WalletTrack(track)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported wallet track: {track}") from exc
    try:
        wallet = await ledger.get_wallet(customer_id)
    except RewardEngineError as error:
        _raise_http(error)
    entries = await ledger.list_entries(wallet.id, track=track_filter, limit=limit)
    return [
        LedgerEntryResponse(
            id=entry.id,
            track=entry.track.value,
            direction=entry.direction.value,
            amount=float(entry.amount),
            balanceAfter=float(entry.balance_after),
            description=entry.description,
            metadata=entry.metadata_json or {},
            createdAt=entry.created_at,
        )
        for entry in entries
    ]


@router.post(
    "/customers/{customer_id}/wallet/transfers",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_wallet_transfer(
    customer_id: UUID,
    payload: TransferRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> TransferResponse:
    async def operation(cascade: RewardCascade):
        return await cascade.ledger.transfer(
            customer_id,
            from_track=payload.fromTrack,
            to_track=payload.toTrack,
            amount=payload.amount,
            description=payload.description,
        )

    try:
        transfer = await run_cascade(session_factory, operation, operation_name="wallet_transfer")
    except (RewardEngineError, ValueError) as error:
        _raise_http(error)
    return TransferResponse(
        id=transfer.id,
        fromTrack=transfer.from_track.value,
        toTrack=transfer.to_track.value,
        amount=float(transfer.amount),
        serviceCharge=float(transfer.service_charge),
        netAmount=float(transfer.net_amount),
        status=transfer.status.value,
    )


@router.post(
    "/global-numbers/{number}/replay",
    response_model=ReplayResponse,
    dependencies=[Depends(require_rewards_api_key)],
    summary="Re-run StepUp evaluation for an issued Global Number",
)
async def replay_global_number(
    number: int,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ReplayResponse:
    async def operation(cascade: RewardCascade):
        return await cascade.step_up.on_global_number_issued(number)

    try:
        records = await run_cascade(session_factory, operation, operation_name="step_up_replay")
    except (RewardEngineError, ValueError) as error:
        _raise_http(error)
    return ReplayResponse(globalNumber=number, awarded=[_step_up_response(record) for record in records])


@router.get(
    "/observability",
    dependencies=[Depends(require_rewards_api_key)],
    summary="Reward cascade observability snapshot",
)
async def get_reward_observability() -> dict[str, object]:
    return get_reward_store().snapshot().as_dict()
