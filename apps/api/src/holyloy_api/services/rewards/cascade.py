"""Wiring of allocator, engines and hooks into one event-driven cascade."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from holyloy_api.core.settings import settings
from holyloy_api.models.rewards import RippleRewardRecord, StepUpRewardRecord
from holyloy_api.observability.rewards import get_reward_store
from holyloy_api.observability.tracing import cascade_span

from .allocator import AssignmentResult, GlobalNumberAllocator
from .errors import ConflictRetryableError
from .events import GlobalNumberIssued, RewardEventBus, RippleCredited, StepUpCredited
from .hooks import ThresholdHookDispatcher, get_threshold_dispatcher
from .ledger import WalletLedgerService
from .ripple import RippleRewardEngine
from .stepup import StepUpRewardEngine, StepUpTier
from .stores import AccountStore, ReferralStore


T = TypeVar("T")


class RewardCascade:
    """Per-session facade over the Global Number and reward cascade.

    Subscription order on ``StepUpCredited`` is Ripple first, then threshold
    hooks; ``RippleCredited`` only reaches the hooks, so ripples stay single-hop.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        hooks: ThresholdHookDispatcher | None = None,
        step_up_table: Sequence[StepUpTier] | None = None,
    ) -> None:
        self._db = db_session
        self.events = RewardEventBus()
        self.hooks = hooks or get_threshold_dispatcher()
        self.accounts = AccountStore(db_session)
        self.referrals = ReferralStore(db_session)
        self.ledger = WalletLedgerService(db_session)
        self.allocator = GlobalNumberAllocator(db_session, accounts=self.accounts, events=self.events)
        self.step_up = StepUpRewardEngine(
            db_session,
            accounts=self.accounts,
            ledger=self.ledger,
            events=self.events,
            table=step_up_table,
        )
        self.ripple = RippleRewardEngine(
            db_session,
            referrals=self.referrals,
            ledger=self.ledger,
            events=self.events,
        )

        self.events.subscribe(GlobalNumberIssued, self._on_global_number_issued)
        self.events.subscribe(StepUpCredited, self._ripple_on_step_up)
        self.events.subscribe(StepUpCredited, self._hooks_on_step_up)
        self.events.subscribe(RippleCredited, self._hooks_on_ripple)

    @property
    def session(self) -> AsyncSession:
        return self._db

    async def on_points_earned(
        self,
        customer_id: UUID,
        points: int,
        *,
        is_convertible: bool = True,
    ) -> AssignmentResult:
        return await self.allocator.on_points_earned(customer_id, points, is_convertible=is_convertible)

    async def get_global_numbers(self, customer_id: UUID) -> list[int]:
        return await self.allocator.get_global_numbers(customer_id)

    async def get_step_up_rewards(self, customer_id: UUID) -> list[StepUpRewardRecord]:
        return await self.step_up.get_step_up_rewards(customer_id)

    async def get_total_step_up_earned(self, customer_id: UUID) -> int:
        return await self.step_up.get_total_step_up_earned(customer_id)

    async def get_ripple_rewards(self, referrer_id: UUID) -> list[RippleRewardRecord]:
        return await self.ripple.get_ripple_rewards(referrer_id)

    async def _on_global_number_issued(self, event: GlobalNumberIssued) -> list[StepUpRewardRecord]:
        return await self.step_up.on_global_number_issued(event.number)

    async def _ripple_on_step_up(self, event: StepUpCredited) -> RippleRewardRecord | None:
        return await self.ripple.on_step_up_credited(event.customer_id, event.amount)

    async def _hooks_on_step_up(self, event: StepUpCredited) -> int:
        return await self.hooks.dispatch(
            self._db,
            event.customer_id,
            event.amount,
            source="step_up",
            reference_id=event.record_id,
        )

    async def _hooks_on_ripple(self, event: RippleCredited) -> int:
        return await self.hooks.dispatch(
            self._db,
            event.referrer_id,
            event.amount,
            source="ripple",
            reference_id=event.record_id,
        )


async def run_cascade(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[RewardCascade], Awaitable[T]],
    *,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
    operation_name: str = "reward_cascade",
    hooks: ThresholdHookDispatcher | None = None,
) -> T:
    """Run ``operation`` in its own transaction, retrying lost races.

    Each attempt gets a fresh session and cascade; the transaction is committed
    only when the whole operation succeeded. ``ConflictRetryableError`` and
    database lock errors are retried, everything else propagates.
    """

    attempts = max_attempts or settings.reward_cascade_max_attempts
    backoff = settings.reward_cascade_retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    for attempt in range(1, attempts + 1):
        async with session_factory() as session:
            try:
                with cascade_span(operation_name, attempt):
                    result = await operation(RewardCascade(session, hooks=hooks))
                    await session.commit()
                return result
            except (ConflictRetryableError, OperationalError) as error:
                await session.rollback()
                if attempt >= attempts:
                    logger.error(
                        "Reward cascade retries exhausted",
                        operation=operation_name,
                        attempts=attempt,
                        error=str(error),
                    )
                    if isinstance(error, ConflictRetryableError):
                        raise
                    raise ConflictRetryableError(f"{operation_name} did not complete after {attempt} attempts") from error
                get_reward_store().record_conflict_retry(operation_name)
                logger.warning(
                    "Retrying reward cascade after conflict",
                    operation=operation_name,
                    attempt=attempt,
                    error=str(error),
                )
            except Exception:
                await session.rollback()
                raise
        await asyncio.sleep(backoff * attempt)

    raise ConflictRetryableError(f"{operation_name} was not attempted")  # pragma: no cover


__all__ = ["RewardCascade", "run_cascade"]
