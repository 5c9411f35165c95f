"""Global Number allocation from convertible point earnings."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.db.idempotency import insert_or_ignore
from holyloy_api.models.customer import (
    GLOBAL_NUMBER_COUNTER_ID,
    GLOBAL_NUMBER_THRESHOLD,
    GlobalNumberCounter,
)
from holyloy_api.observability.rewards import get_reward_store

from .errors import ConflictRetryableError, InvariantViolationError, NotFoundError
from .events import GlobalNumberIssued, RewardEventBus
from .stores import AccountStore


@dataclass
class AssignmentResult:
    numbers_issued: list[int] = field(default_factory=list)
    remaining_balance: int = 0


class GlobalNumberAllocator:
    """Convert threshold crossings into sequential Global Number grants.

    The counter row is incremented in the database and stays locked until the
    surrounding transaction commits, so numbers are handed out gap-free and
    in commit order across concurrent callers.

    The unconverted remainder lives only in ``CustomerAccount.loyalty_balance``.
    The wallet ``reward_points`` track is a separate spendable balance that
    earnings never touch; it changes only through ledger credits and debits.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        accounts: AccountStore | None = None,
        events: RewardEventBus | None = None,
    ) -> None:
        self._db = db_session
        self._accounts = accounts or AccountStore(db_session)
        self._events = events

    async def on_points_earned(
        self,
        customer_id: UUID,
        points: int,
        *,
        is_convertible: bool = True,
    ) -> AssignmentResult:
        """Apply an earning event and issue every Global Number it unlocks."""

        if points < 0:
            logger.critical("Negative point earning rejected", customer_id=str(customer_id), points=points)
            raise InvariantViolationError(f"Earned points cannot be negative (got {points})")

        if not is_convertible or points == 0:
            account = await self._accounts.get_account(customer_id)
            if not account.is_active:
                raise NotFoundError(f"Customer {customer_id} not found or inactive")
            return AssignmentResult(numbers_issued=[], remaining_balance=int(account.loyalty_balance or 0))

        balance = await self._accounts.add_convertible_points(customer_id, points)
        issued: list[int] = []
        while balance >= GLOBAL_NUMBER_THRESHOLD:
            number = await self._claim_next_number()
            await self._accounts.record_assignment(
                customer_id,
                number,
                points_at_issuance=GLOBAL_NUMBER_THRESHOLD,
            )
            balance -= GLOBAL_NUMBER_THRESHOLD
            issued.append(number)
            get_reward_store().record_global_number_issued(number)
            logger.info("Issued global number", number=number, customer_id=str(customer_id))
            if self._events is not None:
                await self._events.publish(GlobalNumberIssued(number=number, customer_id=customer_id))

        if issued:
            await self._accounts.set_balance(customer_id, balance)
        return AssignmentResult(numbers_issued=issued, remaining_balance=balance)

    async def get_global_numbers(self, customer_id: UUID) -> list[int]:
        await self._accounts.get_account(customer_id)
        return await self._accounts.list_global_numbers(customer_id)

    async def current_number(self) -> int:
        counter = await self._db.get(GlobalNumberCounter, GLOBAL_NUMBER_COUNTER_ID, populate_existing=True)
        return int(counter.value) if counter is not None else 0

    async def _claim_next_number(self) -> int:
        stmt = (
            update(GlobalNumberCounter)
            .where(GlobalNumberCounter.id == GLOBAL_NUMBER_COUNTER_ID)
            .values(value=GlobalNumberCounter.value + 1)
            .returning(GlobalNumberCounter.value)
            .execution_options(synchronize_session=False)
        )
        try:
            number = (await self._db.execute(stmt)).scalar_one_or_none()
            if number is None:
                await insert_or_ignore(
                    self._db,
                    GlobalNumberCounter,
                    {"id": GLOBAL_NUMBER_COUNTER_ID, "value": 0},
                    conflict_columns=("id",),
                )
                number = (await self._db.execute(stmt)).scalar_one()
        except DBAPIError as error:
            logger.warning("Global number counter increment failed", error=str(error))
            raise ConflictRetryableError("Global number counter increment lost a race") from error
        return int(number)


__all__ = ["AssignmentResult", "GlobalNumberAllocator"]
