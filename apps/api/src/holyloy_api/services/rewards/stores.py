"""SQLAlchemy-backed account and referral stores used by the cascade."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.db.idempotency import insert_or_ignore
from holyloy_api.models.customer import (
    GLOBAL_NUMBER_THRESHOLD,
    CustomerAccount,
    GlobalNumberAssignment,
    Referral,
)

from .errors import InvariantViolationError, NotFoundError


class AccountStore:
    """Customer point balances and the Global Numbers each customer holds."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_account(self, customer_id: UUID) -> CustomerAccount:
        stmt = (
            select(CustomerAccount)
            .where(CustomerAccount.id == customer_id)
            .execution_options(populate_existing=True)
        )
        account = (await self._db.execute(stmt)).scalar_one_or_none()
        if account is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return account

    async def get_balance(self, customer_id: UUID) -> int:
        account = await self.get_account(customer_id)
        return int(account.loyalty_balance or 0)

    async def add_convertible_points(self, customer_id: UUID, points: int) -> int:
        """Atomically add earned points and return the new unconverted balance.

        The increment happens in the database so concurrent earnings for the
        same customer serialize on the account row.
        """

        stmt = (
            update(CustomerAccount)
            .where(CustomerAccount.id == customer_id, CustomerAccount.is_active.is_(True))
            .values(
                loyalty_balance=CustomerAccount.loyalty_balance + points,
                lifetime_earned=CustomerAccount.lifetime_earned + points,
            )
            .returning(CustomerAccount.loyalty_balance)
            .execution_options(synchronize_session=False)
        )
        balance = (await self._db.execute(stmt)).scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"Customer {customer_id} not found or inactive")
        return int(balance)

    async def set_balance(self, customer_id: UUID, value: int) -> None:
        if value < 0:
            raise InvariantViolationError(f"Loyalty balance cannot be negative (got {value})")
        stmt = (
            update(CustomerAccount)
            .where(CustomerAccount.id == customer_id)
            .values(loyalty_balance=value)
            .returning(CustomerAccount.id)
            .execution_options(synchronize_session=False)
        )
        if (await self._db.execute(stmt)).scalar_one_or_none() is None:
            raise NotFoundError(f"Customer {customer_id} not found")

    async def record_assignment(
        self,
        customer_id: UUID,
        number: int,
        *,
        points_at_issuance: int = GLOBAL_NUMBER_THRESHOLD,
    ) -> UUID:
        if points_at_issuance != GLOBAL_NUMBER_THRESHOLD:
            raise InvariantViolationError(
                f"Global Numbers are issued for exactly {GLOBAL_NUMBER_THRESHOLD} points (got {points_at_issuance})"
            )
        if number <= 0:
            raise InvariantViolationError(f"Global Numbers are positive (got {number})")

        assignment_id = await insert_or_ignore(
            self._db,
            GlobalNumberAssignment,
            {
                "number": number,
                "customer_id": customer_id,
                "points_at_issuance": points_at_issuance,
            },
            conflict_columns=("number",),
        )
        if assignment_id is None:
            logger.critical("Global Number reused", number=number, customer_id=str(customer_id))
            raise InvariantViolationError(f"Global Number {number} has already been issued")
        return assignment_id

    async def find_assignment(self, number: int) -> GlobalNumberAssignment | None:
        stmt = select(GlobalNumberAssignment).where(GlobalNumberAssignment.number == number)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def list_global_numbers(self, customer_id: UUID) -> list[int]:
        stmt = (
            select(GlobalNumberAssignment.number)
            .where(GlobalNumberAssignment.customer_id == customer_id)
            .order_by(GlobalNumberAssignment.number.asc())
        )
        return [int(number) for number in (await self._db.execute(stmt)).scalars().all()]

    async def list_assigned_numbers(self, start: int, end: int) -> list[int]:
        stmt = (
            select(GlobalNumberAssignment.number)
            .where(GlobalNumberAssignment.number >= start, GlobalNumberAssignment.number <= end)
            .order_by(GlobalNumberAssignment.number.asc())
        )
        return [int(number) for number in (await self._db.execute(stmt)).scalars().all()]


class ReferralStore:
    """Referrer relationships; a customer has at most one referrer."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def find_by_referred(self, customer_id: UUID) -> Referral | None:
        stmt = select(Referral).where(Referral.referred_id == customer_id)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def list_by_referrer(self, referrer_id: UUID) -> list[Referral]:
        stmt = (
            select(Referral)
            .where(Referral.referrer_id == referrer_id)
            .order_by(Referral.created_at.asc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def create(self, referrer_id: UUID, referred_id: UUID) -> Referral:
        if referrer_id == referred_id:
            raise InvariantViolationError("Customers cannot refer themselves")

        accounts = AccountStore(self._db)
        await accounts.get_account(referrer_id)
        await accounts.get_account(referred_id)

        referral_id = await insert_or_ignore(
            self._db,
            Referral,
            {"referrer_id": referrer_id, "referred_id": referred_id},
            conflict_columns=("referred_id",),
        )
        if referral_id is None:
            existing = await self.find_by_referred(referred_id)
            if existing is not None and existing.referrer_id == referrer_id:
                return existing
            raise InvariantViolationError(f"Customer {referred_id} already has a referrer")

        await self._db.execute(
            update(CustomerAccount)
            .where(CustomerAccount.id == referred_id)
            .values(referred_by_id=referrer_id)
            .execution_options(synchronize_session=False)
        )
        referral = await self._db.get(Referral, referral_id)
        logger.info("Recorded referral", referrer_id=str(referrer_id), referred_id=str(referred_id))
        return referral
