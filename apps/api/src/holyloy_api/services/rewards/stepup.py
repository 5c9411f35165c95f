"""StepUp rewards: pay the holder of G when G x multiplier is issued."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.core.settings import Settings, settings
from holyloy_api.db.idempotency import insert_or_ignore
from holyloy_api.models.customer import GlobalNumberAssignment
from holyloy_api.models.rewards import StepUpRewardRecord
from holyloy_api.models.wallet import WalletTrack
from holyloy_api.observability.rewards import get_reward_store

from .errors import DuplicateIgnoredError, InvariantViolationError, NotFoundError
from .events import RewardEventBus, StepUpCredited
from .ledger import WalletLedgerService
from .stores import AccountStore


@dataclass(frozen=True, slots=True)
class StepUpTier:
    multiplier: int
    reward_points: int


def load_step_up_table(config: Settings | None = None) -> tuple[StepUpTier, ...]:
    config = config or settings
    return build_step_up_table(zip(config.step_up_multipliers, config.step_up_reward_points))


def build_step_up_table(pairs: Iterable[tuple[int, int]]) -> tuple[StepUpTier, ...]:
    tiers = tuple(StepUpTier(multiplier=int(m), reward_points=int(r)) for m, r in pairs)
    for tier in tiers:
        if tier.multiplier < 2 or tier.reward_points <= 0:
            raise ValueError(f"Invalid StepUp tier {tier!r}")
    return tiers


class StepUpRewardEngine:
    """Award StepUp credits for a newly issued Global Number.

    Eligibility is a divisibility lookup per configured multiplier rather than
    a scan over every holder. Each ``(recipient, trigger, multiplier)`` award is
    claimed through the storage-level unique key, so replays and concurrent
    cascades never pay twice.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        accounts: AccountStore | None = None,
        ledger: WalletLedgerService | None = None,
        events: RewardEventBus | None = None,
        table: Sequence[StepUpTier] | None = None,
    ) -> None:
        self._db = db_session
        self._accounts = accounts or AccountStore(db_session)
        self._ledger = ledger or WalletLedgerService(db_session)
        self._events = events
        self._table = tuple(table) if table is not None else load_step_up_table()

    @property
    def table(self) -> tuple[StepUpTier, ...]:
        return self._table

    async def on_global_number_issued(self, number: int) -> list[StepUpRewardRecord]:
        """Return the StepUp records newly awarded because ``number`` was issued."""

        if number <= 0:
            raise InvariantViolationError(f"Global Numbers are positive (got {number})")
        if await self._accounts.find_assignment(number) is None:
            raise NotFoundError(f"Global Number {number} has not been issued")

        awarded: list[StepUpRewardRecord] = []
        for tier in self._table:
            if number % tier.multiplier:
                continue
            recipient_number = number // tier.multiplier
            recipient = await self._accounts.find_assignment(recipient_number)
            if recipient is None:
                continue
            try:
                record = await self._claim(recipient, number, tier)
            except DuplicateIgnoredError as duplicate:
                get_reward_store().record_step_up_duplicate()
                logger.debug("StepUp reward already recorded", key=duplicate.key)
                continue
            awarded.append(await self._award(record, tier))
        return awarded

    async def replay_range(self, start: int, end: int) -> list[StepUpRewardRecord]:
        """Re-evaluate already issued numbers in ``[start, end]``; safe to repeat."""

        if start <= 0 or end < start:
            raise ValueError("Replay range must be positive and ascending")
        numbers = await self._accounts.list_assigned_numbers(start, end)
        awarded: list[StepUpRewardRecord] = []
        for number in numbers:
            awarded.extend(await self.on_global_number_issued(number))
        logger.info(
            "Replayed StepUp evaluation",
            start=start,
            end=end,
            evaluated=len(numbers),
            awarded=len(awarded),
        )
        return awarded

    async def get_step_up_rewards(self, customer_id: UUID) -> list[StepUpRewardRecord]:
        stmt = (
            select(StepUpRewardRecord)
            .where(StepUpRewardRecord.recipient_customer_id == customer_id)
            .order_by(
                StepUpRewardRecord.trigger_global_number.asc(),
                StepUpRewardRecord.multiplier.asc(),
            )
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def get_total_step_up_earned(self, customer_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(StepUpRewardRecord.reward_points), 0)).where(
            StepUpRewardRecord.recipient_customer_id == customer_id
        )
        return int((await self._db.execute(stmt)).scalar_one())

    async def _claim(
        self,
        recipient: GlobalNumberAssignment,
        trigger_number: int,
        tier: StepUpTier,
    ) -> StepUpRewardRecord:
        record_id = await insert_or_ignore(
            self._db,
            StepUpRewardRecord,
            {
                "recipient_customer_id": recipient.customer_id,
                "recipient_global_number": recipient.number,
                "trigger_global_number": trigger_number,
                "multiplier": tier.multiplier,
                "reward_points": tier.reward_points,
            },
            conflict_columns=("recipient_global_number", "trigger_global_number", "multiplier"),
        )
        if record_id is None:
            raise DuplicateIgnoredError(
                "StepUp reward",
                (recipient.number, trigger_number, tier.multiplier),
            )
        return await self._db.get(StepUpRewardRecord, record_id)

    async def _award(self, record: StepUpRewardRecord, tier: StepUpTier) -> StepUpRewardRecord:
        wallet = await self._ledger.ensure_wallet(record.recipient_customer_id)
        await self._ledger.credit(
            wallet.id,
            WalletTrack.INCOME,
            tier.reward_points,
            record.description,
            {
                "source": "step_up",
                "step_up_reward_id": str(record.id),
                "recipient_global_number": record.recipient_global_number,
                "trigger_global_number": record.trigger_global_number,
                "multiplier": tier.multiplier,
            },
        )
        get_reward_store().record_step_up_award(tier.multiplier, tier.reward_points)
        logger.info(
            "Awarded StepUp reward",
            customer_id=str(record.recipient_customer_id),
            recipient_global_number=record.recipient_global_number,
            trigger_global_number=record.trigger_global_number,
            multiplier=tier.multiplier,
            points=tier.reward_points,
        )

        if self._events is not None:
            await self._events.publish(
                StepUpCredited(
                    customer_id=record.recipient_customer_id,
                    amount=tier.reward_points,
                    record_id=record.id,
                    recipient_global_number=record.recipient_global_number,
                    trigger_global_number=record.trigger_global_number,
                    multiplier=tier.multiplier,
                )
            )
        return record


__all__ = ["StepUpRewardEngine", "StepUpTier", "build_step_up_table", "load_step_up_table"]
