"""Ripple rewards: a referrer's tiered share of each StepUp credit."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.db.idempotency import insert_or_ignore
from holyloy_api.models.rewards import RippleRewardRecord
from holyloy_api.models.wallet import WalletTrack
from holyloy_api.observability.rewards import get_reward_store

from .errors import DuplicateIgnoredError
from .events import RewardEventBus, RippleCredited
from .ledger import WalletLedgerService
from .stores import ReferralStore


# Lower bounds are inclusive; highest band first.
RIPPLE_BANDS: tuple[tuple[int, int], ...] = (
    (160_000, 1500),
    (30_000, 700),
    (3_000, 150),
    (1_500, 100),
    (500, 50),
)


def ripple_amount_for(step_up_amount: int) -> int | None:
    for lower_bound, ripple_amount in RIPPLE_BANDS:
        if step_up_amount >= lower_bound:
            return ripple_amount
    return None


class RippleRewardEngine:
    """Single-hop referral rewards keyed on the referred customer's StepUp credits."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        referrals: ReferralStore | None = None,
        ledger: WalletLedgerService | None = None,
        events: RewardEventBus | None = None,
    ) -> None:
        self._db = db_session
        self._referrals = referrals or ReferralStore(db_session)
        self._ledger = ledger or WalletLedgerService(db_session)
        self._events = events

    async def on_step_up_credited(
        self,
        referred_customer_id: UUID,
        step_up_amount: int,
    ) -> RippleRewardRecord | None:
        referral = await self._referrals.find_by_referred(referred_customer_id)
        if referral is None:
            return None

        ripple_amount = ripple_amount_for(step_up_amount)
        if ripple_amount is None:
            logger.debug(
                "StepUp amount below ripple bands",
                referred_id=str(referred_customer_id),
                step_up_amount=step_up_amount,
            )
            return None

        store = get_reward_store()
        try:
            record = await self._claim(referral.referrer_id, referred_customer_id, step_up_amount, ripple_amount)
        except DuplicateIgnoredError as duplicate:
            store.record_ripple_duplicate()
            logger.debug("Ripple reward already recorded", key=duplicate.key)
            return None

        wallet = await self._ledger.ensure_wallet(referral.referrer_id)
        await self._ledger.credit(
            wallet.id,
            WalletTrack.INCOME,
            ripple_amount,
            f"Ripple Reward: {step_up_amount} StepUp from referred customer",
            {
                "source": "ripple",
                "ripple_reward_id": str(record.id),
                "referred_id": str(referred_customer_id),
                "step_up_amount": step_up_amount,
            },
        )
        store.record_ripple_award(ripple_amount)
        logger.info(
            "Awarded ripple reward",
            referrer_id=str(referral.referrer_id),
            referred_id=str(referred_customer_id),
            step_up_amount=step_up_amount,
            ripple_amount=ripple_amount,
        )

        if self._events is not None:
            await self._events.publish(
                RippleCredited(
                    referrer_id=referral.referrer_id,
                    referred_id=referred_customer_id,
                    amount=ripple_amount,
                    record_id=record.id,
                    step_up_amount=step_up_amount,
                )
            )
        return record

    async def _claim(
        self,
        referrer_id: UUID,
        referred_id: UUID,
        step_up_amount: int,
        ripple_amount: int,
    ) -> RippleRewardRecord:
        record_id = await insert_or_ignore(
            self._db,
            RippleRewardRecord,
            {
                "referrer_id": referrer_id,
                "referred_id": referred_id,
                "step_up_reward_amount": step_up_amount,
                "ripple_reward_amount": ripple_amount,
            },
            conflict_columns=("referrer_id", "referred_id", "step_up_reward_amount"),
        )
        if record_id is None:
            raise DuplicateIgnoredError("Ripple reward", (str(referrer_id), str(referred_id), step_up_amount))
        return await self._db.get(RippleRewardRecord, record_id)

    async def get_ripple_rewards(self, referrer_id: UUID) -> list[RippleRewardRecord]:
        stmt = (
            select(RippleRewardRecord)
            .where(RippleRewardRecord.referrer_id == referrer_id)
            .order_by(RippleRewardRecord.created_at.asc(), RippleRewardRecord.step_up_reward_amount.asc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def ripple_statistics(self) -> dict[str, int]:
        stmt = select(
            func.count(RippleRewardRecord.id),
            func.coalesce(func.sum(RippleRewardRecord.ripple_reward_amount), 0),
            func.count(func.distinct(RippleRewardRecord.referrer_id)),
        )
        count, total, referrers = (await self._db.execute(stmt)).one()
        return {
            "total_rewards": int(count),
            "total_points": int(total),
            "unique_referrers": int(referrers),
        }


__all__ = ["RIPPLE_BANDS", "RippleRewardEngine", "ripple_amount_for"]
