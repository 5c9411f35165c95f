"""Default threshold hook subscribers: shopping vouchers and infinity rewards."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import select

from holyloy_api.core.settings import Settings, settings
from holyloy_api.db.idempotency import insert_or_ignore
from holyloy_api.models.rewards import InfinityRewardCycle, ShoppingVoucher
from holyloy_api.models.wallet import WalletTrack

from .hooks import ThresholdHookContext, ThresholdHookDispatcher
from .ledger import WalletLedgerService


BONUS_THRESHOLD = 30_000
INFINITY_REWARD_NUMBER_BASE = 1_000_000


def generate_voucher_code() -> str:
    return f"SV{uuid4().hex[:12].upper()}"


def infinity_reward_numbers(customer_id: UUID, count: int) -> list[int]:
    """Deterministic reward numbers for a customer's infinity cycle."""

    base = INFINITY_REWARD_NUMBER_BASE + int(customer_id.hex[:8], 16) % 100_000
    return [base + offset for offset in range(count)]


class ShoppingVoucherHook:
    """Issue a shopping voucher for every 30,000-point StepUp credit."""

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    async def __call__(self, context: ThresholdHookContext) -> None:
        if context.source != "step_up" or context.reference_id is None:
            return

        expires_at = datetime.now(timezone.utc) + timedelta(days=self._config.shopping_voucher_validity_days)
        voucher_id = await insert_or_ignore(
            context.session,
            ShoppingVoucher,
            {
                "customer_id": context.customer_id,
                "source_reward_id": context.reference_id,
                "voucher_code": generate_voucher_code(),
                "points_allocated": self._config.shopping_voucher_points,
                "expires_at": expires_at,
            },
            conflict_columns=("source_reward_id",),
        )
        if voucher_id is None:
            logger.debug("Shopping voucher already issued", source_reward_id=str(context.reference_id))
            return
        logger.info(
            "Issued shopping voucher",
            customer_id=str(context.customer_id),
            voucher_id=str(voucher_id),
            points=self._config.shopping_voucher_points,
        )


class InfinityRewardHook:
    """Open the first infinity cycle on a customer's first 30,000-point StepUp."""

    cycle_number = 1

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    async def __call__(self, context: ThresholdHookContext) -> None:
        if context.source != "step_up":
            return

        count = self._config.infinity_reward_initial_numbers
        points_per_number = self._config.infinity_reward_points_per_number
        reward_numbers = infinity_reward_numbers(context.customer_id, count)
        total_points = points_per_number * count

        cycle_id = await insert_or_ignore(
            context.session,
            InfinityRewardCycle,
            {
                "customer_id": context.customer_id,
                "cycle_number": self.cycle_number,
                "source_reward_id": context.reference_id,
                "reward_numbers": reward_numbers,
                "points_per_number": points_per_number,
                "total_points": total_points,
            },
            conflict_columns=("customer_id", "cycle_number"),
        )
        if cycle_id is None:
            return

        ledger = WalletLedgerService(context.session)
        wallet = await ledger.ensure_wallet(context.customer_id)
        await ledger.credit(
            wallet.id,
            WalletTrack.INCOME,
            total_points,
            f"Infinity Reward: cycle {self.cycle_number} ({count} numbers)",
            {
                "source": "infinity_reward",
                "infinity_cycle_id": str(cycle_id),
                "reward_numbers": reward_numbers,
            },
        )
        logger.info(
            "Opened infinity reward cycle",
            customer_id=str(context.customer_id),
            cycle_number=self.cycle_number,
            total_points=total_points,
        )


async def list_shopping_vouchers(session, customer_id: UUID) -> list[ShoppingVoucher]:
    stmt = (
        select(ShoppingVoucher)
        .where(ShoppingVoucher.customer_id == customer_id)
        .order_by(ShoppingVoucher.created_at.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


def register_default_bonus_hooks(
    dispatcher: ThresholdHookDispatcher,
    config: Settings | None = None,
) -> list:
    handlers = [ShoppingVoucherHook(config), InfinityRewardHook(config)]
    for handler in handlers:
        dispatcher.register(BONUS_THRESHOLD, handler)
    return handlers


__all__ = [
    "BONUS_THRESHOLD",
    "InfinityRewardHook",
    "ShoppingVoucherHook",
    "generate_voucher_code",
    "infinity_reward_numbers",
    "list_shopping_vouchers",
    "register_default_bonus_hooks",
]
