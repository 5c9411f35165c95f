"""Reward records written by the StepUp, Ripple and threshold bonus flows."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from holyloy_api.db.base import Base


class StepUpRewardRecord(Base):
    """At-most-once award to the holder of G when G x multiplier is issued."""

    __tablename__ = "step_up_rewards"
    __table_args__ = (
        UniqueConstraint(
            "recipient_global_number",
            "trigger_global_number",
            "multiplier",
            name="uq_step_up_rewards_recipient_trigger_multiplier",
        ),
        CheckConstraint("reward_points > 0", name="ck_step_up_rewards_points_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    recipient_customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_accounts.id"),
        nullable=False,
        index=True,
    )
    recipient_global_number = Column(Integer, nullable=False)
    trigger_global_number = Column(Integer, nullable=False, index=True)
    multiplier = Column(Integer, nullable=False)
    reward_points = Column(Integer, nullable=False)
    awarded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def description(self) -> str:
        return (
            f"StepUp Reward: Global #{self.recipient_global_number} "
            f"({self.recipient_global_number}x{self.multiplier}={self.trigger_global_number})"
        )


class RippleRewardRecord(Base):
    """Tiered referrer reward derived from a referred customer's StepUp credit."""

    __tablename__ = "ripple_rewards"
    __table_args__ = (
        UniqueConstraint(
            "referrer_id",
            "referred_id",
            "step_up_reward_amount",
            name="uq_ripple_rewards_referrer_referred_amount",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    referrer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_accounts.id"),
        nullable=False,
        index=True,
    )
    referred_id = Column(UUID(as_uuid=True), ForeignKey("customer_accounts.id"), nullable=False)
    step_up_reward_amount = Column(Integer, nullable=False)
    ripple_reward_amount = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ShoppingVoucher(Base):
    """Voucher points issued when a StepUp credit crosses the voucher threshold."""

    __tablename__ = "shopping_vouchers"
    __table_args__ = (
        UniqueConstraint("source_reward_id", name="uq_shopping_vouchers_source_reward_id"),
        UniqueConstraint("voucher_code", name="uq_shopping_vouchers_voucher_code"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_accounts.id"),
        nullable=False,
        index=True,
    )
    source_reward_id = Column(UUID(as_uuid=True), nullable=False)
    voucher_code = Column(String(32), nullable=False)
    points_allocated = Column(Integer, nullable=False)
    points_used = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class InfinityRewardCycle(Base):
    """Infinity bonus cycle opened by a customer's first 30,000-point StepUp."""

    __tablename__ = "infinity_reward_cycles"
    __table_args__ = (
        UniqueConstraint("customer_id", "cycle_number", name="uq_infinity_reward_cycles_customer_cycle"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customer_accounts.id"), nullable=False)
    cycle_number = Column(Integer, nullable=False)
    source_reward_id = Column(UUID(as_uuid=True), nullable=True)
    reward_numbers = Column(JSON, nullable=False, default=list)
    points_per_number = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
