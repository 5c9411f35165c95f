"""Customer accounts, Global Number issuance and referral models."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from holyloy_api.db.base import Base


GLOBAL_NUMBER_THRESHOLD = 1500
GLOBAL_NUMBER_COUNTER_ID = 1


class CustomerAccount(Base):
    """Loyalty account holding points not yet converted into a Global Number."""

    __tablename__ = "customer_accounts"
    __table_args__ = (
        CheckConstraint("loyalty_balance >= 0", name="ck_customer_accounts_loyalty_balance_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    display_name = Column(String, nullable=True)
    loyalty_balance = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_earned = Column(Integer, nullable=False, default=0, server_default="0")
    referred_by_id = Column(UUID(as_uuid=True), ForeignKey("customer_accounts.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    assignments = relationship(
        "GlobalNumberAssignment",
        back_populates="customer",
        order_by="GlobalNumberAssignment.number",
    )


class GlobalNumberCounter(Base):
    """Single-row source of truth for the last issued Global Number."""

    __tablename__ = "global_number_counters"

    id = Column(Integer, primary_key=True, default=GLOBAL_NUMBER_COUNTER_ID)
    value = Column(Integer, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class GlobalNumberAssignment(Base):
    """Immutable grant of one Global Number to a customer."""

    __tablename__ = "global_number_assignments"
    __table_args__ = (
        UniqueConstraint("number", name="uq_global_number_assignments_number"),
        CheckConstraint("number > 0", name="ck_global_number_assignments_number_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    number = Column(Integer, nullable=False)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_accounts.id"),
        nullable=False,
        index=True,
    )
    points_at_issuance = Column(Integer, nullable=False, default=GLOBAL_NUMBER_THRESHOLD)
    issued_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("CustomerAccount", back_populates="assignments")


class Referral(Base):
    """Referrer to referred relationship; one referrer per customer."""

    __tablename__ = "customer_referrals"
    __table_args__ = (
        UniqueConstraint("referred_id", name="uq_customer_referrals_referred_id"),
        CheckConstraint("referrer_id <> referred_id", name="ck_customer_referrals_not_self"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    referrer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_accounts.id"),
        nullable=False,
        index=True,
    )
    referred_id = Column(UUID(as_uuid=True), ForeignKey("customer_accounts.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
