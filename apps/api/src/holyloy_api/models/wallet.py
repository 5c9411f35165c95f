"""Three-track customer wallets and their append-only ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    JSON,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from holyloy_api.db.base import Base


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class WalletTrack(str, Enum):
    """Independent balances carried by every wallet."""

    REWARD_POINTS = "reward_points"
    INCOME = "income"
    COMMERCE = "commerce"


class LedgerDirection(str, Enum):
    """Sign of a ledger entry."""

    CREDIT = "credit"
    DEBIT = "debit"


class WalletTransferStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class Wallet(Base):
    """Per-customer balances; mutated only through the ledger service.

    ``reward_points`` is independent of the account's unconverted
    ``loyalty_balance``; point earnings feed Global Number issuance, not this track.
    """

    __tablename__ = "customer_wallets"
    __table_args__ = (
        UniqueConstraint("customer_id", name="uq_customer_wallets_customer_id"),
        CheckConstraint("reward_points_balance >= 0", name="ck_customer_wallets_reward_points_non_negative"),
        CheckConstraint("income_balance >= 0", name="ck_customer_wallets_income_non_negative"),
        CheckConstraint("commerce_balance >= 0", name="ck_customer_wallets_commerce_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customer_accounts.id"), nullable=False)

    reward_points_balance = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    reward_points_earned = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    reward_points_spent = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    reward_points_transferred = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")

    income_balance = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    income_earned = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    income_spent = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    income_transferred = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")

    commerce_balance = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    commerce_earned = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    commerce_spent = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    commerce_transferred = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")

    last_transaction_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    ledger_entries = relationship("WalletLedgerEntry", back_populates="wallet")

    def balance_for(self, track: WalletTrack):
        return getattr(self, f"{WalletTrack(track).value}_balance")


class WalletLedgerEntry(Base):
    """Immutable record of a single balance change on one wallet track."""

    __tablename__ = "wallet_ledger_entries"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_ledger_entries_amount_positive"),
        Index("ix_wallet_ledger_entries_wallet_track", "wallet_id", "track", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    wallet_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_wallets.id", ondelete="CASCADE"),
        nullable=False,
    )
    track = Column(
        SqlEnum(WalletTrack, name="wallet_track", values_callable=_enum_values),
        nullable=False,
    )
    direction = Column(
        SqlEnum(LedgerDirection, name="wallet_ledger_direction", values_callable=_enum_values),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=False)
    description = Column(String, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    wallet = relationship("Wallet", back_populates="ledger_entries")


class WalletTransfer(Base):
    """Movement between two tracks of the same wallet."""

    __tablename__ = "wallet_transfers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    wallet_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_wallets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_track = Column(
        SqlEnum(WalletTrack, name="wallet_track", values_callable=_enum_values),
        nullable=False,
    )
    to_track = Column(
        SqlEnum(WalletTrack, name="wallet_track", values_callable=_enum_values),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    service_charge = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    net_amount = Column(Numeric(14, 2), nullable=False)
    status = Column(
        SqlEnum(WalletTransferStatus, name="wallet_transfer_status", values_callable=_enum_values),
        nullable=False,
        default=WalletTransferStatus.COMPLETED,
    )
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
