"""Global Number and reward cascade tables.

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


WALLET_TRACKS = ("reward_points", "income", "commerce")
LEDGER_DIRECTIONS = ("credit", "debit")
TRANSFER_STATUSES = ("completed", "failed")


def _uuid() -> sa.types.TypeEngine:
    return sa.dialects.postgresql.UUID(as_uuid=True)


def _money(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=False, server_default="0", **kwargs)


def upgrade() -> None:
    bind = op.get_bind()
    sa.Enum(*WALLET_TRACKS, name="wallet_track").create(bind, checkfirst=True)
    sa.Enum(*LEDGER_DIRECTIONS, name="wallet_ledger_direction").create(bind, checkfirst=True)
    sa.Enum(*TRANSFER_STATUSES, name="wallet_transfer_status").create(bind, checkfirst=True)

    wallet_track = postgresql.ENUM(*WALLET_TRACKS, name="wallet_track", create_type=False)

    op.create_table(
        "customer_accounts",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("loyalty_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("referred_by_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("loyalty_balance >= 0", name="ck_customer_accounts_loyalty_balance_non_negative"),
    )

    op.create_table(
        "global_number_counters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.execute("INSERT INTO global_number_counters (id, value) VALUES (1, 0)")

    op.create_table(
        "global_number_assignments",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("points_at_issuance", sa.Integer(), nullable=False, server_default="1500"),
        sa.Column("issued_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("number", name="uq_global_number_assignments_number"),
        sa.CheckConstraint("number > 0", name="ck_global_number_assignments_number_positive"),
    )
    op.create_index(
        "ix_global_number_assignments_customer_id",
        "global_number_assignments",
        ["customer_id"],
    )

    op.create_table(
        "customer_referrals",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("referrer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("referred_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("referred_id", name="uq_customer_referrals_referred_id"),
        sa.CheckConstraint("referrer_id <> referred_id", name="ck_customer_referrals_not_self"),
    )
    op.create_index("ix_customer_referrals_referrer_id", "customer_referrals", ["referrer_id"])

    op.create_table(
        "customer_wallets",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        *[
            _money(f"{track}_{counter}")
            for track in WALLET_TRACKS
            for counter in ("balance", "earned", "spent", "transferred")
        ],
        sa.Column("last_transaction_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("customer_id", name="uq_customer_wallets_customer_id"),
        sa.CheckConstraint("reward_points_balance >= 0", name="ck_customer_wallets_reward_points_non_negative"),
        sa.CheckConstraint("income_balance >= 0", name="ck_customer_wallets_income_non_negative"),
        sa.CheckConstraint("commerce_balance >= 0", name="ck_customer_wallets_commerce_non_negative"),
    )

    op.create_table(
        "wallet_ledger_entries",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "wallet_id",
            _uuid(),
            sa.ForeignKey("customer_wallets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("track", wallet_track, nullable=False),
        sa.Column(
            "direction",
            postgresql.ENUM(*LEDGER_DIRECTIONS, name="wallet_ledger_direction", create_type=False),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_wallet_ledger_entries_amount_positive"),
    )
    op.create_index(
        "ix_wallet_ledger_entries_wallet_track",
        "wallet_ledger_entries",
        ["wallet_id", "track", "created_at"],
    )

    op.create_table(
        "wallet_transfers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "wallet_id",
            _uuid(),
            sa.ForeignKey("customer_wallets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_track", wallet_track, nullable=False),
        sa.Column("to_track", wallet_track, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        _money("service_charge"),
        sa.Column("net_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(*TRANSFER_STATUSES, name="wallet_transfer_status", create_type=False),
            nullable=False,
        ),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_wallet_transfers_wallet_id", "wallet_transfers", ["wallet_id"])

    op.create_table(
        "step_up_rewards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("recipient_customer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("recipient_global_number", sa.Integer(), nullable=False),
        sa.Column("trigger_global_number", sa.Integer(), nullable=False),
        sa.Column("multiplier", sa.Integer(), nullable=False),
        sa.Column("reward_points", sa.Integer(), nullable=False),
        sa.Column("awarded_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint(
            "recipient_global_number",
            "trigger_global_number",
            "multiplier",
            name="uq_step_up_rewards_recipient_trigger_multiplier",
        ),
        sa.CheckConstraint("reward_points > 0", name="ck_step_up_rewards_points_positive"),
    )
    op.create_index("ix_step_up_rewards_recipient_customer_id", "step_up_rewards", ["recipient_customer_id"])
    op.create_index("ix_step_up_rewards_trigger_global_number", "step_up_rewards", ["trigger_global_number"])

    op.create_table(
        "ripple_rewards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("referrer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("referred_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("step_up_reward_amount", sa.Integer(), nullable=False),
        sa.Column("ripple_reward_amount", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint(
            "referrer_id",
            "referred_id",
            "step_up_reward_amount",
            name="uq_ripple_rewards_referrer_referred_amount",
        ),
    )
    op.create_index("ix_ripple_rewards_referrer_id", "ripple_rewards", ["referrer_id"])

    op.create_table(
        "shopping_vouchers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("source_reward_id", _uuid(), nullable=False),
        sa.Column("voucher_code", sa.String(length=32), nullable=False),
        sa.Column("points_allocated", sa.Integer(), nullable=False),
        sa.Column("points_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("source_reward_id", name="uq_shopping_vouchers_source_reward_id"),
        sa.UniqueConstraint("voucher_code", name="uq_shopping_vouchers_voucher_code"),
    )
    op.create_index("ix_shopping_vouchers_customer_id", "shopping_vouchers", ["customer_id"])

    op.create_table(
        "infinity_reward_cycles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("customer_id", _uuid(), sa.ForeignKey("customer_accounts.id"), nullable=False),
        sa.Column("cycle_number", sa.Integer(), nullable=False),
        sa.Column("source_reward_id", _uuid(), nullable=True),
        sa.Column("reward_numbers", sa.JSON(), nullable=False),
        sa.Column("points_per_number", sa.Integer(), nullable=False),
        sa.Column("total_points", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("customer_id", "cycle_number", name="uq_infinity_reward_cycles_customer_cycle"),
    )


def downgrade() -> None:
    op.drop_table("infinity_reward_cycles")
    op.drop_index("ix_shopping_vouchers_customer_id", table_name="shopping_vouchers")
    op.drop_table("shopping_vouchers")
    op.drop_index("ix_ripple_rewards_referrer_id", table_name="ripple_rewards")
    op.drop_table("ripple_rewards")
    op.drop_index("ix_step_up_rewards_trigger_global_number", table_name="step_up_rewards")
    op.drop_index("ix_step_up_rewards_recipient_customer_id", table_name="step_up_rewards")
    op.drop_table("step_up_rewards")
    op.drop_index("ix_wallet_transfers_wallet_id", table_name="wallet_transfers")
    op.drop_table("wallet_transfers")
    op.drop_index("ix_wallet_ledger_entries_wallet_track", table_name="wallet_ledger_entries")
    op.drop_table("wallet_ledger_entries")
    op.drop_table("customer_wallets")
    op.drop_index("ix_customer_referrals_referrer_id", table_name="customer_referrals")
    op.drop_table("customer_referrals")
    op.drop_index("ix_global_number_assignments_customer_id", table_name="global_number_assignments")
    op.drop_table("global_number_assignments")
    op.drop_table("global_number_counters")
    op.drop_table("customer_accounts")

    bind = op.get_bind()
    sa.Enum(name="wallet_transfer_status").drop(bind, checkfirst=True)
    sa.Enum(name="wallet_ledger_direction").drop(bind, checkfirst=True)
    sa.Enum(name="wallet_track").drop(bind, checkfirst=True)
