from decimal import Decimal
from uuid import uuid4

import pytest

from holyloy_api.models.wallet import LedgerDirection, WalletTrack
from holyloy_api.services.rewards import (
    InsufficientBalanceError,
    InvariantViolationError,
    NotFoundError,
    WalletLedgerService,
)


@pytest.mark.asyncio
async def test_credit_updates_balance_and_appends_entry(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        wallet = await ledger.ensure_wallet(customer_id)

        first = await ledger.credit(wallet.id, WalletTrack.INCOME, 500, "StepUp Reward: Global #1 (1x5=5)")
        second = await ledger.credit(
            wallet.id,
            WalletTrack.INCOME,
            Decimal("50"),
            "Ripple Reward",
            {"source": "ripple"},
        )
        await session.commit()

        assert first == Decimal("500")
        assert second == Decimal("550")

        wallet = await ledger.get_wallet(customer_id)
        assert Decimal(str(wallet.income_balance)) == Decimal("550")
        assert Decimal(str(wallet.income_earned)) == Decimal("550")
        assert wallet.last_transaction_at is not None

        entries = await ledger.list_entries(wallet.id, track=WalletTrack.INCOME)
        assert [Decimal(str(entry.balance_after)) for entry in entries] == [Decimal("500"), Decimal("550")]
        assert all(entry.direction == LedgerDirection.CREDIT for entry in entries)
        assert entries[1].metadata_json == {"source": "ripple"}


@pytest.mark.asyncio
async def test_credit_rejects_non_positive_amounts_and_blank_descriptions(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        wallet = await ledger.ensure_wallet(customer_id)

        with pytest.raises(InvariantViolationError):
            await ledger.credit(wallet.id, WalletTrack.INCOME, 0, "zero")
        with pytest.raises(InvariantViolationError):
            await ledger.credit(wallet.id, WalletTrack.INCOME, -5, "negative")
        with pytest.raises(InvariantViolationError):
            await ledger.credit(wallet.id, WalletTrack.INCOME, 10, "   ")

        assert await ledger.list_entries(wallet.id) == []


@pytest.mark.asyncio
async def test_unknown_wallet_and_customer_raise_not_found(session_factory) -> None:
    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        with pytest.raises(NotFoundError):
            await ledger.credit(uuid4(), WalletTrack.INCOME, 10, "missing wallet")
        with pytest.raises(NotFoundError):
            await ledger.ensure_wallet(uuid4())
        with pytest.raises(NotFoundError):
            await ledger.get_wallet(uuid4())


@pytest.mark.asyncio
async def test_ensure_wallet_is_idempotent(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        first = await ledger.ensure_wallet(customer_id)
        second = await ledger.ensure_wallet(customer_id)
        assert first.id == second.id


@pytest.mark.asyncio
async def test_debit_never_overdraws(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        wallet = await ledger.ensure_wallet(customer_id)
        await ledger.credit(wallet.id, WalletTrack.COMMERCE, 100, "Top up")

        with pytest.raises(InsufficientBalanceError) as excinfo:
            await ledger.debit(wallet.id, WalletTrack.COMMERCE, 150, "Purchase")
        assert excinfo.value.available == Decimal("100")

        remaining = await ledger.debit(wallet.id, WalletTrack.COMMERCE, 40, "Purchase")
        assert remaining == Decimal("60")

        wallet = await ledger.get_wallet(customer_id)
        assert Decimal(str(wallet.commerce_spent)) == Decimal("40")
        assert len(await ledger.list_entries(wallet.id, track=WalletTrack.COMMERCE)) == 2


@pytest.mark.asyncio
async def test_income_to_commerce_transfer_charges_fee(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        wallet = await ledger.ensure_wallet(customer_id)
        await ledger.credit(wallet.id, WalletTrack.INCOME, 2000, "StepUp Reward")

        transfer = await ledger.transfer(
            customer_id,
            from_track=WalletTrack.INCOME,
            to_track=WalletTrack.COMMERCE,
            amount=1000,
        )
        await session.commit()

        assert Decimal(str(transfer.service_charge)) == Decimal("125")
        assert Decimal(str(transfer.net_amount)) == Decimal("875")

        wallet = await ledger.get_wallet(customer_id)
        assert Decimal(str(wallet.income_balance)) == Decimal("1000")
        assert Decimal(str(wallet.income_transferred)) == Decimal("1000")
        assert Decimal(str(wallet.commerce_balance)) == Decimal("875")

        debit_entry = (await ledger.list_entries(wallet.id, track=WalletTrack.INCOME))[-1]
        assert debit_entry.direction == LedgerDirection.DEBIT
        assert debit_entry.metadata_json["transfer_id"] == str(transfer.id)


@pytest.mark.asyncio
async def test_other_transfers_are_free_and_same_track_is_rejected(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        wallet = await ledger.ensure_wallet(customer_id)
        await ledger.credit(wallet.id, WalletTrack.COMMERCE, 300, "Top up")

        transfer = await ledger.transfer(
            customer_id,
            from_track=WalletTrack.COMMERCE,
            to_track=WalletTrack.REWARD_POINTS,
            amount=300,
        )
        assert Decimal(str(transfer.service_charge)) == Decimal("0")
        assert Decimal(str(transfer.net_amount)) == Decimal("300")

        with pytest.raises(ValueError):
            await ledger.transfer(
                customer_id,
                from_track=WalletTrack.INCOME,
                to_track=WalletTrack.INCOME,
                amount=10,
            )
        with pytest.raises(InsufficientBalanceError):
            await ledger.transfer(
                customer_id,
                from_track=WalletTrack.INCOME,
                to_track=WalletTrack.COMMERCE,
                amount=10,
            )


@pytest.mark.asyncio
async def test_ledger_reconciles_after_mixed_activity(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        ledger = WalletLedgerService(session)
        wallet = await ledger.ensure_wallet(customer_id)
        await ledger.credit(wallet.id, WalletTrack.INCOME, 1500, "StepUp Reward")
        await ledger.credit(wallet.id, WalletTrack.INCOME, 100, "Ripple Reward")
        await ledger.transfer(
            customer_id,
            from_track=WalletTrack.INCOME,
            to_track=WalletTrack.COMMERCE,
            amount=800,
        )
        await ledger.debit(wallet.id, WalletTrack.COMMERCE, 200, "Purchase")
        await session.commit()

        results = {result.track: result for result in await ledger.reconcile(wallet.id)}

    assert all(result.is_consistent for result in results.values())
    assert results[WalletTrack.INCOME].stored_balance == Decimal("800")
    assert results[WalletTrack.COMMERCE].ledger_balance == Decimal("500")
    assert results[WalletTrack.REWARD_POINTS].last_balance_after is None
