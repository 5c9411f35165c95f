"""Ledger-backed wallet primitive shared by every reward flow."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.core.settings import settings
from holyloy_api.db.idempotency import insert_or_ignore
from holyloy_api.models.wallet import (
    LedgerDirection,
    Wallet,
    WalletLedgerEntry,
    WalletTrack,
    WalletTransfer,
    WalletTransferStatus,
)

from .errors import (
    ConflictRetryableError,
    InsufficientBalanceError,
    InvariantViolationError,
    NotFoundError,
)
from .stores import AccountStore


CENT = Decimal("0.01")

DebitCounter = Literal["spent", "transferred"]


@dataclass
class TrackReconciliation:
    """Stored balance versus the signed sum of ledger entries for one track."""

    track: WalletTrack
    stored_balance: Decimal
    ledger_balance: Decimal
    last_balance_after: Decimal | None

    @property
    def is_consistent(self) -> bool:
        if self.stored_balance != self.ledger_balance:
            return False
        if self.last_balance_after is None:
            return self.stored_balance == Decimal("0")
        return self.last_balance_after == self.stored_balance


def _as_amount(amount: Any) -> Decimal:
    value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    if value <= Decimal("0"):
        raise InvariantViolationError(f"Wallet amounts must be positive (got {amount})")
    return value


class WalletLedgerService:
    """Credits, debits and transfers that keep balances and ledger in lockstep.

    Every balance change is an in-database ``UPDATE ... RETURNING`` on the
    wallet row followed by the ledger append, inside the caller's
    transaction. Credits to different wallets never contend with each other.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def ensure_wallet(self, customer_id: UUID) -> Wallet:
        """Fetch or create the wallet for a customer."""

        wallet = await self._find_wallet(customer_id)
        if wallet is not None:
            return wallet

        await AccountStore(self._db).get_account(customer_id)
        created = await insert_or_ignore(
            self._db,
            Wallet,
            {"customer_id": customer_id},
            conflict_columns=("customer_id",),
        )
        if created is not None:
            logger.info("Created customer wallet", customer_id=str(customer_id), wallet_id=str(created))
        wallet = await self._find_wallet(customer_id)
        if wallet is None:  # pragma: no cover - insert succeeded or a peer created it
            raise NotFoundError(f"Wallet for customer {customer_id} could not be created")
        return wallet

    async def get_wallet(self, customer_id: UUID) -> Wallet:
        wallet = await self._find_wallet(customer_id)
        if wallet is None:
            raise NotFoundError(f"Wallet for customer {customer_id} not found")
        return wallet

    async def get_wallet_by_id(self, wallet_id: UUID) -> Wallet:
        stmt = select(Wallet).where(Wallet.id == wallet_id).execution_options(populate_existing=True)
        wallet = (await self._db.execute(stmt)).scalar_one_or_none()
        if wallet is None:
            raise NotFoundError(f"Wallet {wallet_id} not found")
        return wallet

    async def credit(
        self,
        wallet_id: UUID,
        track: WalletTrack,
        amount: Any,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> Decimal:
        """Add ``amount`` to ``track`` and append the matching ledger entry."""

        track = WalletTrack(track)
        value = _as_amount(amount)
        self._require_description(description)

        balance_column = getattr(Wallet, f"{track.value}_balance")
        earned_column = getattr(Wallet, f"{track.value}_earned")
        stmt = (
            update(Wallet)
            .where(Wallet.id == wallet_id)
            .values(
                **{
                    f"{track.value}_balance": balance_column + value,
                    f"{track.value}_earned": earned_column + value,
                    "last_transaction_at": datetime.now(timezone.utc),
                }
            )
            .returning(balance_column)
            .execution_options(synchronize_session=False)
        )
        balance_after = await self._apply(stmt, wallet_id=wallet_id, track=track)
        if balance_after is None:
            raise NotFoundError(f"Wallet {wallet_id} not found")

        await self._append_entry(
            wallet_id,
            track=track,
            direction=LedgerDirection.CREDIT,
            amount=value,
            balance_after=balance_after,
            description=description,
            metadata=metadata,
        )
        logger.info(
            "Credited wallet",
            wallet_id=str(wallet_id),
            track=track.value,
            amount=str(value),
            balance_after=str(balance_after),
        )
        return balance_after

    async def debit(
        self,
        wallet_id: UUID,
        track: WalletTrack,
        amount: Any,
        description: str,
        metadata: dict[str, Any] | None = None,
        *,
        counter: DebitCounter = "spent",
    ) -> Decimal:
        """Remove ``amount`` from ``track``; the balance never goes negative."""

        track = WalletTrack(track)
        value = _as_amount(amount)
        self._require_description(description)

        balance_column = getattr(Wallet, f"{track.value}_balance")
        counter_column = getattr(Wallet, f"{track.value}_{counter}")
        stmt = (
            update(Wallet)
            .where(Wallet.id == wallet_id, balance_column >= value)
            .values(
                **{
                    f"{track.value}_balance": balance_column - value,
                    f"{track.value}_{counter}": counter_column + value,
                    "last_transaction_at": datetime.now(timezone.utc),
                }
            )
            .returning(balance_column)
            .execution_options(synchronize_session=False)
        )
        balance_after = await self._apply(stmt, wallet_id=wallet_id, track=track)
        if balance_after is None:
            wallet = await self.get_wallet_by_id(wallet_id)
            raise InsufficientBalanceError(track.value, value, Decimal(wallet.balance_for(track)))

        await self._append_entry(
            wallet_id,
            track=track,
            direction=LedgerDirection.DEBIT,
            amount=value,
            balance_after=balance_after,
            description=description,
            metadata=metadata,
        )
        logger.info(
            "Debited wallet",
            wallet_id=str(wallet_id),
            track=track.value,
            amount=str(value),
            balance_after=str(balance_after),
        )
        return balance_after

    async def transfer(
        self,
        customer_id: UUID,
        *,
        from_track: WalletTrack,
        to_track: WalletTrack,
        amount: Any,
        description: str | None = None,
    ) -> WalletTransfer:
        """Move funds between two tracks of one wallet, charging the transfer fee."""

        from_track = WalletTrack(from_track)
        to_track = WalletTrack(to_track)
        if from_track == to_track:
            raise ValueError("Cannot transfer to the same wallet track")
        value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
        if value <= Decimal("0"):
            raise ValueError("Transfer amount must be positive")

        wallet = await self.get_wallet(customer_id)
        service_charge = self.transfer_fee(from_track, to_track, value)
        net_amount = value - service_charge
        transfer_id = uuid4()
        metadata = {
            "transfer_id": str(transfer_id),
            "from_track": from_track.value,
            "to_track": to_track.value,
            "service_charge": str(service_charge),
        }

        await self.debit(
            wallet.id,
            from_track,
            value,
            description or f"Transfer to {to_track.value} wallet",
            metadata,
            counter="transferred",
        )
        if net_amount > Decimal("0"):
            await self.credit(
                wallet.id,
                to_track,
                net_amount,
                description or f"Transfer from {from_track.value} wallet",
                metadata,
            )

        transfer = WalletTransfer(
            id=transfer_id,
            wallet_id=wallet.id,
            from_track=from_track,
            to_track=to_track,
            amount=value,
            service_charge=service_charge,
            net_amount=net_amount,
            status=WalletTransferStatus.COMPLETED,
            description=description,
        )
        self._db.add(transfer)
        await self._db.flush()
        logger.info(
            "Completed wallet transfer",
            transfer_id=str(transfer_id),
            customer_id=str(customer_id),
            amount=str(value),
            service_charge=str(service_charge),
        )
        return transfer

    @staticmethod
    def transfer_fee(from_track: WalletTrack, to_track: WalletTrack, amount: Decimal) -> Decimal:
        if from_track == WalletTrack.INCOME and to_track == WalletTrack.COMMERCE:
            rate = Decimal(str(settings.income_to_commerce_fee_rate))
            return (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        return Decimal("0.00")

    async def list_entries(
        self,
        wallet_id: UUID,
        *,
        track: WalletTrack | None = None,
        limit: int | None = None,
    ) -> list[WalletLedgerEntry]:
        """Return ledger entries oldest first."""

        stmt = select(WalletLedgerEntry).where(WalletLedgerEntry.wallet_id == wallet_id)
        if track is not None:
            stmt = stmt.where(WalletLedgerEntry.track == WalletTrack(track))
        stmt = stmt.order_by(WalletLedgerEntry.created_at.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await self._db.execute(stmt)).scalars().all())

    async def reconcile(self, wallet_id: UUID) -> list[TrackReconciliation]:
        """Compare every track's stored balance with its ledger history."""

        wallet = await self.get_wallet_by_id(wallet_id)
        stmt = (
            select(
                WalletLedgerEntry.track,
                WalletLedgerEntry.direction,
                func.coalesce(func.sum(WalletLedgerEntry.amount), 0),
            )
            .where(WalletLedgerEntry.wallet_id == wallet_id)
            .group_by(WalletLedgerEntry.track, WalletLedgerEntry.direction)
        )
        sums: dict[tuple[WalletTrack, LedgerDirection], Decimal] = {}
        for track, direction, total in (await self._db.execute(stmt)).all():
            sums[(WalletTrack(track), LedgerDirection(direction))] = Decimal(str(total)).quantize(CENT)

        results: list[TrackReconciliation] = []
        for track in WalletTrack:
            ledger_balance = sums.get((track, LedgerDirection.CREDIT), Decimal("0")) - sums.get(
                (track, LedgerDirection.DEBIT), Decimal("0")
            )
            entries = await self.list_entries(wallet_id, track=track)
            last_balance_after = (
                Decimal(str(entries[-1].balance_after)).quantize(CENT) if entries else None
            )
            results.append(
                TrackReconciliation(
                    track=track,
                    stored_balance=Decimal(str(wallet.balance_for(track))).quantize(CENT),
                    ledger_balance=ledger_balance.quantize(CENT),
                    last_balance_after=last_balance_after,
                )
            )
        return results

    async def _find_wallet(self, customer_id: UUID) -> Wallet | None:
        stmt = (
            select(Wallet)
            .where(Wallet.customer_id == customer_id)
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _apply(self, stmt, *, wallet_id: UUID, track: WalletTrack) -> Decimal | None:
        try:
            value = (await self._db.execute(stmt)).scalar_one_or_none()
        except OperationalError as error:
            logger.warning("Wallet write lost a race", wallet_id=str(wallet_id), track=track.value)
            raise ConflictRetryableError(f"Wallet {wallet_id} {track.value} write conflicted") from error
        if value is None:
            return None
        return Decimal(str(value)).quantize(CENT)

    async def _append_entry(
        self,
        wallet_id: UUID,
        *,
        track: WalletTrack,
        direction: LedgerDirection,
        amount: Decimal,
        balance_after: Decimal,
        description: str,
        metadata: dict[str, Any] | None,
    ) -> WalletLedgerEntry:
        entry = WalletLedgerEntry(
            wallet_id=wallet_id,
            track=track,
            direction=direction,
            amount=amount,
            balance_after=balance_after,
            description=description,
            metadata_json=metadata or {},
            created_at=datetime.now(timezone.utc),
        )
        self._db.add(entry)
        await self._db.flush()
        return entry

    @staticmethod
    def _require_description(description: str) -> None:
        if not description or not description.strip():
            raise InvariantViolationError("Ledger entries require a description")
