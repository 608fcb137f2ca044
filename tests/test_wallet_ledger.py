"""Wallet ledger and escrow hold manager"""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.models import HoldStatus, LedgerEntry, Match, WalletHold
from app.models.ledger_entry import EntryType
from app.services.escrow import EscrowHoldManager
from app.services.exceptions import InsufficientFundsError, UserSuspendedError
from app.services.wallet_ledger import WalletLedger
from tests.factories import balance


async def _open_match(db, creator="alice", stake="500.00") -> Match:
    match = Match(creator_id=creator, stake_amount=Decimal(stake))
    db.add(match)
    await db.flush()
    return match


class TestWalletLedger:

    @pytest.mark.asyncio
    async def test_credit_creates_wallet(self, db):
        ledger = WalletLedger(db)
        await ledger.credit("alice", Decimal("250.00"), reason="deposit")
        await db.commit()

        assert await ledger.balance_of("alice") == Decimal("250.00")

    @pytest.mark.asyncio
    async def test_unknown_user_has_zero_balance(self, db):
        assert await WalletLedger(db).balance_of("nobody") == Decimal("0.00")
        assert await WalletLedger(db).get_wallet("nobody") is None

    @pytest.mark.asyncio
    async def test_debit_insufficient_funds_leaves_balance(self, db, fund):
        await fund("alice", "100")
        ledger = WalletLedger(db)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await ledger.debit("alice", Decimal("100.01"), reason="hold")
        await db.rollback()

        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        assert exc_info.value.context["available"] == "100.00"
        assert await balance(db, "alice") == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_debit_exact_balance(self, db, fund):
        await fund("alice", "100")
        await WalletLedger(db).debit("alice", Decimal("100"), reason="hold")
        await db.commit()

        assert await balance(db, "alice") == Decimal("0.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    async def test_non_positive_amounts_rejected(self, db, fund, amount):
        await fund("alice", "100")
        ledger = WalletLedger(db)

        with pytest.raises(ValueError):
            await ledger.debit("alice", amount, reason="hold")
        with pytest.raises(ValueError):
            await ledger.credit("alice", amount, reason="payout")

    @pytest.mark.asyncio
    async def test_every_mutation_writes_a_ledger_entry(self, db, fund):
        await fund("alice", "300")
        ledger = WalletLedger(db)
        await ledger.debit("alice", Decimal("120"), reason="hold", reference="m-1")
        await db.commit()

        entries = (await db.execute(select(LedgerEntry).order_by(LedgerEntry.id))).scalars().all()
        assert [e.entry_type for e in entries] == [EntryType.CREDIT, EntryType.DEBIT]
        assert entries[1].amount == Decimal("-120.00")
        assert entries[1].balance_after == Decimal("180.00")
        assert entries[1].reference == "m-1"


class TestEscrowHoldManager:

    @pytest.mark.asyncio
    async def test_place_hold_debits_wallet(self, db, fund):
        await fund("alice", "1000")
        escrow = EscrowHoldManager(db)
        match = await _open_match(db)

        hold = await escrow.place_hold(match.id, "alice", Decimal("500.00"))
        await db.commit()

        assert hold.status == HoldStatus.HELD
        assert await balance(db, "alice") == Decimal("500.00")
        assert await escrow.held_total("alice") == Decimal("500.00")
        assert await escrow.pot_for_match(match.id) == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_place_hold_suspended_user(self, db, fund, suspend):
        await fund("mallory", "1000")
        await suspend("mallory")
        escrow = EscrowHoldManager(db)
        match = await _open_match(db, creator="alice")

        with pytest.raises(UserSuspendedError):
            await escrow.place_hold(match.id, "mallory", Decimal("500.00"))
        await db.rollback()

        assert await balance(db, "mallory") == Decimal("1000.00")
        holds = (await db.execute(select(WalletHold).where(WalletHold.user_id == "mallory"))).scalars().all()
        assert holds == []

    @pytest.mark.asyncio
    async def test_place_hold_insufficient_funds(self, db, fund):
        await fund("alice", "100")
        escrow = EscrowHoldManager(db)
        match = await _open_match(db)

        with pytest.raises(InsufficientFundsError):
            await escrow.place_hold(match.id, "alice", Decimal("500.00"))

    @pytest.mark.asyncio
    async def test_release_hold_is_idempotent(self, db, fund):
        await fund("alice", "1000")
        escrow = EscrowHoldManager(db)
        match = await _open_match(db)
        hold = await escrow.place_hold(match.id, "alice", Decimal("500.00"))
        await db.commit()

        await escrow.release_hold(hold.id)
        await escrow.release_hold(hold.id)
        await db.commit()

        assert hold.status == HoldStatus.RELEASED
        assert hold.released_at is not None
        assert await balance(db, "alice") == Decimal("1000.00")
        assert await escrow.held_total("alice") == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_settle_hold_does_not_credit_owner(self, db, fund):
        await fund("alice", "1000")
        escrow = EscrowHoldManager(db)
        match = await _open_match(db)
        hold = await escrow.place_hold(match.id, "alice", Decimal("500.00"))

        await escrow.settle_hold(hold.id, "pot")
        # Terminal: a later release must not refund the forfeited stake
        await escrow.release_hold(hold.id)
        await db.commit()

        assert hold.status == HoldStatus.FORFEITED
        assert hold.settled_to == "pot"
        assert await balance(db, "alice") == Decimal("500.00")


class TestBalanceConstraint:

    @pytest.mark.asyncio
    async def test_store_rejects_negative_balance(self, db, fund):
        wallet = await fund("alice", "100")
        wallet.balance = Decimal("-1.00")

        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()
