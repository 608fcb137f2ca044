"""Settlement engine: fees, payouts, idempotent retries and draws"""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.models import HoldStatus, LedgerEntry, MatchStatus, PlatformFee, Team, Transaction, TransactionType
from app.services.escrow import EscrowHoldManager
from app.services.exceptions import (
    DisputeJustificationRequiredError,
    InvalidMatchStateError,
    InvalidWinnerError,
    SettlementConflictError,
)
from app.services.match_service import MatchService
from app.services.settlement import SettlementEngine, compute_fee, split_payout
from tests.factories import balance, legacy_match_win, started_match


async def _payouts(db, match_id):
    result = await db.execute(
        select(Transaction).where(
            Transaction.match_id == match_id,
            Transaction.transaction_type == TransactionType.MATCH_WIN
        )
    )
    return result.scalars().all()


class TestFeeMath:

    def test_compute_fee_rounds_half_up(self):
        assert compute_fee(Decimal("2000.00"), Decimal("5")) == Decimal("100.00")
        assert compute_fee(Decimal("333.30"), Decimal("2.5")) == Decimal("8.33")
        assert compute_fee(Decimal("10.10"), Decimal("5")) == Decimal("0.51")

    def test_split_payout_remainder_to_lead(self):
        shares = split_payout(Decimal("100.00"), ["a", "b", "c"], "b")
        assert shares == {"a": Decimal("33.33"), "b": Decimal("33.34"), "c": Decimal("33.33")}
        assert sum(shares.values()) == Decimal("100.00")


class TestSettle:

    @pytest.mark.asyncio
    async def test_1v1_happy_path(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match = await started_match(db)
        assert await balance(db, "alice") == Decimal("4000.00")
        assert await balance(db, "bob") == Decimal("2000.00")

        result = await SettlementEngine(db).settle(match.id, "alice", fee_percentage=5)
        await db.commit()

        assert result.pot == Decimal("2000.00")
        assert result.fee == Decimal("100.00")
        assert result.payout == Decimal("1900.00")
        assert result.already_settled is False
        assert await balance(db, "alice") == Decimal("5900.00")
        assert await balance(db, "bob") == Decimal("2000.00")

        assert match.status == MatchStatus.COMPLETED
        assert match.winner_id == "alice"

        holds = await EscrowHoldManager(db).holds_for_match(match.id)
        assert {h.user_id: (h.status, h.settled_to) for h in holds} == {
            "alice": (HoldStatus.FORFEITED, "winner"),
            "bob": (HoldStatus.FORFEITED, "pot"),
        }

        payouts = await _payouts(db, match.id)
        assert [(t.user_id, t.amount) for t in payouts] == [("alice", Decimal("1900.00"))]
        assert payouts[0].meta_data["match_id"] == match.id

        fee = (await db.execute(select(PlatformFee).where(PlatformFee.match_id == match.id))).scalar_one()
        assert fee.amount == Decimal("100.00")
        assert fee.pot_amount == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_default_fee_from_settings(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db)

        result = await SettlementEngine(db).settle(match.id, "bob")
        await db.commit()

        assert result.fee_percentage == Decimal(str(settings.DEFAULT_FEE_PERCENTAGE))

    @pytest.mark.asyncio
    async def test_full_fee_pays_nothing(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db)

        result = await SettlementEngine(db).settle(match.id, "alice", fee_percentage=100)
        await db.commit()

        assert result.fee == Decimal("2000.00")
        assert result.payout == Decimal("0.00")
        assert await balance(db, "alice") == Decimal("4000.00")
        # Zero payout is still recorded so the match has an auditable outcome
        assert [t.amount for t in await _payouts(db, match.id)] == [Decimal("0.00")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fee", [-1, 100.5])
    async def test_fee_out_of_range(self, db, fund, fee):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db)

        with pytest.raises(ValueError):
            await SettlementEngine(db).settle(match.id, "alice", fee_percentage=fee)

    @pytest.mark.asyncio
    async def test_retry_is_idempotent(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match = await started_match(db)
        engine = SettlementEngine(db)

        await engine.settle(match.id, "alice", fee_percentage=5)
        await db.commit()
        retry = await engine.settle(match.id, "alice", fee_percentage=5)
        await db.commit()

        assert retry.already_settled is True
        assert retry.payout == Decimal("1900.00")
        assert retry.payouts == {"alice": Decimal("1900.00")}
        assert await balance(db, "alice") == Decimal("5900.00")
        assert len(await _payouts(db, match.id)) == 1

    @pytest.mark.asyncio
    async def test_retry_with_other_winner_conflicts(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db)
        engine = SettlementEngine(db)
        await engine.settle(match.id, "alice")
        await db.commit()

        with pytest.raises(SettlementConflictError):
            await engine.settle(match.id, "bob")

    @pytest.mark.asyncio
    async def test_invalid_winner(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match_id = (await started_match(db)).id

        with pytest.raises(InvalidWinnerError):
            await SettlementEngine(db).settle(match_id, "eve")
        await db.rollback()

        match = await MatchService(db).get_match(match_id)
        assert match.status == MatchStatus.PENDING_RESULT

    @pytest.mark.asyncio
    async def test_cannot_settle_in_progress(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db, done=False)

        with pytest.raises(InvalidMatchStateError):
            await SettlementEngine(db).settle(match.id, "alice")

    @pytest.mark.asyncio
    async def test_disputed_requires_justification(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match_id = (await started_match(db)).id
        await MatchService(db).mark_disputed(match_id, admin_id="admin")
        await db.commit()
        engine = SettlementEngine(db)

        with pytest.raises(DisputeJustificationRequiredError):
            await engine.settle(match_id, "bob", admin_decision="  ")
        await db.rollback()

        result = await engine.settle(match_id, "bob", admin_decision="Replay shows bob won 3-2")
        await db.commit()

        match = await MatchService(db).get_match(match_id)
        assert result.winner_id == "bob"
        assert match.admin_decision == "Replay shows bob won 3-2"
        assert (await _payouts(db, match_id))[0].meta_data["disputed"] is True

    @pytest.mark.asyncio
    async def test_team_payout_split(self, db, fund):
        for user in ("alice", "carol", "bob", "dave"):
            await fund(user, "1000")
        service = MatchService(db)
        match = await service.create_match_with_escrow("alice", Decimal("250"), match_format="2v2", team_members=["carol"])
        await db.commit()
        await service.join_team_match(match.id, "bob", Team.B)
        await service.join_team_match(match.id, "dave", Team.B)
        await db.commit()
        await service.mark_done(match.id, "dave")
        await db.commit()

        result = await SettlementEngine(db).settle(match.id, "dave", fee_percentage=10)
        await db.commit()

        assert result.pot == Decimal("1000.00")
        assert result.payouts == {"bob": Decimal("450.00"), "dave": Decimal("450.00")}
        assert await balance(db, "bob") == Decimal("1200.00")
        assert await balance(db, "dave") == Decimal("1200.00")
        assert await balance(db, "alice") == Decimal("750.00")


class TestDraw:

    @pytest.mark.asyncio
    async def test_draw_returns_every_stake(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match = await started_match(db)

        result = await SettlementEngine(db).settle_draw(match.id, admin_decision="Server crash")
        await db.commit()

        assert result.is_draw is True
        assert result.fee == Decimal("0.00")
        assert match.status == MatchStatus.COMPLETED
        assert match.is_draw is True
        assert match.winner_id is None
        assert await balance(db, "alice") == Decimal("5000.00")
        assert await balance(db, "bob") == Decimal("3000.00")
        assert await _payouts(db, match.id) == []

    @pytest.mark.asyncio
    async def test_draw_after_win_conflicts(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db)
        engine = SettlementEngine(db)
        await engine.settle(match.id, "alice")
        await db.commit()

        with pytest.raises(SettlementConflictError):
            await engine.settle_draw(match.id)

    @pytest.mark.asyncio
    async def test_repeated_draw_is_idempotent(self, db, fund):
        await fund("alice", "5000")
        await fund("bob", "5000")
        match = await started_match(db)
        engine = SettlementEngine(db)
        await engine.settle_draw(match.id)
        await db.commit()

        again = await engine.settle_draw(match.id)

        assert again.already_settled is True
        assert await balance(db, "alice") == Decimal("5000.00")


class TestConcurrentSettlement:
    """Two sessions racing on one match: the late one read the match before the first committed"""

    @pytest.mark.asyncio
    async def test_late_settle_replays_recorded_outcome(self, db, fund, session_factory):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match_id = (await started_match(db)).id

        async with session_factory() as late:
            late_engine = SettlementEngine(late)
            await late_engine.get_match(match_id)

            async with session_factory() as first:
                await SettlementEngine(first).settle(match_id, "alice", fee_percentage=5)
                await first.commit()

            result = await late_engine.settle(match_id, "alice", fee_percentage=5)
            await late.commit()

        assert result.already_settled is True
        assert result.payouts == {"alice": Decimal("1900.00")}
        async with session_factory() as check:
            assert await balance(check, "alice") == Decimal("5900.00")
            assert len(await _payouts(check, match_id)) == 1
            credits = (await check.execute(
                select(LedgerEntry).where(LedgerEntry.reference == match_id, LedgerEntry.reason == "payout")
            )).scalars().all()
            assert len(credits) == 1

    @pytest.mark.asyncio
    async def test_late_settle_for_other_winner_conflicts(self, db, fund, session_factory):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match_id = (await started_match(db)).id

        async with session_factory() as late:
            late_engine = SettlementEngine(late)
            await late_engine.get_match(match_id)

            async with session_factory() as first:
                await SettlementEngine(first).settle(match_id, "alice")
                await first.commit()

            with pytest.raises(SettlementConflictError):
                await late_engine.settle(match_id, "bob")
            await late.rollback()

        async with session_factory() as check:
            assert await balance(check, "bob") == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_dispute_raised_after_read_requires_justification(self, db, fund, session_factory):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match_id = (await started_match(db)).id

        async with session_factory() as late:
            late_engine = SettlementEngine(late)
            await late_engine.get_match(match_id)

            async with session_factory() as admin:
                await MatchService(admin).mark_disputed(match_id, admin_id="admin_1")
                await admin.commit()

            with pytest.raises(DisputeJustificationRequiredError):
                await late_engine.settle(match_id, "alice")
            await late.rollback()

        async with session_factory() as check:
            match = await MatchService(check).get_match(match_id)
            assert match.status == MatchStatus.DISPUTED
            assert match.winner_id is None
            assert await balance(check, "alice") == Decimal("4000.00")
            assert await _payouts(check, match_id) == []

    @pytest.mark.asyncio
    async def test_dispute_raised_after_read_settles_with_decision(self, db, fund, session_factory):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match_id = (await started_match(db)).id

        async with session_factory() as late:
            late_engine = SettlementEngine(late)
            await late_engine.get_match(match_id)

            async with session_factory() as admin:
                await MatchService(admin).mark_disputed(match_id, admin_id="admin_1")
                await admin.commit()

            result = await late_engine.settle(match_id, "alice", admin_decision="Proof confirms alice 3-1")
            await late.commit()

        assert result.already_settled is False
        async with session_factory() as check:
            match = await MatchService(check).get_match(match_id)
            assert match.status == MatchStatus.COMPLETED
            assert match.admin_decision == "Proof confirms alice 3-1"

    @pytest.mark.asyncio
    async def test_late_draw_after_win_conflicts(self, db, fund, session_factory):
        await fund("alice", "5000")
        await fund("bob", "3000")
        match_id = (await started_match(db)).id

        async with session_factory() as late:
            late_engine = SettlementEngine(late)
            await late_engine.get_match(match_id)

            async with session_factory() as first:
                await SettlementEngine(first).settle(match_id, "alice")
                await first.commit()

            with pytest.raises(SettlementConflictError):
                await late_engine.settle_draw(match_id, admin_decision="Server crash")
            await late.rollback()

    @pytest.mark.asyncio
    async def test_store_rejects_second_match_win_row(self, db):
        rows = [legacy_match_win("m-1", "alice", "500") for _ in range(2)]
        for row in rows:
            row.match_id = "m-1"
        db.add_all(rows)

        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()

    @pytest.mark.asyncio
    async def test_metadata_only_rows_bypass_unique_index(self, db):
        db.add_all([legacy_match_win("m-1", "alice", "500") for _ in range(2)])
        await db.commit()

        rows = (await db.execute(select(Transaction).where(Transaction.user_id == "alice"))).scalars().all()
        assert len(rows) == 2
