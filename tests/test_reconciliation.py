"""Duplicate payout auditor"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import Delete, select
from sqlalchemy.exc import OperationalError

from app.models import Transaction, TransactionStatus
from app.services.reconciliation import DuplicateTransactionAuditor
from tests.factories import legacy_match_win

T0 = datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc)


class FailingFirstDelete:
    """Session proxy whose first DELETE fails, as a locked row would"""

    def __init__(self, session):
        self._session = session
        self.failed = False

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def execute(self, statement, *args, **kwargs):
        if isinstance(statement, Delete) and not self.failed:
            self.failed = True
            raise OperationalError("DELETE FROM transactions", {}, Exception("database is locked"))
        return await self._session.execute(statement, *args, **kwargs)


async def _seed_triplicate(db, match_id="m-1", user_id="alice"):
    rows = [legacy_match_win(match_id, user_id, "500", created_at=T0 + timedelta(seconds=i)) for i in range(3)]
    db.add_all(rows)
    await db.commit()
    return rows


async def _remaining(db, user_id="alice"):
    result = await db.execute(
        select(Transaction).where(Transaction.user_id == user_id).order_by(Transaction.created_at)
    )
    return result.scalars().all()


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_reports_duplicates_without_deleting(self, db):
        rows = await _seed_triplicate(db)

        report = await DuplicateTransactionAuditor(db).analyze()

        assert report.dry_run is True
        assert report.total_matches == 1
        assert report.matches_with_duplicates == 1
        assert report.affected_users == 1
        assert report.total_duplicates_found == 2
        assert report.total_duplicates_removed == 0
        assert report.total_amount_recovered == Decimal("1000.00")
        assert report.details[0].kept_transaction_id == rows[0].transaction_id
        assert len(await _remaining(db)) == 3

    @pytest.mark.asyncio
    async def test_single_payouts_are_clean(self, db):
        db.add_all([
            legacy_match_win("m-1", "alice", "500", created_at=T0),
            legacy_match_win("m-2", "alice", "500", created_at=T0),
            legacy_match_win("m-1", "bob", "250", created_at=T0),
        ])
        await db.commit()

        report = await DuplicateTransactionAuditor(db).analyze()

        assert report.total_matches == 2
        assert report.total_duplicates_found == 0
        assert report.details == []

    @pytest.mark.asyncio
    async def test_pending_rows_are_ignored(self, db):
        rows = [legacy_match_win("m-1", "alice", "500", created_at=T0 + timedelta(seconds=i)) for i in range(2)]
        rows[1].status = TransactionStatus.PENDING
        db.add_all(rows)
        await db.commit()

        report = await DuplicateTransactionAuditor(db).analyze()
        assert report.total_duplicates_found == 0

    @pytest.mark.asyncio
    async def test_match_filter(self, db):
        await _seed_triplicate(db, match_id="m-1")
        await _seed_triplicate(db, match_id="m-2")

        report = await DuplicateTransactionAuditor(db).analyze(match_id="m-2")

        assert report.total_matches == 1
        assert [g.match_id for g in report.details] == ["m-2"]

    @pytest.mark.asyncio
    async def test_match_filter_covers_column_and_legacy_rows(self, db):
        settled = legacy_match_win("m-2", "alice", "500", created_at=T0)
        settled.match_id = "m-2"
        elsewhere = legacy_match_win("m-2", "alice", "500", created_at=T0)
        elsewhere.match_id = "m-1"
        db.add_all([settled, elsewhere, legacy_match_win("m-2", "alice", "500", created_at=T0 + timedelta(minutes=1))])
        await db.commit()

        report = await DuplicateTransactionAuditor(db).analyze(match_id="m-2")

        assert report.total_matches == 1
        assert report.total_duplicates_found == 1
        assert report.details[0].kept_transaction_id == settled.transaction_id

    @pytest.mark.asyncio
    async def test_column_and_metadata_rows_group_together(self, db):
        settled = legacy_match_win("m-1", "alice", "500", created_at=T0)
        settled.match_id = "m-1"
        db.add_all([settled, legacy_match_win("m-1", "alice", "500", created_at=T0 + timedelta(minutes=1))])
        await db.commit()

        report = await DuplicateTransactionAuditor(db).analyze()

        assert report.total_duplicates_found == 1
        assert report.details[0].kept_transaction_id == settled.transaction_id


class TestFix:

    @pytest.mark.asyncio
    async def test_keeps_earliest_row(self, db):
        rows = await _seed_triplicate(db)
        kept_id = rows[0].transaction_id

        report = await DuplicateTransactionAuditor(db).fix()

        assert report.dry_run is False
        assert report.total_duplicates_found == 2
        assert report.total_duplicates_removed == 2
        assert report.total_amount_recovered == Decimal("1000.00")
        assert report.errors == []
        remaining = await _remaining(db)
        assert [t.transaction_id for t in remaining] == [kept_id]

    @pytest.mark.asyncio
    async def test_second_run_finds_nothing(self, db):
        await _seed_triplicate(db)
        auditor = DuplicateTransactionAuditor(db)
        await auditor.fix()

        report = await auditor.fix()

        assert report.total_duplicates_found == 0
        assert len(await _remaining(db)) == 1

    @pytest.mark.asyncio
    async def test_failed_delete_is_reported_and_batch_continues(self, db):
        rows = await _seed_triplicate(db)
        failing_id = rows[1].transaction_id

        report = await DuplicateTransactionAuditor(FailingFirstDelete(db)).fix()

        assert report.total_duplicates_found == 2
        assert report.total_duplicates_removed == 1
        assert report.total_amount_recovered == Decimal("500.00")
        assert len(report.errors) == 1
        assert report.errors[0].transaction_id == failing_id
        assert "database is locked" in report.errors[0].error

        remaining = await _remaining(db)
        assert [t.transaction_id for t in remaining] == [rows[0].transaction_id, failing_id]
