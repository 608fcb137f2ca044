"""Duplicate payout auditor

Settlement through older clients was not exactly-once: retried or racing calls
could leave several MATCH_WIN rows for the same (match, user). The auditor
finds those groups, keeps the earliest row and deletes the rest.

Rows written by the settlement engine are protected by a unique index, so in
practice the auditor only ever finds legacy data. It can run alongside live
settlement traffic because it never touches a group with a single row.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, or_
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
import logging

from app.models import Transaction, TransactionType, TransactionStatus

logger = logging.getLogger(__name__)


@dataclass
class DuplicateGroup:
    match_id: str
    user_id: str
    kept_transaction_id: str
    duplicates_removed: int = 0
    amount_recovered: Decimal = Decimal("0.00")


@dataclass
class DuplicateError:
    match_id: str
    transaction_id: str
    error: str


@dataclass
class DuplicateReport:
    total_matches: int = 0
    matches_with_duplicates: int = 0
    affected_users: int = 0
    total_duplicates_found: int = 0
    total_duplicates_removed: int = 0
    total_amount_recovered: Decimal = Decimal("0.00")
    dry_run: bool = True
    errors: List[DuplicateError] = field(default_factory=list)
    details: List[DuplicateGroup] = field(default_factory=list)


class DuplicateTransactionAuditor:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_groups(self, match_id: Optional[str] = None) -> Dict[str, Dict[str, List[Transaction]]]:
        """Completed MATCH_WIN rows grouped by match, then by user, oldest first"""
        stmt = select(Transaction).where(
            Transaction.transaction_type == TransactionType.MATCH_WIN,
            Transaction.status == TransactionStatus.COMPLETED
        )
        if match_id is not None:
            # Legacy rows carry the match only in meta_data and are filtered below
            stmt = stmt.where(or_(Transaction.match_id == match_id, Transaction.match_id.is_(None)))
        result = await self.db.execute(stmt.order_by(Transaction.created_at, Transaction.id))

        groups: Dict[str, Dict[str, List[Transaction]]] = {}
        for tx in result.scalars().all():
            tx_match_id = tx.effective_match_id
            if not tx_match_id or not tx.user_id:
                continue
            if match_id is not None and tx_match_id != match_id:
                continue
            groups.setdefault(tx_match_id, {}).setdefault(tx.user_id, []).append(tx)
        return groups

    def _duplicates(self, groups) -> List[Tuple[str, str, Transaction, List[Transaction]]]:
        found = []
        for group_match_id, by_user in groups.items():
            for user_id, transactions in by_user.items():
                if len(transactions) > 1:
                    found.append((group_match_id, user_id, transactions[0], transactions[1:]))
        return found

    async def analyze(self, match_id: Optional[str] = None) -> DuplicateReport:
        """Read-only pass: what fix() would remove and how much it would recover"""
        groups = await self._load_groups(match_id)
        report = DuplicateReport(total_matches=len(groups), dry_run=True)

        affected_users = set()
        affected_matches = set()
        for group_match_id, user_id, keep, extras in self._duplicates(groups):
            amount = sum((abs(tx.amount) for tx in extras), Decimal("0.00"))
            affected_users.add(user_id)
            affected_matches.add(group_match_id)
            report.total_duplicates_found += len(extras)
            report.total_amount_recovered += amount
            report.details.append(DuplicateGroup(
                match_id=group_match_id,
                user_id=user_id,
                kept_transaction_id=keep.transaction_id,
                duplicates_removed=len(extras),
                amount_recovered=amount
            ))
            logger.info(
                f"Match {group_match_id}: user {user_id} has {len(extras) + 1} payouts, "
                f"keeping {keep.transaction_id}, {len(extras)} duplicate(s) worth {amount}"
            )

        report.matches_with_duplicates = len(affected_matches)
        report.affected_users = len(affected_users)
        logger.info(
            f"Duplicate analysis: {report.total_matches} matches, {report.matches_with_duplicates} with duplicates, "
            f"{report.total_duplicates_found} duplicate payouts worth {report.total_amount_recovered}"
        )
        return report

    async def fix(self, match_id: Optional[str] = None) -> DuplicateReport:
        """
        Delete every payout after the earliest in each (match, user) group
        Each deletion commits on its own; a failed row is reported and the batch goes on
        """
        groups = await self._load_groups(match_id)
        report = DuplicateReport(total_matches=len(groups), dry_run=False)

        # Snapshot plain values first, a rollback below expires the ORM rows
        plan = [
            (group_match_id, user_id, keep.transaction_id, [(tx.id, tx.transaction_id, tx.amount) for tx in extras])
            for group_match_id, user_id, keep, extras in self._duplicates(groups)
        ]

        affected_users = set()
        affected_matches = set()
        for group_match_id, user_id, kept_id, extras in plan:
            affected_users.add(user_id)
            affected_matches.add(group_match_id)
            report.total_duplicates_found += len(extras)

            group = DuplicateGroup(match_id=group_match_id, user_id=user_id, kept_transaction_id=kept_id)
            for row_id, transaction_id, amount in extras:
                try:
                    await self.db.execute(delete(Transaction).where(Transaction.id == row_id))
                    await self.db.commit()
                except Exception as e:
                    await self.db.rollback()
                    logger.error(f"Failed to remove duplicate transaction {transaction_id}: {e}")
                    report.errors.append(DuplicateError(
                        match_id=group_match_id,
                        transaction_id=transaction_id,
                        error=f"Failed to remove transaction {transaction_id}: {e}"
                    ))
                    continue

                group.duplicates_removed += 1
                group.amount_recovered += abs(amount)
                logger.info(f"Removed duplicate transaction {transaction_id} ({amount}) for match {group_match_id}")

            if group.duplicates_removed:
                report.details.append(group)
                report.total_duplicates_removed += group.duplicates_removed
                report.total_amount_recovered += group.amount_recovered

        report.matches_with_duplicates = len(affected_matches)
        report.affected_users = len(affected_users)
        logger.info(
            f"Duplicate cleanup: removed {report.total_duplicates_removed}/{report.total_duplicates_found}, "
            f"recovered {report.total_amount_recovered}, errors {len(report.errors)}"
        )
        return report
