"""Duplicate payout audit - reports (and with --fix removes) repeated MATCH_WIN rows"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import AsyncSessionLocal, close_db
from app.services.reconciliation import DuplicateTransactionAuditor


def print_report(report):
    mode = "DRY RUN" if report.dry_run else "FIX"
    print("=" * 60)
    print(f"DUPLICATE PAYOUT AUDIT ({mode})")
    print("=" * 60)
    print(f"   • Matches scanned: {report.total_matches}")
    print(f"   • Matches with duplicates: {report.matches_with_duplicates}")
    print(f"   • Affected users: {report.affected_users}")
    print(f"   • Duplicates found: {report.total_duplicates_found}")
    if not report.dry_run:
        print(f"   • Duplicates removed: {report.total_duplicates_removed}")
    print(f"   • Amount recovered: {report.total_amount_recovered}")

    for group in report.details:
        print(
            f"     - match {group.match_id} / {group.user_id}: kept {group.kept_transaction_id}, "
            f"{group.duplicates_removed} duplicate(s), {group.amount_recovered}"
        )

    if report.errors:
        print(f"\n❌ {len(report.errors)} error(s):")
        for error in report.errors:
            print(f"     - {error.error}")


async def run(fix: bool, match_id=None) -> int:
    async with AsyncSessionLocal() as session:
        auditor = DuplicateTransactionAuditor(session)
        report = await auditor.fix(match_id) if fix else await auditor.analyze(match_id)
    await close_db()

    print_report(report)
    return 1 if report.errors else 0


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--fix", action="store_true", help="delete duplicates instead of only reporting them")
    parser.add_argument("--match-id", help="restrict the audit to a single match")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.fix, args.match_id)))


if __name__ == "__main__":
    main()
