"""Helpers shared by the test suites"""
import uuid
from decimal import Decimal

from app.models import Match, Transaction, TransactionStatus, TransactionType
from app.services.match_service import MatchService
from app.services.wallet_ledger import WalletLedger


async def balance(db, user_id: str) -> Decimal:
    return await WalletLedger(db).balance_of(user_id)


async def started_match(db, creator="alice", opponent="bob", stake="1000", done=True) -> Match:
    """Create, accept and optionally mark a 1v1 match done, committing each step"""
    service = MatchService(db)
    match = await service.create_match_with_escrow(creator, Decimal(stake))
    await db.commit()
    await service.accept_challenge_with_escrow(match.id, opponent)
    await db.commit()
    if done:
        await service.mark_done(match.id, creator)
        await db.commit()
    return match


def legacy_match_win(match_id: str, user_id: str, amount, created_at=None) -> Transaction:
    """A completed payout row as older clients wrote it, match_id only in meta_data"""
    tx = Transaction(
        transaction_id=str(uuid.uuid4()),
        user_id=user_id,
        transaction_type=TransactionType.MATCH_WIN,
        status=TransactionStatus.COMPLETED,
        amount=Decimal(str(amount)),
        meta_data={"match_id": match_id},
    )
    if created_at is not None:
        tx.created_at = created_at
    return tx
