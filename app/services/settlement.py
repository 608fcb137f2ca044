from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Dict, List, Optional
import uuid
import logging

from app.config import settings
from app.models import (
    HoldStatus,
    Match,
    MatchParticipant,
    MatchStatus,
    PlatformFee,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from app.models.base import utcnow
from app.services.escrow import EscrowHoldManager
from app.services.events import MatchStatusChanged, queue_event
from app.services.exceptions import (
    DisputeJustificationRequiredError,
    InvalidMatchStateError,
    InvalidWinnerError,
    MatchNotFoundError,
    SettlementConflictError,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
SETTLEABLE = (MatchStatus.PENDING_RESULT, MatchStatus.DISPUTED)
VOIDABLE = (MatchStatus.IN_PROGRESS, MatchStatus.PENDING_RESULT, MatchStatus.DISPUTED)


@dataclass
class SettlementResult:
    match_id: str
    winner_id: Optional[str]
    pot: Decimal
    fee: Decimal
    payout: Decimal
    fee_percentage: Decimal
    payouts: Dict[str, Decimal] = field(default_factory=dict)
    is_draw: bool = False
    already_settled: bool = False


def compute_fee(pot: Decimal, fee_percentage: Decimal) -> Decimal:
    return (pot * fee_percentage / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def split_payout(payout: Decimal, winners: List[str], lead_winner: str) -> Dict[str, Decimal]:
    """Equal shares rounded down to cents, the leftover cents go to lead_winner"""
    share = (payout / len(winners)).quantize(CENT, rounding=ROUND_DOWN)
    shares = {user_id: share for user_id in winners}
    shares[lead_winner] += payout - share * len(winners)
    return shares


class SettlementEngine:
    """Settlement Engine - pays the pot of a finished match to its winner

    pot = every HELD stake on the match, fee = pot * fee_percentage / 100,
    payout = pot - fee. Runs inside the caller's transaction: either the whole
    settlement commits or none of it does.

    Only one settlement can move a match out of pending_result/disputed
    (conditional UPDATE on status). A retry against an already completed
    match returns the recorded outcome instead of paying again.
    """

    def __init__(self, db: AsyncSession, escrow: Optional[EscrowHoldManager] = None):
        self.db = db
        self.escrow = escrow or EscrowHoldManager(db)
        self.ledger = self.escrow.ledger

    async def get_match(self, match_id: str) -> Match:
        result = await self.db.execute(select(Match).where(Match.id == match_id))
        match = result.scalar_one_or_none()
        if not match:
            raise MatchNotFoundError(f"Match {match_id} not found", match_id=match_id)
        return match

    async def _participants(self, match_id: str) -> List[MatchParticipant]:
        result = await self.db.execute(
            select(MatchParticipant).where(MatchParticipant.match_id == match_id).order_by(MatchParticipant.id)
        )
        return list(result.scalars().all())

    def _check_justification(self, match: Match, admin_decision: Optional[str]):
        if (
            match.status == MatchStatus.DISPUTED
            and settings.REQUIRE_DISPUTE_JUSTIFICATION
            and not (admin_decision or "").strip()
        ):
            raise DisputeJustificationRequiredError(
                "Resolving a disputed match requires an admin decision explaining the outcome",
                match_id=match.id
            )

    async def _claim(self, match: Match, expected, actor_id: Optional[str], **values) -> bool:
        """Conditional status update; False means the match left the expected status since it was read"""
        from_status = match.status
        now = utcnow()
        result = await self.db.execute(
            update(Match)
            .where(Match.id == match.id, Match.status.in_(list(expected)))
            .values(status=MatchStatus.COMPLETED, completed_at=now, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(match)
        if result.rowcount != 1:
            return False

        queue_event(self.db, MatchStatusChanged(
            match_id=match.id,
            from_status=from_status.value,
            to_status=MatchStatus.COMPLETED.value,
            actor_id=actor_id
        ))
        return True

    async def recorded_result(self, match: Match) -> SettlementResult:
        """Rebuild the outcome of an already completed match from its fee and payout records"""
        fee_row = (await self.db.execute(
            select(PlatformFee).where(PlatformFee.match_id == match.id)
        )).scalar_one_or_none()

        wins = (await self.db.execute(
            select(Transaction).where(
                Transaction.match_id == match.id,
                Transaction.transaction_type == TransactionType.MATCH_WIN,
                Transaction.status == TransactionStatus.COMPLETED
            )
        )).scalars().all()
        payouts = {tx.user_id: tx.amount for tx in wins}

        zero = Decimal("0.00")
        return SettlementResult(
            match_id=match.id,
            winner_id=match.winner_id,
            pot=fee_row.pot_amount if fee_row else zero,
            fee=fee_row.amount if fee_row else zero,
            payout=sum(payouts.values(), zero),
            fee_percentage=fee_row.fee_percentage if fee_row else zero,
            payouts=payouts,
            is_draw=bool(match.is_draw),
            already_settled=True
        )

    async def replay(self, match: Match, winner_id: Optional[str]) -> SettlementResult:
        if match.winner_id != winner_id:
            raise SettlementConflictError(
                f"Match {match.id} was already settled with a different outcome",
                match_id=match.id,
                winner_id=match.winner_id
            )
        logger.info(f"Match {match.id} already settled, returning recorded outcome")
        return await self.recorded_result(match)

    async def settle(
        self,
        match_id: str,
        winner_id: str,
        fee_percentage: Optional[float] = None,
        admin_decision: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> SettlementResult:
        """
        Settle a pending or disputed match in favour of winner_id
        For team matches the winner's whole team is paid, split evenly
        """
        if fee_percentage is None:
            fee_percentage = settings.DEFAULT_FEE_PERCENTAGE
        fee_pct = Decimal(str(fee_percentage))
        if fee_pct < 0 or fee_pct > 100:
            raise ValueError("fee_percentage must be between 0 and 100")

        match = await self.get_match(match_id)
        if match.status == MatchStatus.COMPLETED:
            return await self.replay(match, winner_id)
        if match.status not in SETTLEABLE:
            raise InvalidMatchStateError(
                f"Match {match_id} is {match.status.value}, only pending or disputed matches can be settled",
                match_id=match_id,
                status=match.status.value
            )

        participants = await self._participants(match_id)
        winner = next((p for p in participants if p.user_id == winner_id), None)
        if winner is None:
            raise InvalidWinnerError(
                f"{winner_id} is not a participant of match {match_id}",
                match_id=match_id,
                winner_id=winner_id
            )
        self._check_justification(match, admin_decision)

        # Claim only from the status that was validated; a match disputed meanwhile is checked again
        decision = admin_decision or match.admin_decision
        while not await self._claim(match, [match.status], actor_id, winner_id=winner_id, admin_decision=decision):
            if match.status == MatchStatus.COMPLETED:
                return await self.replay(match, winner_id)
            if match.status not in SETTLEABLE:
                raise InvalidMatchStateError(f"Match {match_id} can no longer be settled", match_id=match_id)
            self._check_justification(match, admin_decision)
            decision = admin_decision or match.admin_decision

        holds = await self.escrow.holds_for_match(match_id, HoldStatus.HELD)
        pot = sum((h.amount for h in holds), Decimal("0.00"))
        fee = compute_fee(pot, fee_pct)
        payout = pot - fee

        winners = [p.user_id for p in participants if p.team == winner.team]
        for hold in holds:
            await self.escrow.settle_hold(hold.id, "winner" if hold.user_id in winners else "pot")

        shares = split_payout(payout, winners, winner_id)
        now = utcnow()
        for user_id, amount in shares.items():
            if amount > 0:
                await self.ledger.credit(user_id, amount, reason="payout", reference=match_id)
            self.db.add(Transaction(
                transaction_id=str(uuid.uuid4()),
                user_id=user_id,
                transaction_type=TransactionType.MATCH_WIN,
                status=TransactionStatus.COMPLETED,
                amount=amount,
                reference_code=f"WIN-{match_id[:8].upper()}-{uuid.uuid4().hex[:6].upper()}",
                description=f"Match win payout ({match.format})",
                meta_data={
                    "match_id": match_id,
                    "pot": str(pot),
                    "fee": str(fee),
                    "fee_percentage": str(fee_pct),
                    "disputed": bool(match.was_disputed)
                },
                match_id=match_id,
                processed_at=now
            ))

        self.db.add(PlatformFee(
            match_id=match_id,
            amount=fee,
            fee_percentage=fee_pct,
            pot_amount=pot
        ))
        await self.db.flush()

        logger.info(
            f"Settled match {match_id}: winner={winner_id}, pot={pot}, fee={fee} ({fee_pct}%), payout={payout}"
            f"{' after dispute' if match.was_disputed else ''}"
        )
        return SettlementResult(
            match_id=match_id,
            winner_id=winner_id,
            pot=pot,
            fee=fee,
            payout=payout,
            fee_percentage=fee_pct,
            payouts=shares
        )

    async def settle_draw(
        self,
        match_id: str,
        admin_decision: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> SettlementResult:
        """
        Void a match: every stake is returned, no fee and no transaction is recorded
        The match ends completed with no winner and is_draw set
        """
        match = await self.get_match(match_id)
        if match.status == MatchStatus.COMPLETED:
            if not match.is_draw:
                raise SettlementConflictError(
                    f"Match {match_id} was already settled with a winner",
                    match_id=match_id,
                    winner_id=match.winner_id
                )
            return await self.recorded_result(match)
        if match.status not in VOIDABLE:
            raise InvalidMatchStateError(
                f"Match {match_id} is {match.status.value} and cannot be voided",
                match_id=match_id,
                status=match.status.value
            )
        self._check_justification(match, admin_decision)

        decision = admin_decision or match.admin_decision
        while not await self._claim(match, [match.status], actor_id, winner_id=None, is_draw=True, admin_decision=decision):
            if match.status == MatchStatus.COMPLETED:
                if match.is_draw:
                    return await self.recorded_result(match)
                raise SettlementConflictError(f"Match {match_id} was settled concurrently", match_id=match_id)
            if match.status not in VOIDABLE:
                raise InvalidMatchStateError(f"Match {match_id} can no longer be voided", match_id=match_id)
            self._check_justification(match, admin_decision)
            decision = admin_decision or match.admin_decision

        holds = await self.escrow.holds_for_match(match_id, HoldStatus.HELD)
        pot = sum((h.amount for h in holds), Decimal("0.00"))
        for hold in holds:
            await self.escrow.release_hold(hold.id)

        logger.info(f"Match {match_id} voided, released {len(holds)} holds totalling {pot}")
        zero = Decimal("0.00")
        return SettlementResult(
            match_id=match_id,
            winner_id=None,
            pot=pot,
            fee=zero,
            payout=zero,
            fee_percentage=zero,
            is_draw=True
        )
