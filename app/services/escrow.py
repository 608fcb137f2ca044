from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from decimal import Decimal
from typing import List, Optional
import logging

from app.models import WalletHold, HoldStatus
from app.models.base import utcnow
from app.services.exceptions import HoldNotFoundError, UserSuspendedError
from app.services.users import UserDirectory
from app.services.wallet_ledger import WalletLedger

logger = logging.getLogger(__name__)


class EscrowHoldManager:
    """Escrow Hold Manager - places, releases and settles holds tied to a match

    release_hold and settle_hold are no-ops on holds that already left HELD,
    so retried admin actions are safe.
    """

    def __init__(self, db: AsyncSession, ledger: Optional[WalletLedger] = None):
        self.db = db
        self.ledger = ledger or WalletLedger(db)
        self.users = UserDirectory(db)

    async def _get_hold(self, hold_id: int) -> WalletHold:
        stmt = select(WalletHold).where(WalletHold.id == hold_id).with_for_update()
        result = await self.db.execute(stmt)
        hold = result.scalar_one_or_none()
        if not hold:
            raise HoldNotFoundError(f"Hold {hold_id} not found", hold_id=hold_id)
        return hold

    async def place_hold(self, match_id: str, user_id: str, amount: Decimal) -> WalletHold:
        """
        Debit the user's wallet and earmark the funds for a match
        Fails with UserSuspendedError or InsufficientFundsError before anything is written
        """
        if await self.users.is_suspended(user_id):
            raise UserSuspendedError(
                f"User {user_id} is suspended and cannot stake funds",
                user_id=user_id
            )

        await self.ledger.debit(user_id, amount, reason="hold", reference=match_id)

        hold = WalletHold(
            match_id=match_id,
            user_id=user_id,
            amount=Decimal(amount),
            status=HoldStatus.HELD
        )
        self.db.add(hold)
        await self.db.flush()

        logger.info(f"Placed hold {hold.id}: {amount} from {user_id} for match {match_id}")
        return hold

    async def release_hold(self, hold_id: int) -> WalletHold:
        """Return held funds to the owner (cancellation, draw, void)"""
        hold = await self._get_hold(hold_id)
        if hold.is_terminal:
            logger.info(f"Hold {hold_id} already {hold.status.value}, release skipped")
            return hold

        await self.ledger.credit(hold.user_id, hold.amount, reason="release", reference=hold.match_id)
        hold.status = HoldStatus.RELEASED
        hold.released_at = utcnow()
        await self.db.flush()

        logger.info(f"Released hold {hold_id}: {hold.amount} back to {hold.user_id}")
        return hold

    async def settle_hold(self, hold_id: int, destination: str) -> WalletHold:
        """Mark a hold as paid into the pot, without crediting its owner"""
        hold = await self._get_hold(hold_id)
        if hold.is_terminal:
            logger.info(f"Hold {hold_id} already {hold.status.value}, settle skipped")
            return hold

        hold.status = HoldStatus.FORFEITED
        hold.settled_to = destination
        hold.released_at = utcnow()
        await self.db.flush()
        return hold

    async def holds_for_match(self, match_id: str, status: Optional[HoldStatus] = None) -> List[WalletHold]:
        stmt = select(WalletHold).where(WalletHold.match_id == match_id)
        if status is not None:
            stmt = stmt.where(WalletHold.status == status)
        result = await self.db.execute(stmt.order_by(WalletHold.id))
        return list(result.scalars().all())

    async def holds_for_user(self, user_id: str, status: Optional[HoldStatus] = HoldStatus.HELD) -> List[WalletHold]:
        stmt = select(WalletHold).where(WalletHold.user_id == user_id)
        if status is not None:
            stmt = stmt.where(WalletHold.status == status)
        result = await self.db.execute(stmt.order_by(WalletHold.created_at.desc()))
        return list(result.scalars().all())

    async def held_total(self, user_id: str) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(WalletHold.amount), 0)).where(
                WalletHold.user_id == user_id,
                WalletHold.status == HoldStatus.HELD
            )
        )
        return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))

    async def pot_for_match(self, match_id: str) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(WalletHold.amount), 0)).where(
                WalletHold.match_id == match_id,
                WalletHold.status == HoldStatus.HELD
            )
        )
        return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))
