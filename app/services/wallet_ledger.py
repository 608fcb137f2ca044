from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from decimal import Decimal
from typing import Optional
import logging

from app.models import Wallet, LedgerEntry
from app.models.ledger_entry import EntryType
from app.services.exceptions import InsufficientFundsError

logger = logging.getLogger(__name__)


class WalletLedger:
    """Wallet Ledger - per-user balances, the single source of truth for spendable funds

    Only the escrow hold manager and the settlement engine call into this.
    Every mutation locks the wallet row (SELECT FOR UPDATE) and writes a ledger entry.
    Nothing here commits: the caller's transaction decides.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_or_create_wallet(self, user_id: str) -> Wallet:
        """
        Get existing wallet or create new one
        Uses SELECT FOR UPDATE to prevent race conditions
        """
        stmt = select(Wallet).where(Wallet.user_id == user_id).with_for_update()

        result = await self.db.execute(stmt)
        wallet = result.scalar_one_or_none()

        if not wallet:
            wallet = Wallet(
                user_id=user_id,
                balance=Decimal('0.00'),
                total_deposited=Decimal('0.00'),
                total_withdrawn=Decimal('0.00'),
                version=0
            )
            self.db.add(wallet)
            await self.db.flush()

        return wallet

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        result = await self.db.execute(select(Wallet).where(Wallet.user_id == user_id))
        return result.scalar_one_or_none()

    async def balance_of(self, user_id: str) -> Decimal:
        wallet = await self.get_wallet(user_id)
        return wallet.balance if wallet else Decimal('0.00')

    def _record(self, wallet: Wallet, entry_type: EntryType, amount: Decimal, reason: str, reference: Optional[str]):
        signed = -amount if entry_type == EntryType.DEBIT else amount
        self.db.add(LedgerEntry(
            wallet_id=wallet.id,
            entry_type=entry_type,
            amount=signed,
            balance_after=wallet.balance,
            reason=reason,
            reference=reference
        ))

    async def debit(self, user_id: str, amount: Decimal, reason: str, reference: Optional[str] = None) -> Wallet:
        """
        Debit a wallet atomically
        The balance check and the debit happen under the same row lock,
        so two concurrent holds cannot overspend the same balance
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        wallet = await self._get_or_create_wallet(user_id)

        if wallet.balance < amount:
            raise InsufficientFundsError(
                f"Insufficient balance. Available: {wallet.balance}, Required: {amount}",
                user_id=user_id,
                available=str(wallet.balance),
                required=str(amount)
            )

        wallet.balance -= amount
        wallet.version += 1
        self._record(wallet, EntryType.DEBIT, amount, reason, reference)
        await self.db.flush()

        logger.debug(f"Debited {amount} from {user_id} ({reason}), balance now {wallet.balance}")
        return wallet

    async def credit(self, user_id: str, amount: Decimal, reason: str, reference: Optional[str] = None) -> Wallet:
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        wallet = await self._get_or_create_wallet(user_id)
        wallet.balance += amount
        wallet.version += 1
        self._record(wallet, EntryType.CREDIT, amount, reason, reference)
        await self.db.flush()

        logger.debug(f"Credited {amount} to {user_id} ({reason}), balance now {wallet.balance}")
        return wallet
