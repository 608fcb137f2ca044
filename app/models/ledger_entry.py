from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, Index
from sqlalchemy.sql import func
import enum
from app.database import Base
from app.models.base import utcnow


class EntryType(str, enum.Enum):
    """Ledger Entry Types"""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class LedgerEntry(Base):
    """Ledger Entry Model

    One row per wallet balance movement (hold debit, release credit, payout)
    balance_after lets the wallet history be replayed and audited
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False)

    entry_type = Column(Enum(EntryType), nullable=False)
    amount = Column(Numeric(precision=20, scale=2), nullable=False)  # Signed: debits are negative
    balance_after = Column(Numeric(precision=20, scale=2), nullable=False)

    reason = Column(String(50), nullable=False)  # hold / release / payout
    reference = Column(String(100))  # match id or hold id

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_ledger_wallet_created', 'wallet_id', 'created_at'),
        Index('idx_ledger_reference', 'reference'),
    )

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, wallet_id={self.wallet_id}, type={self.entry_type}, amount={self.amount})>"
