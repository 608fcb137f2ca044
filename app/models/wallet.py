from sqlalchemy import Column, Integer, String, Numeric, DateTime, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base
from app.models.base import utcnow


class Wallet(Base):
    """Wallet Model

    One spendable balance per user, the single source of truth for funds.
    Mutated only through the wallet ledger (escrow holds and settlement).
    """
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), unique=True, nullable=False, index=True)
    balance = Column(Numeric(precision=20, scale=2), default=0, nullable=False)
    total_deposited = Column(Numeric(precision=20, scale=2), default=0, nullable=False)
    total_withdrawn = Column(Numeric(precision=20, scale=2), default=0, nullable=False)
    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('balance >= 0', name='ck_wallet_balance_non_negative'),
    )

    def __repr__(self):
        return f"<Wallet(id={self.id}, user_id='{self.user_id}', balance={self.balance})>"
