"""Transaction Model - immutable ledger of money movements shown to users"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, Index, JSON, text
from sqlalchemy.sql import func
import enum
from app.database import Base
from app.models.base import utcnow


class TransactionType(str, enum.Enum):
    """Transaction Types"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    MATCH_WIN = "match_win"          # Settlement payout to a winner
    MATCH_LOSS = "match_loss"
    TOURNAMENT_ENTRY = "tournament_entry"
    TOURNAMENT_PRIZE = "tournament_prize"
    REFUND = "refund"


class TransactionStatus(str, enum.Enum):
    """Transaction Status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Transaction(Base):
    """Transaction Model

    Append-only. match_id is copied out of meta_data by settlement so that the
    partial unique index allows at most one MATCH_WIN per (match, user).
    Older rows may carry match_id only inside meta_data.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(String(100), unique=True, nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)

    transaction_type = Column(Enum(TransactionType), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)

    amount = Column(Numeric(precision=20, scale=2), nullable=False)
    reference_code = Column(String(100), index=True)
    description = Column(String(500))
    meta_data = Column(JSON)

    match_id = Column(String(36), index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_transaction_type_status', 'transaction_type', 'status'),
        Index('idx_transaction_user_created', 'user_id', 'created_at'),
        Index(
            'uq_transaction_match_win',
            'match_id', 'user_id',
            unique=True,
            postgresql_where=text("transaction_type = 'MATCH_WIN'"),
            sqlite_where=text("transaction_type = 'MATCH_WIN'"),
        ),
    )

    @property
    def effective_match_id(self):
        if self.match_id:
            return self.match_id
        if isinstance(self.meta_data, dict):
            return self.meta_data.get("match_id")
        return None

    def __repr__(self):
        return f"<Transaction(id={self.id}, type={self.transaction_type}, amount={self.amount}, status={self.status})>"
