"""Wallet Hold Model - funds earmarked for a match"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
import enum
from app.database import Base
from app.models.base import utcnow


class HoldStatus(str, enum.Enum):
    """Hold Status - leaves HELD exactly once"""
    HELD = "held"
    RELEASED = "released"    # Funds returned to the owner
    FORFEITED = "forfeited"  # Funds moved into the settled pot


class WalletHold(Base):
    """Wallet Hold Model

    Created by debiting the owner's wallet. Released holds credit the owner
    back, forfeited holds do not (settlement pays the pot out separately).
    """
    __tablename__ = "wallet_holds"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(String(36), ForeignKey("matches.id"), nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    amount = Column(Numeric(precision=20, scale=2), nullable=False)
    status = Column(Enum(HoldStatus), default=HoldStatus.HELD, nullable=False)
    settled_to = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    released_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('match_id', 'user_id', name='uq_hold_match_user'),
        CheckConstraint('amount > 0', name='ck_hold_amount_positive'),
        Index('idx_hold_user_status', 'user_id', 'status'),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status != HoldStatus.HELD

    def __repr__(self):
        return f"<WalletHold(id={self.id}, match_id='{self.match_id}', user_id='{self.user_id}', amount={self.amount}, status={self.status})>"
