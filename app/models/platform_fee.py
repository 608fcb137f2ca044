from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base
from app.models.base import utcnow


class PlatformFee(Base):
    """Platform Fee Model - one append-only fee record per settled match"""
    __tablename__ = "platform_fees"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(String(36), ForeignKey("matches.id"), unique=True, nullable=False)
    amount = Column(Numeric(precision=20, scale=2), nullable=False)
    fee_percentage = Column(Numeric(precision=5, scale=2), nullable=False)
    pot_amount = Column(Numeric(precision=20, scale=2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PlatformFee(match_id='{self.match_id}', amount={self.amount})>"
