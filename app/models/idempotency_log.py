from sqlalchemy import Column, Integer, String, DateTime, Index, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base
from app.models.base import utcnow


class IdempotencyLog(Base):
    """Idempotency Log Model

    Stores idempotency keys and their responses so a retried create/accept/settle
    request replays the first response instead of running the escrow operation twice
    """
    __tablename__ = "idempotency_logs"

    id = Column(Integer, primary_key=True, index=True)
    idempotency_key = Column(String(255), nullable=False, index=True)
    actor_id = Column(String(100), nullable=False)

    request_path = Column(String(255), nullable=False)
    request_method = Column(String(10), nullable=False)

    response_status = Column(Integer)
    response_body = Column(String(5000))

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('idempotency_key', 'actor_id', 'request_path', name='uq_idempotency_key_actor_path'),
        Index('idx_idempotency_expires', 'expires_at'),
    )

    def __repr__(self):
        return f"<IdempotencyLog(id={self.id}, key='{self.idempotency_key}')>"
