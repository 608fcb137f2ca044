"""User store tables consumed by escrow (suspension flags and roles)"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base
from app.models.base import utcnow


class UserFlag(Base):
    __tablename__ = "user_flags"

    user_id = Column(String(100), primary_key=True)
    is_suspended = Column(Boolean, default=False, nullable=False)
    reason = Column(String(500))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<UserFlag(user_id='{self.user_id}', is_suspended={self.is_suspended})>"


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(String(100), primary_key=True)
    role = Column(String(20), default="user", nullable=False)

    def __repr__(self):
        return f"<UserRole(user_id='{self.user_id}', role='{self.role}')>"
