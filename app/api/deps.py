"""Request identity and admin authorization

Authentication happens upstream; the gateway forwards the caller's identity
in X-User-Id (and X-User-Email). Admin access comes from the user_roles table.
The emergency email allowlist is a separate break-glass path and every use of
it is logged at WARNING.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.services.users import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminContext:
    user_id: str
    via_emergency_credential: bool = False


async def get_current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    if not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": "X-User-Id header is required"}
        )
    return x_user_id.strip()


def is_emergency_admin(email: Optional[str]) -> bool:
    if not email:
        return False
    allowed = {e.strip().lower() for e in settings.EMERGENCY_ADMIN_EMAILS if e.strip()}
    return email.strip().lower() in allowed


async def require_admin(
    user_id: str = Depends(get_current_user_id),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    db: AsyncSession = Depends(get_db)
) -> AdminContext:
    if await UserDirectory(db).is_admin(user_id):
        return AdminContext(user_id=user_id)

    if is_emergency_admin(x_user_email):
        logger.warning(
            f"EMERGENCY CREDENTIAL USED: {user_id} <{x_user_email}> granted admin access via allowlist"
        )
        return AdminContext(user_id=user_id, via_emergency_credential=True)

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": "Forbidden", "message": "Admin role required", "user_id": user_id}
    )
