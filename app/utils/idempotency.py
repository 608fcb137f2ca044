"""Idempotency-Key replay for escrow endpoints"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from datetime import timedelta
from typing import Optional
import json

from app.config import settings
from app.models import IdempotencyLog
from app.models.base import utcnow


async def check_idempotency(
    db: AsyncSession,
    idempotency_key: str,
    actor_id: str,
    request_path: str
) -> Optional[dict]:
    """
    Check if request with this idempotency key was already processed
    A key only replays the request it was first sent with: same actor, same path
    Returns cached response if found, None otherwise
    """
    stmt = select(IdempotencyLog).where(
        and_(
            IdempotencyLog.idempotency_key == idempotency_key,
            IdempotencyLog.actor_id == actor_id,
            IdempotencyLog.request_path == request_path,
            IdempotencyLog.expires_at > utcnow()
        )
    )
    result = await db.execute(stmt)
    log = result.scalar_one_or_none()

    if log:
        return {
            "status": log.response_status,
            "body": json.loads(log.response_body) if log.response_body else None
        }

    return None


async def save_idempotency_log(
    db: AsyncSession,
    idempotency_key: str,
    actor_id: str,
    request_path: str,
    request_method: str,
    response_status: int,
    response_body: dict
):
    """Save idempotency log for future duplicate checks"""
    log = IdempotencyLog(
        idempotency_key=idempotency_key,
        actor_id=actor_id,
        request_path=request_path,
        request_method=request_method,
        response_status=response_status,
        response_body=json.dumps(response_body),
        expires_at=utcnow() + timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS)
    )

    db.add(log)
    await db.flush()
