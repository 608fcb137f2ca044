from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.api.deps import AdminContext, require_admin
from app.api.errors import escrow_http_error, internal_error
from app.api.v1.matches import match_to_response
from app.database import get_db
from app.models import MatchStatus
from app.schemas.match import DisputeRequest, DrawRequest, MatchResponse, SettleRequest, SettlementResponse
from app.schemas.reconciliation import DuplicateReportResponse
from app.services.exceptions import EscrowError
from app.services.match_service import MatchService
from app.services.reconciliation import DuplicateTransactionAuditor
from app.services.settlement import SettlementEngine
from app.utils.idempotency import check_idempotency, save_idempotency_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/matches/{match_id}/dispute", response_model=MatchResponse)
async def mark_disputed(
    match_id: str,
    request: DisputeRequest,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = MatchService(db)

    try:
        match = await service.mark_disputed(match_id, admin_id=admin.user_id, reason=request.reason)
        await db.commit()
        return match_to_response(match)
    except EscrowError as e:
        await db.rollback()
        raise escrow_http_error(e)
    except Exception as e:
        await db.rollback()
        logger.error(f"Dispute failed: {e}", exc_info=True)
        raise internal_error("Dispute Failed", e)


async def _recorded_settlement(db: AsyncSession, match_id: str, winner_id: str) -> SettlementResponse:
    """Outcome written by the settlement that won a race, or 409 if it picked another winner"""
    engine = SettlementEngine(db)
    try:
        match = await engine.get_match(match_id)
        if match.status != MatchStatus.COMPLETED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "error": "Settlement Conflict",
                    "code": "SETTLEMENT_CONFLICT",
                    "message": "Match was settled by a concurrent request, retry to read the recorded outcome",
                    "match_id": match_id
                }
            )
        result = await engine.replay(match, winner_id)
    except EscrowError as e:
        raise escrow_http_error(e)
    return SettlementResponse.model_validate(result)


@router.post("/matches/{match_id}/settle", response_model=SettlementResponse)
async def settle_match_escrow(
    match_id: str,
    request: SettleRequest,
    admin: AdminContext = Depends(require_admin),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db)
):
    """
    Settle a pending or disputed match

    The winner's side receives pot - fee. Retrying against an already
    settled match returns the recorded outcome with already_settled=true.
    Disputed matches need admin_decision text.

    Example:
    ```
    POST /api/v1/admin/matches/{match_id}/settle
    Headers: {"X-User-Id": "admin_1"}
    Body: {"winner_id": "user_alice", "fee_percentage": 5, "admin_decision": "Proof confirms 3-1"}
    ```
    """
    engine = SettlementEngine(db)
    request_path = f"/api/v1/admin/matches/{match_id}/settle"

    try:
        if idempotency_key:
            cached = await check_idempotency(db, idempotency_key, admin.user_id, request_path)
            if cached:
                return cached["body"]

        result = await engine.settle(
            match_id,
            request.winner_id,
            fee_percentage=request.fee_percentage,
            admin_decision=request.admin_decision,
            actor_id=admin.user_id
        )
        response = SettlementResponse.model_validate(result)

        if idempotency_key:
            await save_idempotency_log(
                db,
                idempotency_key=idempotency_key,
                actor_id=admin.user_id,
                request_path=request_path,
                request_method="POST",
                response_status=200,
                response_body=response.model_dump(mode='json')
            )

        await db.commit()
        return response

    except EscrowError as e:
        await db.rollback()
        raise escrow_http_error(e)
    except IntegrityError as e:
        # Unique payout index: another settlement of this match committed first
        await db.rollback()
        logger.warning(f"Concurrent settlement of match {match_id} lost the race: {e.orig}")
        return await _recorded_settlement(db, match_id, request.winner_id)
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail={"error": "Invalid Request", "message": str(e)})
    except Exception as e:
        await db.rollback()
        logger.error(f"Settlement failed: {e}", exc_info=True)
        raise internal_error("Settlement Failed", e)


@router.post("/matches/{match_id}/draw", response_model=SettlementResponse)
async def settle_draw(
    match_id: str,
    request: DrawRequest,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Void a match: every held stake is released, no fee is taken"""
    engine = SettlementEngine(db)

    try:
        result = await engine.settle_draw(match_id, admin_decision=request.admin_decision, actor_id=admin.user_id)
        await db.commit()
        return SettlementResponse.model_validate(result)
    except EscrowError as e:
        await db.rollback()
        raise escrow_http_error(e)
    except Exception as e:
        await db.rollback()
        logger.error(f"Draw failed: {e}", exc_info=True)
        raise internal_error("Draw Failed", e)


@router.post("/matches/{match_id}/cancel", response_model=MatchResponse)
async def admin_cancel_match(
    match_id: str,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = MatchService(db)

    try:
        match = await service.cancel_match_escrow(match_id, actor_id=admin.user_id, is_admin=True)
        await db.commit()
        return match_to_response(match)
    except EscrowError as e:
        await db.rollback()
        raise escrow_http_error(e)
    except Exception as e:
        await db.rollback()
        logger.error(f"Admin cancel failed: {e}", exc_info=True)
        raise internal_error("Cancel Match Failed", e)


@router.get("/reconciliation/duplicates", response_model=DuplicateReportResponse)
async def analyze_duplicates(
    match_id: Optional[str] = None,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Read-only scan for duplicate match_win payouts"""
    try:
        report = await DuplicateTransactionAuditor(db).analyze(match_id)
        return DuplicateReportResponse.model_validate(report)
    except Exception as e:
        logger.error(f"Duplicate analysis failed: {e}", exc_info=True)
        raise internal_error("Duplicate Analysis Failed", e)


@router.post("/reconciliation/duplicates/fix", response_model=DuplicateReportResponse)
async def fix_duplicates(
    match_id: Optional[str] = None,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete duplicate match_win payouts, keeping the earliest per (match, user)

    Per-row failures are listed in the report's errors, they do not abort the run.
    """
    logger.info(f"Duplicate cleanup started by {admin.user_id}")
    try:
        report = await DuplicateTransactionAuditor(db).fix(match_id)
        return DuplicateReportResponse.model_validate(report)
    except Exception as e:
        await db.rollback()
        logger.error(f"Duplicate cleanup failed: {e}", exc_info=True)
        raise internal_error("Duplicate Cleanup Failed", e)
