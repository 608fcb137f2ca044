from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.api.deps import get_current_user_id
from app.api.errors import escrow_http_error, internal_error
from app.database import get_db
from app.models import Match, Team
from app.schemas.match import (
    AcceptTeamRequest,
    CreateMatchRequest,
    JoinTeamRequest,
    MatchDetailResponse,
    MatchResponse,
    ParticipantResponse,
    ProofRequest,
)
from app.services.exceptions import EscrowError
from app.services.match_service import MatchService
from app.utils.idempotency import check_idempotency, save_idempotency_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["Matches"])


def match_to_response(match: Match) -> MatchResponse:
    return MatchResponse(
        id=match.id,
        creator_id=match.creator_id,
        opponent_id=match.opponent_id,
        format=match.format,
        stake_amount=match.stake_amount,
        status=match.status.value,
        winner_id=match.winner_id,
        admin_decision=match.admin_decision,
        is_draw=match.is_draw,
        was_disputed=match.was_disputed,
        creator_proof_url=match.creator_proof_url,
        opponent_proof_url=match.opponent_proof_url,
        created_at=match.created_at,
        accepted_at=match.accepted_at,
        started_at=match.started_at,
        completed_at=match.completed_at
    )


@router.post("", response_model=MatchResponse, status_code=status.HTTP_201_CREATED)
async def create_match_with_escrow(
    request: CreateMatchRequest,
    user_id: str = Depends(get_current_user_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a challenge and hold the creator's stake

    Fails with INSUFFICIENT_FUNDS, USER_SUSPENDED or STAKE_BELOW_MINIMUM.
    Send an Idempotency-Key header to make client retries safe.

    Example:
    ```
    POST /api/v1/matches
    Headers: {"X-User-Id": "user_alice", "Idempotency-Key": "create_alice_abc123"}
    Body: {"stake_amount": 1000, "format": "1v1", "game_id": "codm"}
    ```
    """
    service = MatchService(db)

    try:
        if idempotency_key:
            cached = await check_idempotency(db, idempotency_key, user_id, "/api/v1/matches")
            if cached:
                return cached["body"]

        match = await service.create_match_with_escrow(
            creator_id=user_id,
            stake_amount=request.stake_amount,
            match_format=request.format,
            team_members=request.team_members,
            game_id=request.game_id,
            game_mode_id=request.game_mode_id,
            map_name=request.map_name,
            duration_minutes=request.duration_minutes,
            custom_rules=request.custom_rules
        )
        response = match_to_response(match)

        if idempotency_key:
            await save_idempotency_log(
                db,
                idempotency_key=idempotency_key,
                actor_id=user_id,
                request_path="/api/v1/matches",
                request_method="POST",
                response_status=201,
                response_body=response.model_dump(mode='json')
            )

        await db.commit()
        return response

    except EscrowError as e:
        await db.rollback()
        raise escrow_http_error(e)
    except Exception as e:
        await db.rollback()
        logger.error(f"Create match failed: {e}", exc_info=True)
        raise internal_error("Match Creation Failed", e)


@router.get("/{match_id}", response_model=MatchDetailResponse)
async def get_match(match_id: str, db: AsyncSession = Depends(get_db)):
    """Match with its participants and the current pot (sum of held stakes)"""
    service = MatchService(db)

    try:
        match = await service.get_match(match_id)
        participants = await service.get_participants(match_id)
        pot = await service.escrow.pot_for_match(match_id)

        return MatchDetailResponse(
            **match_to_response(match).model_dump(),
            participants=[
                ParticipantResponse(
                    user_id=p.user_id,
                    team=p.team.value,
                    role=p.role.value,
                    joined_at=p.joined_at
                )
                for p in participants
            ],
            pot=pot
        )
    except EscrowError as e:
        raise escrow_http_error(e)


async def _run(db: AsyncSession, operation, title: str):
    """Run a state machine operation in the request transaction"""
    try:
        match = await operation()
        await db.commit()
        return match_to_response(match)
    except EscrowError as e:
        await db.rollback()
        raise escrow_http_error(e)
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"{title}: {e}", exc_info=True)
        raise internal_error(title, e)


@router.post("/{match_id}/accept", response_model=MatchResponse)
async def accept_challenge_with_escrow(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Accept a 1v1 challenge, holding the opponent's stake

    Fails with CHALLENGE_UNAVAILABLE if someone else accepted first.
    """
    service = MatchService(db)
    return await _run(
        db,
        lambda: service.accept_challenge_with_escrow(match_id, user_id),
        "Accept Challenge Failed"
    )


@router.post("/{match_id}/accept-team", response_model=MatchResponse)
async def accept_team_challenge_with_escrow(
    match_id: str,
    request: AcceptTeamRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Accept a team challenge as captain, bringing the full opposing team"""
    service = MatchService(db)
    return await _run(
        db,
        lambda: service.accept_team_challenge_with_escrow(match_id, user_id, request.team_members),
        "Accept Team Challenge Failed"
    )


@router.post("/{match_id}/join", response_model=MatchResponse)
async def join_team_match(
    match_id: str,
    request: JoinTeamRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = MatchService(db)
    return await _run(
        db,
        lambda: service.join_team_match(match_id, user_id, Team(request.team)),
        "Join Match Failed"
    )


@router.post("/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match_escrow(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Cancel an unaccepted challenge; every held stake goes back to its owner"""
    service = MatchService(db)
    return await _run(
        db,
        lambda: service.cancel_match_escrow(match_id, actor_id=user_id),
        "Cancel Match Failed"
    )


@router.post("/{match_id}/done", response_model=MatchResponse)
async def mark_done(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = MatchService(db)
    return await _run(db, lambda: service.mark_done(match_id, user_id), "Mark Done Failed")


@router.post("/{match_id}/proof", response_model=MatchResponse)
async def upload_proof(
    match_id: str,
    request: ProofRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = MatchService(db)
    return await _run(
        db,
        lambda: service.upload_proof(match_id, user_id, request.proof_url),
        "Proof Upload Failed"
    )
