from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from decimal import Decimal
from typing import List, Optional, Sequence
import uuid
import logging

from app.config import settings
from app.models import Match, MatchParticipant, MatchStatus, Team, ParticipantRole, HoldStatus
from app.models.base import utcnow
from app.models.match import parse_format
from app.services.escrow import EscrowHoldManager
from app.services.events import MatchStatusChanged, queue_event
from app.services.settlement import SettlementEngine
from app.services.exceptions import (
    ChallengeUnavailableError,
    InvalidFormatError,
    InvalidMatchStateError,
    MatchNotFoundError,
    NotParticipantError,
    SelfAcceptError,
    StakeBelowMinimumError,
    TeamFullError,
    UserSuspendedError,
)

logger = logging.getLogger(__name__)


class MatchService:
    """Match Lifecycle State Machine

    awaiting_opponent -> in_progress -> pending_result -> completed | disputed
    cancelled is only reachable from awaiting_opponent.

    Every escrow side effect runs in the caller's transaction, so a failed
    hold (suspended user, insufficient funds) rolls the transition back too.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.escrow = EscrowHoldManager(db)
        self.users = self.escrow.users

    async def get_match(self, match_id: str, for_update: bool = False) -> Match:
        stmt = select(Match).where(Match.id == match_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        match = result.scalar_one_or_none()
        if not match:
            raise MatchNotFoundError(f"Match {match_id} not found", match_id=match_id)
        return match

    async def get_participants(self, match_id: str) -> List[MatchParticipant]:
        result = await self.db.execute(
            select(MatchParticipant)
            .where(MatchParticipant.match_id == match_id)
            .order_by(MatchParticipant.id)
        )
        return list(result.scalars().all())

    async def _conditional_transition(
        self,
        match: Match,
        expected: Sequence[MatchStatus],
        to_status: MatchStatus,
        actor_id: Optional[str],
        *criteria,
        **values
    ) -> bool:
        """
        Move a match to to_status only if it is still in one of the expected states
        Returns False when another request got there first
        """
        from_status = match.status
        now = utcnow()
        stmt = (
            update(Match)
            .where(Match.id == match.id, Match.status.in_(list(expected)), *criteria)
            .values(status=to_status, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.refresh(match)
        if result.rowcount != 1:
            return False

        queue_event(self.db, MatchStatusChanged(
            match_id=match.id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            actor_id=actor_id
        ))
        logger.info(f"Match {match.id}: {from_status.value} -> {to_status.value}")
        return True

    async def _add_participant(self, match: Match, user_id: str, team: Team, role: ParticipantRole) -> MatchParticipant:
        participant = MatchParticipant(match_id=match.id, user_id=user_id, team=team, role=role)
        self.db.add(participant)
        await self.db.flush()
        await self.escrow.place_hold(match.id, user_id, match.stake_amount)
        return participant

    async def _ensure_not_suspended(self, user_id: str):
        if await self.users.is_suspended(user_id):
            raise UserSuspendedError(
                f"User {user_id} is suspended and cannot stake funds",
                user_id=user_id
            )

    async def create_match_with_escrow(
        self,
        creator_id: str,
        stake_amount: Decimal,
        match_format: str = "1v1",
        team_members: Optional[List[str]] = None,
        game_id: Optional[str] = None,
        game_mode_id: Optional[str] = None,
        map_name: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        custom_rules: Optional[str] = None
    ) -> Match:
        """
        Create a challenge and hold the creator's stake
        Team matches may bring the creator's teammates along, each holding their own stake
        """
        stake = Decimal(stake_amount)
        if stake < settings.PLATFORM_MIN_STAKE:
            raise StakeBelowMinimumError(
                f"Stake {stake} is below the platform minimum of {settings.PLATFORM_MIN_STAKE}",
                stake_amount=str(stake),
                minimum=str(settings.PLATFORM_MIN_STAKE)
            )

        try:
            team_a_size, _ = parse_format(match_format)
        except ValueError as e:
            raise InvalidFormatError(str(e), format=match_format)

        team_members = list(team_members or [])
        if len(team_members) > team_a_size - 1:
            raise TeamFullError(
                f"A {match_format} match allows at most {team_a_size - 1} teammates for the creator",
                format=match_format
            )
        if creator_id in team_members or len(set(team_members)) != len(team_members):
            raise InvalidFormatError("Team members must be distinct and exclude the creator")

        await self._ensure_not_suspended(creator_id)

        match = Match(
            id=str(uuid.uuid4()),
            creator_id=creator_id,
            format=match_format.lower(),
            stake_amount=stake,
            status=MatchStatus.AWAITING_OPPONENT,
            game_id=game_id,
            game_mode_id=game_mode_id,
            map_name=map_name,
            duration_minutes=duration_minutes,
            custom_rules=custom_rules
        )
        self.db.add(match)
        await self.db.flush()

        await self._add_participant(match, creator_id, Team.A, ParticipantRole.CAPTAIN)
        for member_id in team_members:
            await self._add_participant(match, member_id, Team.A, ParticipantRole.MEMBER)

        queue_event(self.db, MatchStatusChanged(
            match_id=match.id,
            from_status=None,
            to_status=MatchStatus.AWAITING_OPPONENT.value,
            actor_id=creator_id
        ))
        logger.info(f"Match {match.id} created by {creator_id}: {match.format}, stake {stake}")
        return match

    async def accept_challenge_with_escrow(self, match_id: str, user_id: str) -> Match:
        """Accept a 1v1 challenge and hold the opponent's stake"""
        match = await self.get_match(match_id)

        if match.is_team_match:
            raise InvalidMatchStateError(
                f"Match {match_id} is a {match.format} team match, join a team instead",
                match_id=match_id
            )
        if match.creator_id == user_id:
            raise SelfAcceptError("You cannot accept your own challenge", match_id=match_id)
        if match.status != MatchStatus.AWAITING_OPPONENT or match.opponent_id is not None:
            raise ChallengeUnavailableError(
                "This challenge is no longer available",
                match_id=match_id,
                status=match.status.value
            )

        await self._ensure_not_suspended(user_id)

        now = utcnow()
        accepted = await self._conditional_transition(
            match,
            [MatchStatus.AWAITING_OPPONENT],
            MatchStatus.IN_PROGRESS,
            user_id,
            Match.opponent_id.is_(None),
            opponent_id=user_id,
            accepted_at=now,
            started_at=now
        )
        if not accepted:
            raise ChallengeUnavailableError("This challenge is no longer available", match_id=match_id)

        await self._add_participant(match, user_id, Team.B, ParticipantRole.CAPTAIN)
        return match

    async def join_team_match(self, match_id: str, user_id: str, team: Team) -> Match:
        """
        Take an open slot on one side of a team match
        The match starts once every slot on both teams is filled
        """
        match = await self.get_match(match_id, for_update=True)

        if not match.is_team_match:
            raise InvalidMatchStateError(
                f"Match {match_id} is a 1v1 challenge, accept it instead",
                match_id=match_id
            )
        if match.status != MatchStatus.AWAITING_OPPONENT:
            raise ChallengeUnavailableError(
                "This challenge is no longer available",
                match_id=match_id,
                status=match.status.value
            )
        if match.creator_id == user_id:
            raise SelfAcceptError("You are already in this challenge as its creator", match_id=match_id)

        await self._ensure_not_suspended(user_id)

        participants = await self.get_participants(match_id)
        if any(p.user_id == user_id for p in participants):
            raise ChallengeUnavailableError("You have already joined this match", match_id=match_id)

        team_a_size, team_b_size = match.team_sizes
        slots = team_a_size if team == Team.A else team_b_size
        on_team = [p for p in participants if p.team == team]
        if len(on_team) >= slots:
            raise TeamFullError(f"Team {team.value} is full", match_id=match_id, team=team.value)

        role = ParticipantRole.MEMBER if on_team else ParticipantRole.CAPTAIN
        joined = await self._add_participant(match, user_id, team, role)
        participants.append(joined)

        if len(participants) == match.required_participants:
            captain_b = next(
                p.user_id for p in participants
                if p.team == Team.B and p.role == ParticipantRole.CAPTAIN
            )
            now = utcnow()
            started = await self._conditional_transition(
                match,
                [MatchStatus.AWAITING_OPPONENT],
                MatchStatus.IN_PROGRESS,
                user_id,
                Match.opponent_id.is_(None),
                opponent_id=captain_b,
                accepted_at=now,
                started_at=now
            )
            if not started:
                raise ChallengeUnavailableError("This challenge is no longer available", match_id=match_id)

        return match

    async def accept_team_challenge_with_escrow(self, match_id: str, captain_id: str, team_members: List[str]) -> Match:
        """Fill team B in one go: the captain plus exactly the remaining members"""
        match = await self.get_match(match_id, for_update=True)
        if not match.is_team_match:
            raise InvalidMatchStateError(
                f"Match {match_id} is a 1v1 challenge, accept it instead",
                match_id=match_id
            )

        _, team_b_size = match.team_sizes
        members = list(team_members or [])
        if len(members) + 1 != team_b_size:
            raise InvalidFormatError(
                f"You need exactly {team_b_size - 1} team members for a {match.format} match",
                match_id=match_id
            )
        if captain_id in members or len(set(members)) != len(members):
            raise InvalidFormatError("Team members must be distinct and exclude the captain", match_id=match_id)

        participants = await self.get_participants(match_id)
        if any(p.team == Team.B for p in participants):
            raise ChallengeUnavailableError("The opposing team already has players", match_id=match_id)

        for user_id in [captain_id] + members:
            await self.join_team_match(match_id, user_id, Team.B)
        return match

    async def cancel_match_escrow(self, match_id: str, actor_id: Optional[str] = None, is_admin: bool = False) -> Match:
        """Cancel an unaccepted challenge and release every hold placed on it"""
        match = await self.get_match(match_id, for_update=True)

        if not is_admin and actor_id != match.creator_id:
            raise NotParticipantError("Only the creator can cancel this challenge", match_id=match_id)
        if match.status != MatchStatus.AWAITING_OPPONENT or match.opponent_id is not None:
            raise InvalidMatchStateError(
                f"Match {match_id} can no longer be cancelled ({match.status.value})",
                match_id=match_id,
                status=match.status.value
            )

        cancelled = await self._conditional_transition(
            match,
            [MatchStatus.AWAITING_OPPONENT],
            MatchStatus.CANCELLED,
            actor_id,
            Match.opponent_id.is_(None),
            completed_at=utcnow()
        )
        if not cancelled:
            raise InvalidMatchStateError(f"Match {match_id} can no longer be cancelled", match_id=match_id)

        for hold in await self.escrow.holds_for_match(match_id, HoldStatus.HELD):
            await self.escrow.release_hold(hold.id)
        return match

    async def _require_participant(self, match: Match, actor_id: str) -> MatchParticipant:
        participants = await self.get_participants(match.id)
        for participant in participants:
            if participant.user_id == actor_id:
                return participant
        raise NotParticipantError(f"User {actor_id} is not part of match {match.id}", match_id=match.id)

    async def mark_done(self, match_id: str, actor_id: str) -> Match:
        match = await self.get_match(match_id, for_update=True)
        participant = await self._require_participant(match, actor_id)

        if match.status == MatchStatus.PENDING_RESULT:
            return match
        if match.status != MatchStatus.IN_PROGRESS:
            raise InvalidMatchStateError(
                f"Match {match_id} is {match.status.value}, it cannot be marked done",
                match_id=match_id
            )

        flag = {"creator_done": True} if participant.team == Team.A else {"opponent_done": True}
        await self._conditional_transition(
            match, [MatchStatus.IN_PROGRESS], MatchStatus.PENDING_RESULT, actor_id, **flag
        )
        return match

    async def upload_proof(self, match_id: str, actor_id: str, proof_url: str) -> Match:
        match = await self.get_match(match_id, for_update=True)

        if actor_id == match.creator_id:
            field = "creator_proof_url"
        elif actor_id == match.opponent_id:
            field = "opponent_proof_url"
        else:
            raise NotParticipantError("Only the creator or the opponent can upload proof", match_id=match_id)

        if match.status not in (MatchStatus.IN_PROGRESS, MatchStatus.PENDING_RESULT):
            raise InvalidMatchStateError(
                f"Match {match_id} is {match.status.value}, proof can no longer be uploaded",
                match_id=match_id
            )

        if match.status == MatchStatus.IN_PROGRESS:
            await self._conditional_transition(
                match, [MatchStatus.IN_PROGRESS], MatchStatus.PENDING_RESULT, actor_id, **{field: proof_url}
            )
        else:
            setattr(match, field, proof_url)
            await self.db.flush()
        return match

    async def mark_disputed(self, match_id: str, admin_id: Optional[str] = None, reason: Optional[str] = None) -> Match:
        match = await self.get_match(match_id, for_update=True)
        if match.status == MatchStatus.DISPUTED:
            return match

        values = {"was_disputed": True}
        if reason:
            values["admin_decision"] = reason
        disputed = await self._conditional_transition(
            match,
            [MatchStatus.IN_PROGRESS, MatchStatus.PENDING_RESULT],
            MatchStatus.DISPUTED,
            admin_id,
            **values
        )
        if not disputed:
            raise InvalidMatchStateError(
                f"Match {match_id} is {match.status.value}, it cannot be disputed",
                match_id=match_id
            )
        return match

    async def resolve_match(
        self,
        match_id: str,
        winner_id: str,
        fee_percentage: Optional[float] = None,
        admin_decision: Optional[str] = None,
        admin_id: Optional[str] = None
    ):
        """Admin resolution of a pending or disputed match, pays out through settlement"""
        engine = SettlementEngine(self.db, escrow=self.escrow)
        return await engine.settle(
            match_id,
            winner_id,
            fee_percentage=fee_percentage,
            admin_decision=admin_decision,
            actor_id=admin_id
        )
