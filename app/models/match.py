"""Match Model - the wagering contract and its participants"""
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Enum, Index, UniqueConstraint, CheckConstraint, Text
from sqlalchemy.sql import func
import enum
import uuid
from app.database import Base
from app.models.base import utcnow


class MatchStatus(str, enum.Enum):
    """Match Status"""
    AWAITING_OPPONENT = "awaiting_opponent"
    IN_PROGRESS = "in_progress"
    PENDING_RESULT = "pending_result"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class Team(str, enum.Enum):
    A = "A"
    B = "B"


class ParticipantRole(str, enum.Enum):
    CAPTAIN = "captain"
    MEMBER = "member"


def parse_format(match_format: str):
    """Return (team_a_size, team_b_size) for a format like '1v1' or '2v4'

    Raises ValueError for anything else
    """
    parts = match_format.lower().split("v")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Unsupported match format '{match_format}'")
    team_a, team_b = int(parts[0]), int(parts[1])
    if team_a < 1 or team_b < 1:
        raise ValueError(f"Unsupported match format '{match_format}'")
    return team_a, team_b


class Match(Base):
    """Match Model

    opponent_id is set once the match leaves AWAITING_OPPONENT
    (for team matches it is the captain of team B)
    """
    __tablename__ = "matches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = Column(String(100), nullable=False, index=True)
    opponent_id = Column(String(100), index=True)

    format = Column(String(10), nullable=False, default="1v1")
    stake_amount = Column(Numeric(precision=20, scale=2), nullable=False)
    status = Column(Enum(MatchStatus), default=MatchStatus.AWAITING_OPPONENT, nullable=False)

    winner_id = Column(String(100))
    admin_decision = Column(Text)
    is_draw = Column(Boolean, default=False, nullable=False)
    was_disputed = Column(Boolean, default=False, nullable=False)

    creator_done = Column(Boolean, default=False, nullable=False)
    opponent_done = Column(Boolean, default=False, nullable=False)
    creator_proof_url = Column(String(500))
    opponent_proof_url = Column(String(500))

    # Game metadata, opaque to escrow
    game_id = Column(String(100))
    game_mode_id = Column(String(100))
    map_name = Column(String(100))
    duration_minutes = Column(Integer)
    custom_rules = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    accepted_at = Column(DateTime(timezone=True))
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('stake_amount > 0', name='ck_match_stake_positive'),
        Index('idx_match_status_created', 'status', 'created_at'),
    )

    @property
    def team_sizes(self):
        return parse_format(self.format)

    @property
    def is_team_match(self) -> bool:
        return self.team_sizes != (1, 1)

    @property
    def required_participants(self) -> int:
        team_a, team_b = self.team_sizes
        return team_a + team_b

    def __repr__(self):
        return f"<Match(id='{self.id}', format='{self.format}', stake={self.stake_amount}, status={self.status})>"


class MatchParticipant(Base):
    """Match Participant Model - one row per player, each with their own stake hold"""
    __tablename__ = "match_participants"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(String(36), ForeignKey("matches.id"), nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    team = Column(Enum(Team), nullable=False)
    role = Column(Enum(ParticipantRole), default=ParticipantRole.MEMBER, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('match_id', 'user_id', name='uq_participant_match_user'),
    )

    def __repr__(self):
        return f"<MatchParticipant(match_id='{self.match_id}', user_id='{self.user_id}', team={self.team}, role={self.role})>"
