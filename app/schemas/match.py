"""Match Schemas - Request/Response Models"""
from pydantic import BaseModel, Field, validator
from decimal import Decimal
from datetime import datetime
from typing import Optional, List, Dict


def _validate_money(v):
    if v <= 0:
        raise ValueError('Amount must be greater than 0')
    if v.as_tuple().exponent < -2:
        raise ValueError('Amount cannot have more than 2 decimal places')
    return v


class CreateMatchRequest(BaseModel):
    """Request schema for creating a challenge with escrow"""
    stake_amount: Decimal = Field(..., gt=0, description="Per-player stake")
    format: str = Field("1v1", max_length=10, description="Match format, e.g. 1v1, 2v2, 1v3")
    team_members: List[str] = Field(default_factory=list, description="Creator's teammates for team formats")
    game_id: Optional[str] = None
    game_mode_id: Optional[str] = None
    map_name: Optional[str] = Field(None, max_length=100)
    duration_minutes: Optional[int] = Field(None, gt=0)
    custom_rules: Optional[str] = Field(None, max_length=2000)

    @validator('stake_amount')
    def validate_stake(cls, v):
        return _validate_money(v)


class AcceptTeamRequest(BaseModel):
    """Request schema for accepting a team challenge as captain"""
    team_members: List[str] = Field(default_factory=list)


class JoinTeamRequest(BaseModel):
    team: str = Field(..., description="A or B")

    @validator('team')
    def validate_team(cls, v):
        v = v.upper()
        if v not in ("A", "B"):
            raise ValueError('Team must be A or B')
        return v


class ProofRequest(BaseModel):
    proof_url: str = Field(..., min_length=1, max_length=500)


class DisputeRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class SettleRequest(BaseModel):
    """Request schema for admin settlement"""
    winner_id: str = Field(..., min_length=1)
    fee_percentage: Optional[float] = Field(None, ge=0, le=100, description="Defaults to the platform fee")
    admin_decision: Optional[str] = Field(None, max_length=2000)


class DrawRequest(BaseModel):
    admin_decision: Optional[str] = Field(None, max_length=2000)


class ParticipantResponse(BaseModel):
    user_id: str
    team: str
    role: str
    joined_at: datetime


class MatchResponse(BaseModel):
    """Response schema for a match"""
    id: str
    creator_id: str
    opponent_id: Optional[str]
    format: str
    stake_amount: Decimal
    status: str
    winner_id: Optional[str]
    admin_decision: Optional[str]
    is_draw: bool
    was_disputed: bool
    creator_proof_url: Optional[str]
    opponent_proof_url: Optional[str]
    created_at: datetime
    accepted_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]


class MatchDetailResponse(MatchResponse):
    participants: List[ParticipantResponse]
    pot: Decimal


class SettlementResponse(BaseModel):
    """Response schema for settlement and draw operations"""
    match_id: str
    winner_id: Optional[str]
    pot: Decimal
    fee: Decimal
    payout: Decimal
    fee_percentage: Decimal
    payouts: Dict[str, Decimal]
    is_draw: bool
    already_settled: bool

    class Config:
        from_attributes = True
