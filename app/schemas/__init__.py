"""Pydantic Schemas for Request/Response Validation"""
from app.schemas.wallet import (
    WalletBalanceResponse,
    HoldResponse,
    TransactionResponse,
    TransactionHistoryResponse,
)
from app.schemas.match import (
    CreateMatchRequest,
    AcceptTeamRequest,
    JoinTeamRequest,
    ProofRequest,
    DisputeRequest,
    SettleRequest,
    DrawRequest,
    MatchResponse,
    MatchDetailResponse,
    SettlementResponse,
)
from app.schemas.reconciliation import DuplicateReportResponse

__all__ = [
    "WalletBalanceResponse",
    "HoldResponse",
    "TransactionResponse",
    "TransactionHistoryResponse",
    "CreateMatchRequest",
    "AcceptTeamRequest",
    "JoinTeamRequest",
    "ProofRequest",
    "DisputeRequest",
    "SettleRequest",
    "DrawRequest",
    "MatchResponse",
    "MatchDetailResponse",
    "SettlementResponse",
    "DuplicateReportResponse",
]
