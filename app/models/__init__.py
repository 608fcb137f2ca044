"""Database Models"""
from app.models.wallet import Wallet
from app.models.wallet_hold import WalletHold, HoldStatus
from app.models.match import Match, MatchParticipant, MatchStatus, Team, ParticipantRole
from app.models.transaction import Transaction, TransactionType, TransactionStatus
from app.models.platform_fee import PlatformFee
from app.models.ledger_entry import LedgerEntry, EntryType
from app.models.user import UserFlag, UserRole
from app.models.idempotency_log import IdempotencyLog

__all__ = [
    "Wallet",
    "WalletHold",
    "HoldStatus",
    "Match",
    "MatchParticipant",
    "MatchStatus",
    "Team",
    "ParticipantRole",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "PlatformFee",
    "LedgerEntry",
    "EntryType",
    "UserFlag",
    "UserRole",
    "IdempotencyLog",
]
