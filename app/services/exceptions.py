"""Escrow failure taxonomy

Every escrow, match and settlement failure is an EscrowError carrying a stable
code (the same codes the RPC clients match on, e.g. USER_SUSPENDED) and the
HTTP status the API maps it to.
"""


class EscrowError(Exception):
    """Base class for typed escrow failures"""
    code = "ESCROW_ERROR"
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InsufficientFundsError(EscrowError):
    """Raised when wallet balance is below the required hold amount"""
    code = "INSUFFICIENT_FUNDS"
    status_code = 400


class UserSuspendedError(EscrowError):
    """Raised when a suspended user tries to stake funds"""
    code = "USER_SUSPENDED"
    status_code = 403


class ChallengeUnavailableError(EscrowError):
    """Raised when a challenge was already accepted, filled or cancelled"""
    code = "CHALLENGE_UNAVAILABLE"
    status_code = 409


class SelfAcceptError(EscrowError):
    """Raised when a creator tries to accept their own challenge"""
    code = "SELF_ACCEPT"
    status_code = 400


class InvalidWinnerError(EscrowError):
    """Raised when the winner is not a participant of the match"""
    code = "INVALID_WINNER"
    status_code = 400


class SettlementConflictError(EscrowError):
    """Raised when a match was settled concurrently with a different outcome"""
    code = "SETTLEMENT_CONFLICT"
    status_code = 409


class InvalidMatchStateError(EscrowError):
    """Raised when an operation is not allowed from the match's current status"""
    code = "INVALID_MATCH_STATE"
    status_code = 409


class MatchNotFoundError(EscrowError):
    code = "MATCH_NOT_FOUND"
    status_code = 404


class HoldNotFoundError(EscrowError):
    code = "HOLD_NOT_FOUND"
    status_code = 404


class StakeBelowMinimumError(EscrowError):
    code = "STAKE_BELOW_MINIMUM"
    status_code = 400


class InvalidFormatError(EscrowError):
    code = "INVALID_FORMAT"
    status_code = 400


class TeamFullError(EscrowError):
    code = "TEAM_FULL"
    status_code = 409


class NotParticipantError(EscrowError):
    code = "NOT_PARTICIPANT"
    status_code = 403


class DisputeJustificationRequiredError(EscrowError):
    """Raised when a disputed match is resolved without admin justification text"""
    code = "JUSTIFICATION_REQUIRED"
    status_code = 400
