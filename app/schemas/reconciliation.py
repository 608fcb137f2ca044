"""Reconciliation Schemas"""
from pydantic import BaseModel
from decimal import Decimal
from typing import List


class DuplicateGroupResponse(BaseModel):
    match_id: str
    user_id: str
    kept_transaction_id: str
    duplicates_removed: int
    amount_recovered: Decimal

    class Config:
        from_attributes = True


class DuplicateErrorResponse(BaseModel):
    match_id: str
    transaction_id: str
    error: str

    class Config:
        from_attributes = True


class DuplicateReportResponse(BaseModel):
    """Aggregate report of a duplicate payout scan or cleanup"""
    total_matches: int
    matches_with_duplicates: int
    affected_users: int
    total_duplicates_found: int
    total_duplicates_removed: int
    total_amount_recovered: Decimal
    dry_run: bool
    errors: List[DuplicateErrorResponse]
    details: List[DuplicateGroupResponse]

    class Config:
        from_attributes = True
