"""Wallet Schemas - Request/Response Models"""
from pydantic import BaseModel
from decimal import Decimal
from datetime import datetime
from typing import Optional, List


class WalletBalanceResponse(BaseModel):
    """Response schema for wallet balance"""
    user_id: str
    balance: Decimal
    held_total: Decimal
    total_deposited: Decimal
    total_withdrawn: Decimal
    updated_at: Optional[datetime]


class HoldResponse(BaseModel):
    """Response schema for a wallet hold"""
    id: int
    match_id: str
    user_id: str
    amount: Decimal
    status: str
    settled_to: Optional[str]
    created_at: datetime
    released_at: Optional[datetime]


class TransactionResponse(BaseModel):
    """Response schema for a ledger transaction"""
    transaction_id: str
    transaction_type: str
    status: str
    amount: Decimal
    reference_code: Optional[str]
    description: Optional[str]
    match_id: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime]


class TransactionHistoryResponse(BaseModel):
    """Response schema for transaction history"""
    transactions: List[TransactionResponse]
    page_size: int
    offset: int
