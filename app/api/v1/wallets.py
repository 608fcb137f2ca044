from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from decimal import Decimal
from typing import List, Optional
import logging

from app.api.errors import internal_error
from app.database import get_db
from app.models import HoldStatus, Transaction
from app.schemas.wallet import (
    HoldResponse,
    TransactionHistoryResponse,
    TransactionResponse,
    WalletBalanceResponse,
)
from app.services.escrow import EscrowHoldManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallets", tags=["Wallets"])


@router.get("/{user_id}/balance", response_model=WalletBalanceResponse)
async def get_wallet_balance(user_id: str, db: AsyncSession = Depends(get_db)):
    """
    Spendable balance plus the total currently held in escrow

    Example:
    ```
    GET /api/v1/wallets/user_alice/balance
    ```
    """
    escrow = EscrowHoldManager(db)

    try:
        wallet = await escrow.ledger.get_wallet(user_id)
        held_total = await escrow.held_total(user_id)
        zero = Decimal("0.00")

        return WalletBalanceResponse(
            user_id=user_id,
            balance=wallet.balance if wallet else zero,
            held_total=held_total,
            total_deposited=wallet.total_deposited if wallet else zero,
            total_withdrawn=wallet.total_withdrawn if wallet else zero,
            updated_at=wallet.updated_at if wallet else None
        )
    except Exception as e:
        logger.error(f"Get balance failed: {e}", exc_info=True)
        raise internal_error("Failed to Get Balance", e)


@router.get("/{user_id}/holds", response_model=List[HoldResponse])
async def get_wallet_holds(
    user_id: str,
    status: Optional[HoldStatus] = HoldStatus.HELD,
    db: AsyncSession = Depends(get_db)
):
    """Escrow holds for a user, by default only the ones still held"""
    escrow = EscrowHoldManager(db)

    try:
        holds = await escrow.holds_for_user(user_id, status)
        return [
            HoldResponse(
                id=h.id,
                match_id=h.match_id,
                user_id=h.user_id,
                amount=h.amount,
                status=h.status.value,
                settled_to=h.settled_to,
                created_at=h.created_at,
                released_at=h.released_at
            )
            for h in holds
        ]
    except Exception as e:
        logger.error(f"Get holds failed: {e}", exc_info=True)
        raise internal_error("Failed to Get Holds", e)


@router.get("/{user_id}/transactions", response_model=TransactionHistoryResponse)
async def get_transaction_history(
    user_id: str,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """
    Get transaction history for a user

    Example:
    ```
    GET /api/v1/wallets/user_alice/transactions?limit=20
    ```
    """
    limit = min(limit, 100)

    try:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        transactions = result.scalars().all()

        return TransactionHistoryResponse(
            transactions=[
                TransactionResponse(
                    transaction_id=t.transaction_id,
                    transaction_type=t.transaction_type.value,
                    status=t.status.value,
                    amount=t.amount,
                    reference_code=t.reference_code,
                    description=t.description,
                    match_id=t.effective_match_id,
                    created_at=t.created_at,
                    processed_at=t.processed_at
                )
                for t in transactions
            ],
            page_size=limit,
            offset=offset
        )
    except Exception as e:
        logger.error(f"Get transactions failed: {e}", exc_info=True)
        raise internal_error("Failed to Get Transactions", e)
