from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from loanbook.core.database import get_db
from loanbook.core.dependencies import get_current_user
from loanbook.modules.users.models import User
from loanbook.modules.transactions import schemas
from loanbook.modules.transactions.models import TransactionType
from loanbook.modules.transactions.services import TransactionService
from loanbook.modules.ledger.schemas import TransactionWithLoanResponse, LoanBalanceResponse
from loanbook.modules.ledger.services import LedgerService

router = APIRouter(prefix="/api/v1/loans/{title}/transactions", tags=["transactions"])


@router.get("", response_model=List[schemas.TransactionResponse])
async def list_transactions(
    title: str,
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Transactions of a loan, newest first"""
    return await TransactionService(db).get_transactions(
        current_user.id, title, transaction_type, skip, limit
    )


@router.post("", response_model=TransactionWithLoanResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    title: str,
    txn: schemas.TransactionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Record a payment against a loan.

    - CREDIT raises the balance by the amount, DEBIT lowers it
    - Transaction and balance change commit together
    """
    result = await LedgerService(db).add_transaction(current_user.id, title, txn)
    return TransactionWithLoanResponse.model_validate(result, from_attributes=True)


@router.get("/{transaction_id}", response_model=schemas.TransactionResponse)
async def read_transaction(
    title: str,
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await TransactionService(db).get_transaction(current_user.id, title, transaction_id)


@router.patch("/{transaction_id}", response_model=TransactionWithLoanResponse)
async def update_transaction(
    title: str,
    transaction_id: int,
    txn_in: schemas.TransactionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Edit a transaction.

    - The balance moves by the difference between the new and old signed amounts
    """
    result = await LedgerService(db).edit_transaction(current_user.id, title, transaction_id, txn_in)
    return TransactionWithLoanResponse.model_validate(result, from_attributes=True)


@router.delete("/{transaction_id}", response_model=LoanBalanceResponse)
async def delete_transaction(
    title: str,
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete a transaction and reverse its effect on the balance.
    """
    result = await LedgerService(db).delete_transaction(current_user.id, title, transaction_id)
    return LoanBalanceResponse.model_validate(result, from_attributes=True)
