from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from loanbook.core.database import get_db
from loanbook.core.dependencies import get_current_user
from loanbook.modules.users.models import User
from loanbook.modules.loans import schemas
from loanbook.modules.loans.models import LoanStatus
from loanbook.modules.loans.services import LoanService
from loanbook.modules.ledger.schemas import LedgerReconciliation
from loanbook.modules.ledger.services import LedgerService

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.get("", response_model=List[schemas.LoanListItem])
async def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status", description="RUNNING or CLOSED"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List the user's loans, most recently updated first.

    - Each loan carries its latest transaction
    """
    return await LoanService(db).get_loans(current_user.id, status_filter, skip, limit)


@router.post("", response_model=schemas.LoanDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    loan_in: schemas.LoanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a loan with its opening transaction.

    - LEND opens with a CREDIT and a positive balance
    - BORROW opens with a DEBIT and a negative balance
    - Titles are unique per user
    """
    return await LedgerService(db).create_loan(current_user.id, loan_in)


@router.get("/recent", response_model=List[schemas.LoanListItem])
async def recent_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Most recently active loans"""
    return await LoanService(db).get_recent_loans(current_user.id)


@router.get("/summary", response_model=schemas.LoanSummary)
async def loan_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Totals lent, borrowed and net across all loans"""
    return await LoanService(db).get_loan_summary(current_user.id)


@router.get("/audit", response_model=List[LedgerReconciliation])
async def audit_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Recompute every loan balance from its transactions and report drift.
    """
    return await LedgerService(db).reconcile_all(current_user.id)


@router.post("/audit", response_model=List[LedgerReconciliation])
async def repair_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Recompute every loan balance and overwrite any that drifted.
    """
    return await LedgerService(db).reconcile_all(current_user.id, repair=True)


@router.get("/id/{loan_id}", response_model=schemas.LoanDetailResponse)
async def read_loan_by_id(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await LoanService(db).get_loan_by_id(current_user.id, loan_id)


@router.get("/{title}", response_model=schemas.LoanDetailResponse)
async def read_loan(
    title: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Loan with all its transactions, newest first"""
    return await LoanService(db).get_loan(current_user.id, title)


@router.patch("/{title}", response_model=schemas.LoanDetailResponse)
async def update_loan(
    title: str,
    loan_in: schemas.LoanUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update title, description or status.

    - Renaming onto an existing title fails with 409
    """
    return await LoanService(db).update_loan(current_user.id, title, loan_in)


@router.delete("/{title}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_loan(
    title: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a loan and all its transactions"""
    await LedgerService(db).delete_loan(current_user.id, title)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{title}/reconcile", response_model=LedgerReconciliation)
async def reconcile_loan(
    title: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Compare the recorded balance with the sum of transactions"""
    return await LedgerService(db).reconcile_loan(current_user.id, title)


@router.post("/{title}/reconcile", response_model=LedgerReconciliation)
async def repair_loan(
    title: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Overwrite a drifted balance with the sum of transactions"""
    return await LedgerService(db).reconcile_loan(current_user.id, title, repair=True)
