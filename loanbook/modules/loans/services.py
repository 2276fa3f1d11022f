from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, func, and_, case
from typing import List, Optional
import logging

from loanbook.core.config import settings
from loanbook.core.database import atomic
from loanbook.core.exceptions import LoanNotFound, DuplicateTitle
from loanbook.core.money import to_money
from loanbook.modules.loans.models import Loan, LoanStatus
from loanbook.modules.loans.schemas import LoanUpdate, LoanSummary

logger = logging.getLogger(__name__)


def loan_owned_by(user_id: int, title: str):
    """Ownership predicate applied to every loan lookup by title"""
    return and_(Loan.user_id == user_id, Loan.title == title)


async def title_taken(db: AsyncSession, user_id: int, title: str) -> bool:
    result = await db.execute(select(Loan.id).where(loan_owned_by(user_id, title)))
    return result.first() is not None


class LoanService:
    """Read and metadata operations on loans. Balances are left to the ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_loans(
        self,
        user_id: int,
        status: Optional[LoanStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Loan]:
        query = select(Loan).where(Loan.user_id == user_id)
        if status is not None:
            query = query.where(Loan.status == status)
        query = (
            query.order_by(Loan.updated_at.desc(), Loan.id.desc())
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_recent_loans(self, user_id: int, limit: int = None) -> List[Loan]:
        """Most recently active loans"""
        return await self.get_loans(user_id, limit=limit or settings.RECENT_LOANS_LIMIT)

    async def get_loan(self, user_id: int, title: str) -> Loan:
        result = await self.db.execute(
            select(Loan)
            .where(loan_owned_by(user_id, title))
            .execution_options(populate_existing=True)
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            raise LoanNotFound()
        return loan

    async def get_loan_by_id(self, user_id: int, loan_id: int) -> Loan:
        result = await self.db.execute(
            select(Loan)
            .where(and_(Loan.id == loan_id, Loan.user_id == user_id))
            .execution_options(populate_existing=True)
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            raise LoanNotFound()
        return loan

    async def update_loan(self, user_id: int, title: str, loan_in: LoanUpdate) -> Loan:
        """Rename, describe or open/close a loan"""
        async with atomic(self.db, "loan update"):
            loan = await self.get_loan(user_id, title)
            update_data = loan_in.model_dump(exclude_unset=True)

            new_title = update_data.get("title")
            if new_title and new_title != loan.title:
                if await title_taken(self.db, user_id, new_title):
                    raise DuplicateTitle(new_title)

            for field, value in update_data.items():
                # title and status are required columns
                if value is None and field in ("title", "status"):
                    continue
                setattr(loan, field, value)

            try:
                await self.db.flush()
            except IntegrityError:
                raise DuplicateTitle(new_title or title)

        await self.db.refresh(loan)
        logger.info(f"Updated loan {loan.id} for user {user_id}: {sorted(update_data)}")
        return loan

    async def get_loan_summary(self, user_id: int) -> LoanSummary:
        """Counts and lent/borrowed totals across the user's loans"""
        result = await self.db.execute(
            select(
                func.count(Loan.id),
                func.coalesce(func.sum(case((Loan.status == LoanStatus.RUNNING, 1), else_=0)), 0),
                func.coalesce(func.sum(case((Loan.balance > 0, Loan.balance), else_=0)), 0),
                func.coalesce(func.sum(case((Loan.balance < 0, -Loan.balance), else_=0)), 0),
            ).where(Loan.user_id == user_id)
        )
        total, running, lent, borrowed = result.one()
        lent = to_money(lent)
        borrowed = to_money(borrowed)

        return LoanSummary(
            total_loans=total,
            running_loans=running,
            closed_loans=total - running,
            total_lent=lent,
            total_borrowed=borrowed,
            net_balance=lent - borrowed
        )
