from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from typing import List, Optional

from loanbook.core.exceptions import LoanNotFound, TransactionNotFound
from loanbook.modules.loans.models import Loan
from loanbook.modules.loans.services import loan_owned_by
from loanbook.modules.transactions.models import Transaction, TransactionType


class TransactionService:
    """Read access to a loan's transactions, scoped to the loan owner"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _loan_id(self, user_id: int, title: str) -> int:
        result = await self.db.execute(select(Loan.id).where(loan_owned_by(user_id, title)))
        loan_id = result.scalar_one_or_none()
        if loan_id is None:
            raise LoanNotFound()
        return loan_id

    async def get_transactions(
        self,
        user_id: int,
        title: str,
        transaction_type: Optional[TransactionType] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Transaction]:
        loan_id = await self._loan_id(user_id, title)
        query = select(Transaction).where(Transaction.loan_id == loan_id)
        if transaction_type is not None:
            query = query.where(Transaction.type == transaction_type)
        query = query.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_transaction(self, user_id: int, title: str, transaction_id: int) -> Transaction:
        loan_id = await self._loan_id(user_id, title)
        result = await self.db.execute(
            select(Transaction).where(
                and_(Transaction.id == transaction_id, Transaction.loan_id == loan_id)
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFound()
        return transaction
