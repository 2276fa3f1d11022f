from pydantic import BaseModel
from decimal import Decimal

from loanbook.modules.loans.schemas import LoanDetailResponse
from loanbook.modules.transactions.schemas import TransactionResponse


class TransactionWithLoanResponse(BaseModel):
    """Result of adding or editing a transaction"""
    transaction: TransactionResponse
    loan: LoanDetailResponse


class LoanBalanceResponse(BaseModel):
    """Result of deleting a transaction"""
    loan: LoanDetailResponse


class LedgerReconciliation(BaseModel):
    """Recorded balance against the balance recomputed from transactions"""
    loan_id: int
    title: str
    recorded_balance: Decimal
    computed_balance: Decimal
    drift: Decimal
    repaired: bool = False

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0
