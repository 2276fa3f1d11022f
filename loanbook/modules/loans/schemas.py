from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from loanbook.modules.loans.models import LoanStatus, LoanType
from loanbook.modules.transactions.models import TransactionMethod
from loanbook.modules.transactions.schemas import TransactionResponse


# Path segments under /api/v1/loans that are not loan titles
RESERVED_TITLES = {"recent", "summary", "audit"}


def _clean_title(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Title is required")
    # Titles address loans in URLs
    if "/" in value:
        raise ValueError("Title cannot contain '/'")
    if value.lower() in RESERVED_TITLES:
        raise ValueError(f"'{value}' is a reserved title")
    return value


class SeedTransactionDetails(BaseModel):
    """Details of the transaction that opens a loan"""
    date: datetime
    method: TransactionMethod
    method_details: Optional[str] = Field(None, max_length=255)
    external_reference: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class LoanCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    initial_balance: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    type: LoanType
    transaction_details: SeedTransactionDetails

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return _clean_title(v)


class LoanUpdate(BaseModel):
    """Metadata update; the balance is never set directly"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[LoanStatus] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return _clean_title(v)


class LoanResponse(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    balance: Decimal
    status: LoanStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LoanListItem(LoanResponse):
    """Loan row for lists and dashboard cards"""
    last_transaction: Optional[TransactionResponse] = None


class LoanDetailResponse(LoanResponse):
    transactions: List[TransactionResponse] = []


class LoanSummary(BaseModel):
    """Totals across a user's loans"""
    total_loans: int
    running_loans: int
    closed_loans: int
    total_lent: Decimal
    total_borrowed: Decimal
    net_balance: Decimal
