from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from loanbook.modules.transactions.models import TransactionType, TransactionMethod


class TransactionBase(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    type: TransactionType
    date: datetime
    description: Optional[str] = None
    method: TransactionMethod
    method_details: Optional[str] = Field(None, max_length=255)
    external_reference: Optional[str] = Field(None, max_length=100)


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(BaseModel):
    """Partial update; unset fields keep their stored value"""
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=15, decimal_places=2)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    description: Optional[str] = None
    method: Optional[TransactionMethod] = None
    method_details: Optional[str] = Field(None, max_length=255)
    external_reference: Optional[str] = Field(None, max_length=100)


class TransactionResponse(TransactionBase):
    id: int
    loan_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
