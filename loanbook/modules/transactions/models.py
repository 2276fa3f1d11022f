from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, CheckConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from loanbook.core.database import Base
import enum


class TransactionType(str, enum.Enum):
    """Sign of a transaction: credit raises the loan balance, debit lowers it"""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class TransactionMethod(str, enum.Enum):
    """Payment channel"""
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    MOBILE_BANKING = "MOBILE_BANKING"
    OTHER = "OTHER"


class Transaction(Base):
    """A payment given or received against a loan"""
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)

    # Amount is always positive; the sign comes from type
    amount = Column(Numeric(15, 2), nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)

    description = Column(Text, nullable=True)
    method = Column(SQLEnum(TransactionMethod), default=TransactionMethod.CASH, nullable=False)
    method_details = Column(String(255), nullable=True)
    external_reference = Column(String(100), nullable=True)  # bank/mobile transaction id

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    loan = relationship("Loan", back_populates="transactions")

    def __repr__(self):
        return f"<Transaction(id={self.id}, loan_id={self.loan_id}, type={self.type}, amount={self.amount})>"
