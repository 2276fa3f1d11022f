from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from loanbook.core.database import Base
import enum


class LoanStatus(str, enum.Enum):
    """Loan status"""
    RUNNING = "RUNNING"
    CLOSED = "CLOSED"


class LoanType(str, enum.Enum):
    """Direction of a new loan (input only, never stored)"""
    LEND = "LEND"
    BORROW = "BORROW"


class Loan(Base):
    """
    A lending or borrowing relationship with a running balance.

    ``balance`` is the signed sum of the loan's transactions: positive when the
    owner is a net lender, negative when a net borrower, zero when settled.
    Only the ledger service changes it.
    """
    __tablename__ = "loans"
    __table_args__ = (
        UniqueConstraint("user_id", "title", name="uq_loans_user_id_title"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Balance (using Numeric for precision with money)
    balance = Column(Numeric(15, 2), default=0, nullable=False)
    status = Column(SQLEnum(LoanStatus), default=LoanStatus.RUNNING, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="loans")
    transactions = relationship(
        "Transaction",
        back_populates="loan",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Transaction.date.desc()"
    )

    @property
    def last_transaction(self):
        """Most recent transaction by date, or None"""
        return self.transactions[0] if self.transactions else None

    def __repr__(self):
        return f"<Loan(id={self.id}, title={self.title}, balance={self.balance})>"
