from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from loanbook.core.database import Base
import enum


class Currency(str, enum.Enum):
    """Display currency preference"""
    BDT = "BDT"
    USD = "USD"
    PKR = "PKR"
    INR = "INR"
    LKR = "LKR"
    EUR = "EUR"
    GBP = "GBP"
    NOK = "NOK"
    SEK = "SEK"
    DKK = "DKK"


class User(Base):
    """Account holder and ownership boundary for loans"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Authentication
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # Profile
    name = Column(String(100), nullable=False)
    currency = Column(SQLEnum(Currency), default=Currency.BDT, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    loans = relationship("Loan", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
