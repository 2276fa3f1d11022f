"""
Test configuration and fixtures for Loanbook tests.
"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from typing import AsyncGenerator
from decimal import Decimal
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from loanbook.core.database import Base, get_db, get_redis
from loanbook.core.security import create_access_token, get_password_hash
from main import app


# ============================================================
# Database Fixtures
# ============================================================

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "password123"


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_redis():
    """Stand-in for the token blacklist store"""
    redis = AsyncMock()
    redis.get.return_value = None
    return redis


@pytest.fixture
async def client(db_session, fake_redis) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and redis overrides"""

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# User Fixtures
# ============================================================

async def make_user(db_session, email: str, name: str):
    from loanbook.modules.users.models import User

    user = User(
        email=email,
        name=name,
        hashed_password=get_password_hash(TEST_PASSWORD)
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def test_user(db_session):
    """Create a test user"""
    return await make_user(db_session, "test@loanbook.app", "Test User")


@pytest.fixture
async def other_user(db_session):
    """A second user who must never see the first user's loans"""
    return await make_user(db_session, "other@loanbook.app", "Other User")


@pytest.fixture
def auth_headers(test_user):
    """Generate auth headers for test user"""
    token = create_access_token(data={"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(other_user):
    token = create_access_token(data={"sub": str(other_user.id)})
    return {"Authorization": f"Bearer {token}"}


# ============================================================
# Loan Fixtures
# ============================================================

def loan_payload(title: str = "Car repair", amount: str = "100.00", loan_type: str = "LEND") -> dict:
    """Request body for creating a loan"""
    return {
        "title": title,
        "description": "Paid the garage for a friend",
        "initial_balance": amount,
        "type": loan_type,
        "transaction_details": {
            "date": "2026-01-15T10:00:00Z",
            "method": "CASH"
        }
    }


def transaction_payload(amount: str = "25.00", txn_type: str = "DEBIT", **extra) -> dict:
    payload = {
        "amount": amount,
        "type": txn_type,
        "date": "2026-02-01T09:30:00Z",
        "method": "BANK_TRANSFER"
    }
    payload.update(extra)
    return payload


@pytest.fixture
async def test_loan(db_session, test_user):
    """A LEND loan of 100.00 owned by the test user"""
    from loanbook.modules.ledger.services import LedgerService
    from loanbook.modules.loans.models import LoanType
    from loanbook.modules.loans.schemas import LoanCreate, SeedTransactionDetails
    from loanbook.modules.transactions.models import TransactionMethod

    data = LoanCreate(
        title="Car repair",
        description="Paid the garage for a friend",
        initial_balance=Decimal("100.00"),
        type=LoanType.LEND,
        transaction_details=SeedTransactionDetails(
            date=datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc),
            method=TransactionMethod.CASH
        )
    )
    return await LedgerService(db_session).create_loan(test_user.id, data)


@pytest.fixture
def new_loan():
    """Builder for loan creation request bodies"""
    return loan_payload


@pytest.fixture
def new_transaction():
    """Builder for transaction request bodies"""
    return transaction_payload
