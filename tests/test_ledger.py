"""
Unit tests for the loan balance ledger
"""
import random
import pytest
from decimal import Decimal
from datetime import datetime, timezone
from unittest.mock import AsyncMock
from sqlalchemy import select, func, update
from sqlalchemy.exc import OperationalError

from loanbook.core.exceptions import (
    LoanNotFound, TransactionNotFound, DuplicateTitle, InvalidInput, StorageFailure
)
from loanbook.modules.ledger.services import (
    LedgerService, signed_amount, seed_transaction_type, require_positive
)
from loanbook.modules.loans.models import Loan, LoanType
from loanbook.modules.loans.schemas import LoanCreate, SeedTransactionDetails
from loanbook.modules.transactions.models import Transaction, TransactionType, TransactionMethod
from loanbook.modules.transactions.schemas import TransactionCreate, TransactionUpdate


WHEN = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def new_loan(title: str, amount: str, loan_type: LoanType) -> LoanCreate:
    return LoanCreate(
        title=title,
        initial_balance=Decimal(amount),
        type=loan_type,
        transaction_details=SeedTransactionDetails(date=WHEN, method=TransactionMethod.CASH)
    )


def credit(amount: str) -> TransactionCreate:
    return TransactionCreate(
        amount=Decimal(amount), type=TransactionType.CREDIT, date=WHEN, method=TransactionMethod.CASH
    )


def debit(amount: str) -> TransactionCreate:
    return TransactionCreate(
        amount=Decimal(amount), type=TransactionType.DEBIT, date=WHEN, method=TransactionMethod.CASH
    )


async def stored_balance(db_session, loan_id: int) -> Decimal:
    result = await db_session.execute(
        select(Loan.balance).where(Loan.id == loan_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def transaction_count(db_session, loan_id: int) -> int:
    result = await db_session.execute(
        select(func.count(Transaction.id)).where(Transaction.loan_id == loan_id)
    )
    return result.scalar_one()


class TestSignConvention:
    """Tests for the balance sign rules"""

    @pytest.mark.unit
    def test_credit_is_positive(self):
        assert signed_amount(TransactionType.CREDIT, Decimal("12.50")) == Decimal("12.50")

    @pytest.mark.unit
    def test_debit_is_negative(self):
        assert signed_amount(TransactionType.DEBIT, Decimal("12.50")) == Decimal("-12.50")

    @pytest.mark.unit
    def test_seed_type_follows_loan_direction(self):
        assert seed_transaction_type(LoanType.LEND) == TransactionType.CREDIT
        assert seed_transaction_type(LoanType.BORROW) == TransactionType.DEBIT

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", [None, Decimal("0"), Decimal("-5.00"), Decimal("1.001")])
    def test_require_positive_rejects(self, amount):
        with pytest.raises(InvalidInput):
            require_positive(amount)

    @pytest.mark.unit
    def test_require_positive_normalises(self):
        assert require_positive(Decimal("7.5")) == Decimal("7.50")


class TestCreateLoan:
    """Tests for loan creation with its opening transaction"""

    @pytest.mark.unit
    async def test_lend_opens_with_credit(self, db_session, test_user):
        loan = await LedgerService(db_session).create_loan(
            test_user.id, new_loan("Laptop", "100.00", LoanType.LEND)
        )

        assert loan.balance == Decimal("100.00")
        assert len(loan.transactions) == 1
        assert loan.transactions[0].type == TransactionType.CREDIT
        assert loan.transactions[0].amount == Decimal("100.00")

    @pytest.mark.unit
    async def test_borrow_opens_with_debit(self, db_session, test_user):
        loan = await LedgerService(db_session).create_loan(
            test_user.id, new_loan("Rent", "100.00", LoanType.BORROW)
        )

        assert loan.balance == Decimal("-100.00")
        assert loan.transactions[0].type == TransactionType.DEBIT

    @pytest.mark.unit
    async def test_duplicate_title_rejected(self, db_session, test_user, test_loan):
        user_id = test_user.id

        with pytest.raises(DuplicateTitle):
            await LedgerService(db_session).create_loan(
                user_id, new_loan("Car repair", "10.00", LoanType.LEND)
            )

        result = await db_session.execute(select(func.count(Loan.id)).where(Loan.user_id == user_id))
        assert result.scalar_one() == 1

    @pytest.mark.unit
    async def test_title_unique_per_user_only(self, db_session, other_user, test_loan):
        loan = await LedgerService(db_session).create_loan(
            other_user.id, new_loan("Car repair", "30.00", LoanType.BORROW)
        )

        assert loan.title == "Car repair"
        assert loan.balance == Decimal("-30.00")


class TestAddTransaction:
    """Tests for recording transactions"""

    @pytest.mark.unit
    async def test_debit_lowers_balance(self, db_session, test_user, test_loan):
        result = await LedgerService(db_session).add_transaction(
            test_user.id, "Car repair", debit("25.00")
        )

        assert result.transaction.id is not None
        assert result.loan.balance == Decimal("75.00")
        assert len(result.loan.transactions) == 2

    @pytest.mark.unit
    async def test_credit_raises_balance(self, db_session, test_user, test_loan):
        result = await LedgerService(db_session).add_transaction(
            test_user.id, "Car repair", credit("0.50")
        )

        assert result.loan.balance == Decimal("100.50")

    @pytest.mark.unit
    async def test_missing_loan(self, db_session, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id

        with pytest.raises(LoanNotFound):
            await LedgerService(db_session).add_transaction(user_id, "No such loan", debit("5.00"))

        assert await transaction_count(db_session, loan_id) == 1
        assert await stored_balance(db_session, loan_id) == Decimal("100.00")

    @pytest.mark.unit
    async def test_foreign_loan_is_not_found(self, db_session, other_user, test_loan):
        other_id, loan_id = other_user.id, test_loan.id

        with pytest.raises(LoanNotFound):
            await LedgerService(db_session).add_transaction(other_id, "Car repair", debit("5.00"))

        assert await transaction_count(db_session, loan_id) == 1
        assert await stored_balance(db_session, loan_id) == Decimal("100.00")

    @pytest.mark.unit
    async def test_invalid_amount_writes_nothing(self, db_session, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id
        bad = TransactionCreate.model_construct(
            amount=Decimal("0"), type=TransactionType.DEBIT, date=WHEN, method=TransactionMethod.CASH,
            description=None, method_details=None, external_reference=None
        )

        with pytest.raises(InvalidInput):
            await LedgerService(db_session).add_transaction(user_id, "Car repair", bad)

        assert await transaction_count(db_session, loan_id) == 1
        assert await stored_balance(db_session, loan_id) == Decimal("100.00")

    @pytest.mark.unit
    async def test_closed_loan_still_accepts_transactions(self, db_session, test_user, test_loan):
        from loanbook.modules.loans.models import LoanStatus
        from loanbook.modules.loans.schemas import LoanUpdate
        from loanbook.modules.loans.services import LoanService

        await LoanService(db_session).update_loan(
            test_user.id, "Car repair", LoanUpdate(status=LoanStatus.CLOSED)
        )
        result = await LedgerService(db_session).add_transaction(
            test_user.id, "Car repair", debit("100.00")
        )

        assert result.loan.balance == Decimal("0.00")
        assert result.loan.status == LoanStatus.CLOSED


class TestEditTransaction:
    """Tests for editing transactions"""

    @pytest.mark.unit
    async def test_type_and_amount_change(self, db_session, test_user, test_loan):
        service = LedgerService(db_session)
        added = await service.add_transaction(test_user.id, "Car repair", credit("50.00"))
        assert added.loan.balance == Decimal("150.00")

        result = await service.edit_transaction(
            test_user.id, "Car repair", added.transaction.id,
            TransactionUpdate(amount=Decimal("30.00"), type=TransactionType.DEBIT)
        )

        # 150 - 50 - 30
        assert result.loan.balance == Decimal("70.00")
        assert result.transaction.type == TransactionType.DEBIT
        assert result.transaction.amount == Decimal("30.00")

    @pytest.mark.unit
    async def test_non_monetary_edit_keeps_balance(self, db_session, test_user, test_loan):
        seed_id = test_loan.transactions[0].id

        result = await LedgerService(db_session).edit_transaction(
            test_user.id, "Car repair", seed_id,
            TransactionUpdate(description="Garage invoice #42", external_reference="INV-42")
        )

        assert result.loan.balance == Decimal("100.00")
        assert result.transaction.description == "Garage invoice #42"
        assert result.transaction.amount == Decimal("100.00")

    @pytest.mark.unit
    async def test_transaction_of_another_loan(self, db_session, test_user, test_loan):
        service = LedgerService(db_session)
        other = await service.create_loan(test_user.id, new_loan("Phone", "20.00", LoanType.LEND))
        user_id, foreign_id, loan_id = test_user.id, other.transactions[0].id, test_loan.id

        with pytest.raises(TransactionNotFound):
            await service.edit_transaction(
                user_id, "Car repair", foreign_id, TransactionUpdate(amount=Decimal("1.00"))
            )

        assert await stored_balance(db_session, loan_id) == Decimal("100.00")


class TestDeleteTransaction:
    """Tests for deleting transactions"""

    @pytest.mark.unit
    async def test_deleting_credit_reverses_it(self, db_session, test_user, test_loan):
        service = LedgerService(db_session)
        added = await service.add_transaction(test_user.id, "Car repair", credit("40.00"))

        result = await service.delete_transaction(test_user.id, "Car repair", added.transaction.id)

        assert result.transaction is None
        assert result.loan.balance == Decimal("100.00")
        assert len(result.loan.transactions) == 1

    @pytest.mark.unit
    async def test_deleting_debit_reverses_it(self, db_session, test_user, test_loan):
        service = LedgerService(db_session)
        added = await service.add_transaction(test_user.id, "Car repair", debit("40.00"))
        assert added.loan.balance == Decimal("60.00")

        result = await service.delete_transaction(test_user.id, "Car repair", added.transaction.id)

        assert result.loan.balance == Decimal("100.00")

    @pytest.mark.unit
    async def test_deleting_seed_settles_to_zero(self, db_session, test_user, test_loan):
        seed_id = test_loan.transactions[0].id

        result = await LedgerService(db_session).delete_transaction(test_user.id, "Car repair", seed_id)

        assert result.loan.balance == Decimal("0.00")
        assert result.loan.transactions == []

    @pytest.mark.unit
    async def test_missing_transaction(self, db_session, test_user, test_loan):
        user_id = test_user.id

        with pytest.raises(TransactionNotFound):
            await LedgerService(db_session).delete_transaction(user_id, "Car repair", 9999)


class TestBalanceConsistency:
    """The stored balance always equals the signed sum of transactions"""

    @pytest.mark.unit
    async def test_random_operation_sequence(self, db_session, test_user, test_loan):
        rng = random.Random(20260301)
        service = LedgerService(db_session)
        user_id = test_user.id
        live_ids = [test_loan.transactions[0].id]

        for _ in range(40):
            action = rng.choice(["add", "add", "edit", "delete"])
            amount = Decimal(rng.randint(1, 50000)) / 100
            txn_type = rng.choice([TransactionType.CREDIT, TransactionType.DEBIT])

            if action == "add" or not live_ids:
                data = TransactionCreate(
                    amount=amount, type=txn_type, date=WHEN, method=TransactionMethod.OTHER
                )
                result = await service.add_transaction(user_id, "Car repair", data)
                live_ids.append(result.transaction.id)
            elif action == "edit":
                result = await service.edit_transaction(
                    user_id, "Car repair", rng.choice(live_ids),
                    TransactionUpdate(amount=amount, type=txn_type)
                )
            else:
                victim = live_ids.pop(rng.randrange(len(live_ids)))
                result = await service.delete_transaction(user_id, "Car repair", victim)

            expected = sum(
                (signed_amount(t.type, t.amount) for t in result.loan.transactions),
                Decimal("0.00")
            )
            assert result.loan.balance == expected

        report = await service.reconcile_loan(user_id, "Car repair")
        assert report.is_consistent

    @pytest.mark.unit
    async def test_stale_writer_does_not_lose_updates(self, db_session, session_factory, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id

        # First writer holds a loan whose balance is about to go stale
        await db_session.commit()
        assert test_loan.balance == Decimal("100.00")

        async with session_factory() as second:
            await LedgerService(second).add_transaction(user_id, "Car repair", debit("30.00"))

        result = await LedgerService(db_session).add_transaction(user_id, "Car repair", credit("5.00"))

        assert result.loan.balance == Decimal("75.00")
        assert await stored_balance(db_session, loan_id) == Decimal("75.00")


class TestReconciliation:
    """Tests for balance drift detection and repair"""

    async def _corrupt(self, db_session, loan_id: int, balance: str):
        await db_session.execute(
            update(Loan).where(Loan.id == loan_id).values(balance=Decimal(balance))
        )
        await db_session.commit()

    @pytest.mark.unit
    async def test_consistent_loan(self, db_session, test_user, test_loan):
        report = await LedgerService(db_session).reconcile_loan(test_user.id, "Car repair")

        assert report.is_consistent
        assert report.recorded_balance == Decimal("100.00")
        assert report.computed_balance == Decimal("100.00")
        assert report.repaired is False

    @pytest.mark.unit
    async def test_drift_reported_not_repaired(self, db_session, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id
        await self._corrupt(db_session, loan_id, "90.00")

        report = await LedgerService(db_session).reconcile_loan(user_id, "Car repair")

        assert report.drift == Decimal("-10.00")
        assert report.repaired is False
        assert await stored_balance(db_session, loan_id) == Decimal("90.00")

    @pytest.mark.unit
    async def test_drift_repaired(self, db_session, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id
        await self._corrupt(db_session, loan_id, "90.00")

        report = await LedgerService(db_session).reconcile_loan(user_id, "Car repair", repair=True)

        assert report.repaired is True
        assert await stored_balance(db_session, loan_id) == Decimal("100.00")

    @pytest.mark.unit
    async def test_reconcile_all_covers_only_own_loans(self, db_session, test_user, other_user, test_loan):
        service = LedgerService(db_session)
        await service.create_loan(test_user.id, new_loan("Phone", "20.00", LoanType.BORROW))
        await service.create_loan(other_user.id, new_loan("Bike", "5.00", LoanType.LEND))

        reports = await service.reconcile_all(test_user.id)

        assert [r.title for r in reports] == ["Car repair", "Phone"]
        assert all(r.is_consistent for r in reports)


class TestDeleteLoan:
    """Tests for loan deletion"""

    @pytest.mark.unit
    async def test_delete_cascades_to_transactions(self, db_session, test_user, test_loan):
        service = LedgerService(db_session)
        await service.add_transaction(test_user.id, "Car repair", debit("10.00"))
        loan_id = test_loan.id

        await service.delete_loan(test_user.id, "Car repair")

        result = await db_session.execute(select(Loan).where(Loan.id == loan_id))
        assert result.scalar_one_or_none() is None
        assert await transaction_count(db_session, loan_id) == 0

    @pytest.mark.unit
    async def test_delete_foreign_loan(self, db_session, other_user, test_loan):
        other_id, loan_id = other_user.id, test_loan.id

        with pytest.raises(LoanNotFound):
            await LedgerService(db_session).delete_loan(other_id, "Car repair")

        assert await transaction_count(db_session, loan_id) == 1


class TestAtomicUnit:
    """A failed unit leaves neither the transaction row nor the balance change"""

    @pytest.mark.unit
    async def test_commit_failure_is_storage_failure(self, db_session, monkeypatch, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id
        monkeypatch.setattr(
            db_session, "commit",
            AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))
        )

        with pytest.raises(StorageFailure) as exc_info:
            await LedgerService(db_session).add_transaction(user_id, "Car repair", debit("25.00"))

        assert exc_info.value.kind == "storage_failure"
        assert exc_info.value.status_code == 500
        assert await transaction_count(db_session, loan_id) == 1
        assert await stored_balance(db_session, loan_id) == Decimal("100.00")

    @pytest.mark.unit
    async def test_unexpected_error_rolls_back(self, db_session, monkeypatch, test_user, test_loan):
        user_id, loan_id = test_user.id, test_loan.id
        monkeypatch.setattr(
            LedgerService, "_apply_delta", AsyncMock(side_effect=RuntimeError("boom"))
        )

        with pytest.raises(RuntimeError):
            await LedgerService(db_session).add_transaction(user_id, "Car repair", debit("25.00"))

        # The flushed row is gone without any outer session handling
        assert await transaction_count(db_session, loan_id) == 1
        assert await stored_balance(db_session, loan_id) == Decimal("100.00")


class TestLargeAmounts:

    @pytest.mark.unit
    async def test_reconcile_is_exact_for_large_balances(self, db_session, test_user):
        service = LedgerService(db_session)
        user_id = test_user.id
        await service.create_loan(user_id, new_loan("House", "999999999999.99", LoanType.LEND))
        for _ in range(3):
            await service.add_transaction(user_id, "House", debit("0.01"))

        report = await service.reconcile_loan(user_id, "House")

        assert report.computed_balance == Decimal("999999999999.96")
        assert report.is_consistent
