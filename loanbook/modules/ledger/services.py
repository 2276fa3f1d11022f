"""
Loan balance ledger.

All mutations that move ``Loan.balance`` live here. Each public method is one
unit of work: the loan row is locked (``SELECT ... FOR UPDATE``), the
transaction row is written, and the balance is moved with an SQL-side
increment (``balance = balance + :delta``) so concurrent writers never lose a
delta. Everything commits together or rolls back together.

Sign convention: a CREDIT contributes ``+amount`` to the balance, a DEBIT
``-amount``. ``Loan.balance`` always equals the signed sum of the loan's
transactions.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, func, case, cast, and_, BigInteger
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional
import logging

from loanbook.core.database import atomic
from loanbook.core.exceptions import LoanNotFound, TransactionNotFound, DuplicateTitle, InvalidInput
from loanbook.core.money import to_money
from loanbook.modules.loans.models import Loan, LoanStatus, LoanType
from loanbook.modules.loans.schemas import LoanCreate
from loanbook.modules.loans.services import loan_owned_by, title_taken
from loanbook.modules.transactions.models import Transaction, TransactionType
from loanbook.modules.transactions.schemas import TransactionCreate, TransactionUpdate
from loanbook.modules.ledger.schemas import LedgerReconciliation

logger = logging.getLogger(__name__)

# Columns an edit may not null out
REQUIRED_TRANSACTION_FIELDS = ("amount", "type", "date", "method")


def signed_amount(transaction_type: TransactionType, amount) -> Decimal:
    """Balance contribution of a transaction"""
    amount = to_money(amount)
    return amount if transaction_type == TransactionType.CREDIT else -amount


def seed_transaction_type(loan_type: LoanType) -> TransactionType:
    """Lending opens with a credit, borrowing with a debit"""
    return TransactionType.CREDIT if loan_type == LoanType.LEND else TransactionType.DEBIT


def require_positive(amount) -> Decimal:
    if amount is None:
        raise InvalidInput("Amount is required")
    value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    if value <= 0:
        raise InvalidInput("Amount must be greater than zero")
    if value != to_money(value):
        raise InvalidInput("Amount cannot have more than two decimal places")
    return to_money(value)


@dataclass
class LedgerResult:
    """Loan state after a ledger mutation, plus the transaction it touched"""
    loan: Loan
    transaction: Optional[Transaction] = None


class LedgerService:
    """Atomic, ownership-scoped mutations of a loan and its transactions"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============ Internals ============

    async def _lock_loan(self, user_id: int, title: str) -> Loan:
        """Load the caller's loan and hold its row lock until commit"""
        result = await self.db.execute(
            select(Loan)
            .where(loan_owned_by(user_id, title))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            raise LoanNotFound()
        return loan

    async def _get_transaction(self, loan_id: int, transaction_id: int) -> Transaction:
        result = await self.db.execute(
            select(Transaction)
            .where(and_(Transaction.id == transaction_id, Transaction.loan_id == loan_id))
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFound()
        return transaction

    async def _apply_delta(self, loan_id: int, delta: Decimal) -> None:
        await self.db.execute(
            update(Loan)
            .where(Loan.id == loan_id)
            .values(balance=Loan.balance + delta, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

    async def _computed_balance(self, loan_id: int) -> Decimal:
        # Summed as whole cents so backends without a decimal type stay exact
        cents = cast(func.round(Transaction.amount * 100), BigInteger)
        signed = case(
            (Transaction.type == TransactionType.CREDIT, cents),
            else_=-cents
        )
        result = await self.db.execute(
            select(func.coalesce(func.sum(signed), 0)).where(Transaction.loan_id == loan_id)
        )
        return to_money(Decimal(int(result.scalar_one())) / 100)

    async def _reconcile(self, loan: Loan, repair: bool) -> LedgerReconciliation:
        recorded = to_money(loan.balance)
        computed = await self._computed_balance(loan.id)
        drift = recorded - computed
        repaired = False

        if drift != 0:
            logger.warning(
                f"Loan {loan.id} balance drift: recorded {recorded}, computed {computed}, drift {drift}"
            )
            if repair:
                await self.db.execute(
                    update(Loan)
                    .where(Loan.id == loan.id)
                    .values(balance=computed, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                repaired = True

        return LedgerReconciliation(
            loan_id=loan.id,
            title=loan.title,
            recorded_balance=recorded,
            computed_balance=computed,
            drift=drift,
            repaired=repaired
        )

    async def _reload(self, *instances) -> None:
        for instance in instances:
            await self.db.refresh(instance)

    # ============ Loans ============

    async def create_loan(self, user_id: int, data: LoanCreate) -> Loan:
        """Create a loan together with the transaction that opens it"""
        amount = require_positive(data.initial_balance)
        details = data.transaction_details
        seed = Transaction(
            amount=amount,
            type=seed_transaction_type(data.type),
            date=details.date,
            method=details.method,
            method_details=details.method_details,
            external_reference=details.external_reference,
            description=details.description
        )

        async with atomic(self.db, "loan creation"):
            if await title_taken(self.db, user_id, data.title):
                raise DuplicateTitle(data.title)

            loan = Loan(
                user_id=user_id,
                title=data.title,
                description=data.description,
                balance=signed_amount(seed.type, amount),
                status=LoanStatus.RUNNING,
                transactions=[seed]
            )
            self.db.add(loan)
            try:
                await self.db.flush()
            except IntegrityError:
                raise DuplicateTitle(data.title)

        await self._reload(loan, seed)
        logger.info(f"Created loan {loan.id} for user {user_id} with balance {loan.balance}")
        return loan

    async def delete_loan(self, user_id: int, title: str) -> None:
        """Delete a loan and, by cascade, all its transactions"""
        async with atomic(self.db, "loan deletion"):
            loan = await self._lock_loan(user_id, title)
            loan_id = loan.id
            await self.db.delete(loan)

        logger.info(f"Deleted loan {loan_id} for user {user_id}")

    # ============ Transactions ============

    async def add_transaction(self, user_id: int, title: str, data: TransactionCreate) -> LedgerResult:
        """Record a transaction and move the balance by its signed amount"""
        amount = require_positive(data.amount)

        async with atomic(self.db, "transaction creation"):
            loan = await self._lock_loan(user_id, title)
            transaction = Transaction(
                loan_id=loan.id,
                amount=amount,
                type=data.type,
                date=data.date,
                description=data.description,
                method=data.method,
                method_details=data.method_details,
                external_reference=data.external_reference
            )
            self.db.add(transaction)
            await self.db.flush()

            delta = signed_amount(data.type, amount)
            await self._apply_delta(loan.id, delta)

        await self._reload(transaction, loan)
        logger.info(f"Added transaction {transaction.id} to loan {loan.id} (delta {delta})")
        return LedgerResult(loan=loan, transaction=transaction)

    async def edit_transaction(
        self,
        user_id: int,
        title: str,
        transaction_id: int,
        data: TransactionUpdate
    ) -> LedgerResult:
        """Update a transaction, replacing its old signed effect with the new one"""
        changes = data.model_dump(exclude_unset=True)
        if changes.get("amount") is not None:
            changes["amount"] = require_positive(changes["amount"])

        async with atomic(self.db, "transaction update"):
            loan = await self._lock_loan(user_id, title)
            transaction = await self._get_transaction(loan.id, transaction_id)
            old_delta = signed_amount(transaction.type, transaction.amount)

            for field, value in changes.items():
                if value is None and field in REQUIRED_TRANSACTION_FIELDS:
                    continue
                setattr(transaction, field, value)

            new_delta = signed_amount(transaction.type, transaction.amount)
            await self.db.flush()
            await self._apply_delta(loan.id, new_delta - old_delta)

        await self._reload(transaction, loan)
        logger.info(
            f"Edited transaction {transaction.id} on loan {loan.id} (delta {new_delta - old_delta})"
        )
        return LedgerResult(loan=loan, transaction=transaction)

    async def delete_transaction(self, user_id: int, title: str, transaction_id: int) -> LedgerResult:
        """Remove a transaction and reverse its signed effect"""
        async with atomic(self.db, "transaction deletion"):
            loan = await self._lock_loan(user_id, title)
            transaction = await self._get_transaction(loan.id, transaction_id)
            delta = signed_amount(transaction.type, transaction.amount)

            await self.db.delete(transaction)
            await self.db.flush()
            await self._apply_delta(loan.id, -delta)

        await self._reload(loan)
        logger.info(f"Deleted transaction {transaction_id} from loan {loan.id} (delta {-delta})")
        return LedgerResult(loan=loan)

    # ============ Reconciliation ============

    async def reconcile_loan(self, user_id: int, title: str, repair: bool = False) -> LedgerReconciliation:
        """
        Compare a loan's recorded balance with the sum of its transactions.

        With ``repair`` the recorded balance is overwritten by the computed
        one under the same row lock.
        """
        async with atomic(self.db, "reconciliation"):
            loan = await self._lock_loan(user_id, title)
            report = await self._reconcile(loan, repair)

        if report.repaired:
            await self._reload(loan)
        return report

    async def reconcile_all(self, user_id: int, repair: bool = False) -> List[LedgerReconciliation]:
        """Reconcile every loan the user owns"""
        reports = []
        async with atomic(self.db, "reconciliation"):
            result = await self.db.execute(
                select(Loan)
                .where(Loan.user_id == user_id)
                .order_by(Loan.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            loans = list(result.scalars().all())
            for loan in loans:
                reports.append(await self._reconcile(loan, repair))

        for loan, report in zip(loans, reports):
            if report.repaired:
                await self._reload(loan)
        return reports
