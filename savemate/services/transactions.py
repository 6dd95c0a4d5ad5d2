"""Transaction processor - applies the saving engine to financial events"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from savemate.domain.exceptions import InsufficientFundsError, NotFoundError
from savemate.domain.models import (
    Percentage,
    RoundUp,
    SavingStrategy,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)
from savemate.domain.rounding import compute_saving
from savemate.domain.sufficiency import apply_policy, is_saving_safe
from savemate.infrastructure.database.repositories import TransactionRepository, UserRepository
from savemate.infrastructure.database.session import transactional
from savemate.infrastructure.observability.logging import log_transaction_recorded
from savemate.infrastructure.observability.metrics import (
    pending_realized_counter,
    policy_adjustment_counter,
    record_transaction,
    withdrawal_rejected_counter,
)
from savemate.services.goals import allocate_to_active_goals, report_allocation
from savemate.services.schemas import ExpenseMetadata, parse_positive_amount, validate_input
from savemate.utils.date_utils import utc_now


def _strategy_label(strategy: Optional[SavingStrategy]) -> str:
    if isinstance(strategy, RoundUp):
        return "round_up"
    if isinstance(strategy, Percentage):
        return "percentage"
    return "none"


def _require_user(users: UserRepository, user_id: int) -> User:
    user = users.find_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


class TransactionProcessor:
    """
    Records expenses, income, deposits and withdrawals.

    Every operation is a single database transaction: the transaction row and
    the change to User.total_saved commit together or not at all. The total is
    moved by an in-database increment/conditional decrement, never by writing
    back a value read earlier, so concurrent operations on one user cannot
    lose updates.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _report(self, txn: Transaction, total_saved: Decimal, strategy: str) -> None:
        record_transaction(txn.transaction_type.value, txn.status.value, strategy, txn.saving_amount)
        log_transaction_recorded(
            user_id=txn.user_id,
            transaction_id=txn.id,
            transaction_type=txn.transaction_type.value,
            status=txn.status.value,
            amount=txn.amount,
            saving_amount=txn.saving_amount,
            total_saved=total_saved,
        )

    def record_expense(
        self,
        user_id: int,
        amount: Any,
        metadata: ExpenseMetadata | dict | None = None,
    ) -> Transaction:
        """
        Record an expense and set aside its saving.

        Flow:
        1. Compute the tentative saving from the user's strategy
        2. Adjust it with the user's insufficient-balance policy
        3. Persist the transaction with original/rounded/saving amounts
        4. If COMPLETED with a positive saving, increment total_saved
           (PENDING savings wait for realize_pending_transactions)
        """
        amount = parse_positive_amount(amount)
        metadata = validate_input(ExpenseMetadata, metadata or {})

        def operation(db: Session) -> Tuple[Transaction, Decimal, User, bool]:
            users = UserRepository(db)
            user = _require_user(users, user_id)

            computation = compute_saving(amount, user.saving_strategy)
            outcome = apply_policy(computation.saving_amount, user.min_safe_balance, user.insufficient_balance_policy)
            adjusted = not is_saving_safe(computation.saving_amount, user.min_safe_balance)

            # Keep rounded = original + saving after the policy adjusted the saving
            rounded = amount + outcome.adjusted_saving if isinstance(user.saving_strategy, RoundUp) else None

            txn = TransactionRepository(db).save_transaction(
                Transaction(
                    user_id=user_id,
                    amount=amount,
                    transaction_type=TransactionType.EXPENSE,
                    status=outcome.status,
                    description=metadata.description,
                    merchant_name=metadata.merchant_name,
                    transaction_date=metadata.transaction_date or utc_now(),
                    original_amount=amount,
                    rounded_amount=rounded,
                    saving_amount=outcome.adjusted_saving,
                    notification_source=metadata.notification_source,
                    bank_reference=metadata.bank_reference,
                )
            )

            total_saved = user.total_saved
            if txn.status == TransactionStatus.COMPLETED and txn.saving_amount > 0:
                total_saved = users.increment_total_saved(user_id, txn.saving_amount)
            return txn, total_saved, user, adjusted

        txn, total_saved, user, adjusted = transactional(self.session_factory, operation)
        if adjusted:
            policy_adjustment_counter.labels(policy=user.insufficient_balance_policy.value).inc()
        self._report(txn, total_saved, _strategy_label(user.saving_strategy))
        return txn

    def record_income(self, user_id: int, amount: Any, description: str = "Income") -> Transaction:
        """Income is saved in full: saving_amount = amount"""
        amount = parse_positive_amount(amount)

        def operation(db: Session) -> Tuple[Transaction, Decimal]:
            users = UserRepository(db)
            _require_user(users, user_id)
            txn = TransactionRepository(db).save_transaction(
                Transaction(
                    user_id=user_id,
                    amount=amount,
                    transaction_type=TransactionType.INCOME,
                    status=TransactionStatus.COMPLETED,
                    description=description,
                    transaction_date=utc_now(),
                    saving_amount=amount,
                )
            )
            return txn, users.increment_total_saved(user_id, amount)

        txn, total_saved = transactional(self.session_factory, operation)
        self._report(txn, total_saved, "income")
        return txn

    def record_saving_deposit(
        self,
        user_id: int,
        amount: Any,
        description: Optional[str] = None,
        allocate_to_goals: bool = False,
    ) -> Transaction:
        """
        Manual deposit straight into savings.

        With allocate_to_goals the deposit is also spread over the user's
        active goals in the same database transaction.
        """
        amount = parse_positive_amount(amount)

        def operation(db: Session):
            users = UserRepository(db)
            _require_user(users, user_id)
            txn = TransactionRepository(db).save_transaction(
                Transaction(
                    user_id=user_id,
                    amount=amount,
                    transaction_type=TransactionType.SAVING,
                    status=TransactionStatus.COMPLETED,
                    description=description or "Manual deposit",
                    transaction_date=utc_now(),
                    saving_amount=amount,
                )
            )
            total_saved = users.increment_total_saved(user_id, amount)
            allocation = allocate_to_active_goals(db, user_id, amount) if allocate_to_goals else None
            return txn, total_saved, allocation

        txn, total_saved, allocation = transactional(self.session_factory, operation)
        self._report(txn, total_saved, "deposit")
        if allocation is not None:
            report_allocation(user_id, allocation)
        return txn

    def record_withdrawal(self, user_id: int, amount: Any) -> Transaction:
        """
        Withdraw from accumulated savings to the linked account.

        Raises:
            InsufficientFundsError: amount exceeds total_saved (nothing is written)
        """
        amount = parse_positive_amount(amount)

        def operation(db: Session) -> Tuple[Transaction, Decimal]:
            users = UserRepository(db)
            user = _require_user(users, user_id)
            total_saved = users.decrement_total_saved(user_id, amount)
            txn = TransactionRepository(db).save_transaction(
                Transaction(
                    user_id=user_id,
                    amount=amount,
                    transaction_type=TransactionType.WITHDRAWAL,
                    status=TransactionStatus.COMPLETED,
                    description=f"Withdrawal to linked account {user.bank_name or ''}".rstrip(),
                    transaction_date=utc_now(),
                )
            )
            return txn, total_saved

        try:
            txn, total_saved = transactional(self.session_factory, operation)
        except InsufficientFundsError as e:
            withdrawal_rejected_counter.inc()
            logging.warning(f"Withdrawal rejected: {e}", extra={"user_id": user_id, "step": "withdrawal"})
            raise

        self._report(txn, total_saved, "none")
        return txn

    def realize_pending_transactions(self, user_id: int) -> List[Transaction]:
        """
        Settle deferred savings, oldest first.

        Each PENDING transaction becomes COMPLETED and its saving is added to
        total_saved, all within one database transaction.
        """
        def operation(db: Session) -> Tuple[List[Transaction], Decimal]:
            users = UserRepository(db)
            user = _require_user(users, user_id)
            transactions = TransactionRepository(db)

            total_saved = user.total_saved
            realized = []
            for txn in transactions.find_pending_transactions(user_id):
                txn.complete()
                txn = transactions.save_transaction(txn)
                if txn.saving_amount is not None and txn.saving_amount > 0:
                    total_saved = users.increment_total_saved(user_id, txn.saving_amount)
                realized.append(txn)
            return realized, total_saved

        realized, total_saved = transactional(self.session_factory, operation)
        if realized:
            pending_realized_counter.inc(len(realized))
            logging.info(
                f"Realized {len(realized)} pending transactions",
                extra={"user_id": user_id, "step": "realize_pending", "total_saved": str(total_saved)},
            )
        return realized

    def get_transaction(self, transaction_id: int) -> Transaction:
        def operation(db: Session) -> Transaction:
            txn = TransactionRepository(db).find_transaction(transaction_id)
            if txn is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            return txn

        return transactional(self.session_factory, operation)

    def list_transactions(
        self,
        user_id: int,
        transaction_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """User's transactions, newest first, optionally of one type"""
        def operation(db: Session) -> List[Transaction]:
            _require_user(UserRepository(db), user_id)
            return TransactionRepository(db).find_by_user(user_id, transaction_type, limit)

        return transactional(self.session_factory, operation)

    def list_transactions_between(self, user_id: int, start: datetime, end: datetime) -> List[Transaction]:
        def operation(db: Session) -> List[Transaction]:
            _require_user(UserRepository(db), user_id)
            return TransactionRepository(db).find_between(user_id, start, end)

        return transactional(self.session_factory, operation)

    def total_expenses(self, user_id: int, start: datetime, end: datetime) -> Decimal:
        def operation(db: Session) -> Decimal:
            _require_user(UserRepository(db), user_id)
            return TransactionRepository(db).sum_amount_by_type(user_id, TransactionType.EXPENSE, start, end)

        return transactional(self.session_factory, operation)

    def total_savings(self, user_id: int, start: datetime, end: datetime) -> Decimal:
        """Sum of completed savings in the window (pending savings excluded)"""
        def operation(db: Session) -> Decimal:
            _require_user(UserRepository(db), user_id)
            return TransactionRepository(db).sum_completed_savings(user_id, start, end)

        return transactional(self.session_factory, operation)
