"""Data access layer - maps ORM records to domain entities"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from savemate.domain.exceptions import ConcurrencyConflictError, InsufficientFundsError, NotFoundError
from savemate.domain.models import (
    GoalStatus,
    InsufficientBalancePolicy,
    Percentage,
    RoundUp,
    SavingGoal,
    SavingStrategy,
    SavingType,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)
from savemate.infrastructure.database.models import SavingGoalRecord, TransactionRecord, UserRecord
from savemate.utils.money import ZERO


def _strategy_from_record(record: UserRecord) -> Optional[SavingStrategy]:
    if record.saving_type == SavingType.ROUND_UP.value:
        return RoundUp(multiple=record.rounding_multiple or 0)
    if record.saving_type == SavingType.PERCENTAGE.value:
        return Percentage(rate=record.saving_percentage)
    return None


def _user_to_domain(record: UserRecord) -> User:
    return User(
        id=record.id,
        email=record.email,
        username=record.username,
        first_name=record.first_name,
        last_name=record.last_name,
        phone_number=record.phone_number,
        bank_account=record.bank_account,
        bank_name=record.bank_name,
        saving_strategy=_strategy_from_record(record),
        min_safe_balance=record.min_safe_balance,
        insufficient_balance_policy=InsufficientBalancePolicy(record.insufficient_balance_policy),
        total_saved=record.total_saved if record.total_saved is not None else ZERO,
        monthly_fee_rate=record.monthly_fee_rate,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _transaction_to_domain(record: TransactionRecord) -> Transaction:
    return Transaction(
        id=record.id,
        user_id=record.user_id,
        amount=record.amount,
        transaction_type=TransactionType(record.transaction_type),
        status=TransactionStatus(record.status),
        description=record.description,
        merchant_name=record.merchant_name,
        transaction_date=record.transaction_date,
        original_amount=record.original_amount,
        rounded_amount=record.rounded_amount,
        saving_amount=record.saving_amount,
        notification_source=record.notification_source,
        bank_reference=record.bank_reference,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _goal_to_domain(record: SavingGoalRecord) -> SavingGoal:
    return SavingGoal(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        description=record.description,
        target_amount=record.target_amount,
        current_amount=record.current_amount,
        target_date=record.target_date,
        status=GoalStatus(record.status),
        monthly_contribution=record.monthly_contribution,
        priority_level=record.priority_level,
        is_collaborative=record.is_collaborative,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
    )


class UserRepository:
    """Repository for users and their running savings total"""

    def __init__(self, db: Session):
        self.db = db

    def find_user(self, user_id: int) -> Optional[User]:
        record = self.db.get(UserRecord, user_id)
        return _user_to_domain(record) if record else None

    def find_by_email(self, email: str) -> Optional[User]:
        record = self.db.scalars(select(UserRecord).where(UserRecord.email == email)).first()
        return _user_to_domain(record) if record else None

    def username_taken(self, username: str) -> bool:
        return self.db.scalar(select(func.count()).where(UserRecord.username == username)) > 0

    def save_user(self, user: User) -> User:
        """
        Insert or update profile and saving configuration.

        total_saved is not written here: it only moves through
        increment_total_saved / decrement_total_saved.
        """
        if user.id is None:
            record = UserRecord(total_saved=ZERO)
            self.db.add(record)
        else:
            record = self.db.get(UserRecord, user.id)
            if record is None:
                raise NotFoundError(f"User {user.id} not found")

        record.email = user.email
        record.username = user.username
        record.first_name = user.first_name
        record.last_name = user.last_name
        record.phone_number = user.phone_number
        record.bank_account = user.bank_account
        record.bank_name = user.bank_name
        record.min_safe_balance = user.min_safe_balance
        record.insufficient_balance_policy = user.insufficient_balance_policy.value
        record.monthly_fee_rate = user.monthly_fee_rate

        strategy = user.saving_strategy
        if isinstance(strategy, RoundUp):
            record.saving_type = SavingType.ROUND_UP.value
            record.rounding_multiple = strategy.multiple
        elif isinstance(strategy, Percentage):
            record.saving_type = SavingType.PERCENTAGE.value
            record.saving_percentage = strategy.rate
        else:
            record.saving_type = None

        self.db.flush()
        self.db.refresh(record)
        return _user_to_domain(record)

    def get_total_saved(self, user_id: int) -> Decimal:
        total = self.db.scalar(select(UserRecord.total_saved).where(UserRecord.id == user_id))
        if total is None:
            raise NotFoundError(f"User {user_id} not found")
        return total

    def increment_total_saved(self, user_id: int, delta: Decimal) -> Decimal:
        """Atomic in-database increment; returns the new total as seen by this transaction"""
        result = self.db.execute(
            update(UserRecord)
            .where(UserRecord.id == user_id)
            .values(total_saved=UserRecord.total_saved + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")
        return self.get_total_saved(user_id)

    def decrement_total_saved(self, user_id: int, amount: Decimal) -> Decimal:
        """
        Conditional decrement: succeeds only while total_saved >= amount.

        Raises:
            InsufficientFundsError: the guard rejected the update
        """
        result = self.db.execute(
            update(UserRecord)
            .where(UserRecord.id == user_id, UserRecord.total_saved >= amount)
            .values(total_saved=UserRecord.total_saved - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientFundsError(requested=amount, available=self.get_total_saved(user_id))
        return self.get_total_saved(user_id)


class TransactionRepository:
    """Repository for transactions"""

    def __init__(self, db: Session):
        self.db = db

    def save_transaction(self, txn: Transaction) -> Transaction:
        """Insert a new transaction, or persist status/amount changes of an existing one"""
        if txn.id is None:
            record = TransactionRecord(user_id=txn.user_id)
            self.db.add(record)
        else:
            record = self.db.get(TransactionRecord, txn.id)
            if record is None:
                raise NotFoundError(f"Transaction {txn.id} not found")

        record.amount = txn.amount
        record.description = txn.description
        record.merchant_name = txn.merchant_name
        record.transaction_date = txn.transaction_date
        record.transaction_type = txn.transaction_type.value
        record.status = txn.status.value
        record.original_amount = txn.original_amount
        record.rounded_amount = txn.rounded_amount
        record.saving_amount = txn.saving_amount
        record.notification_source = txn.notification_source
        record.bank_reference = txn.bank_reference

        self.db.flush()  # Get ID without committing
        self.db.refresh(record)
        return _transaction_to_domain(record)

    def find_transaction(self, transaction_id: int) -> Optional[Transaction]:
        record = self.db.get(TransactionRecord, transaction_id)
        return _transaction_to_domain(record) if record else None

    def find_pending_transactions(self, user_id: int) -> List[Transaction]:
        """Pending transactions, oldest first (FIFO settlement)"""
        records = self.db.scalars(
            select(TransactionRecord)
            .where(
                TransactionRecord.user_id == user_id,
                TransactionRecord.status == TransactionStatus.PENDING.value,
            )
            .order_by(TransactionRecord.created_at.asc(), TransactionRecord.id.asc())
        ).all()
        return [_transaction_to_domain(r) for r in records]

    def find_by_user(
        self,
        user_id: int,
        transaction_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """Newest first"""
        stmt = select(TransactionRecord).where(TransactionRecord.user_id == user_id)
        if transaction_type is not None:
            stmt = stmt.where(TransactionRecord.transaction_type == transaction_type.value)
        stmt = stmt.order_by(TransactionRecord.transaction_date.desc(), TransactionRecord.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [_transaction_to_domain(r) for r in self.db.scalars(stmt).all()]

    def find_between(self, user_id: int, start: datetime, end: datetime) -> List[Transaction]:
        records = self.db.scalars(
            select(TransactionRecord)
            .where(
                TransactionRecord.user_id == user_id,
                TransactionRecord.transaction_date >= start,
                TransactionRecord.transaction_date <= end,
            )
            .order_by(TransactionRecord.transaction_date.desc(), TransactionRecord.id.desc())
        ).all()
        return [_transaction_to_domain(r) for r in records]

    def sum_amount_by_type(
        self, user_id: int, transaction_type: TransactionType, start: datetime, end: datetime
    ) -> Decimal:
        total = self.db.scalar(
            select(func.sum(TransactionRecord.amount)).where(
                TransactionRecord.user_id == user_id,
                TransactionRecord.transaction_type == transaction_type.value,
                TransactionRecord.transaction_date >= start,
                TransactionRecord.transaction_date <= end,
            )
        )
        return Decimal(str(total)) if total is not None else ZERO

    def sum_completed_savings(self, user_id: int, start: datetime, end: datetime) -> Decimal:
        total = self.db.scalar(
            select(func.sum(TransactionRecord.saving_amount)).where(
                TransactionRecord.user_id == user_id,
                TransactionRecord.status == TransactionStatus.COMPLETED.value,
                TransactionRecord.transaction_date >= start,
                TransactionRecord.transaction_date <= end,
            )
        )
        return Decimal(str(total)) if total is not None else ZERO


class GoalRepository:
    """Repository for saving goals with optimistic concurrency on writes"""

    def __init__(self, db: Session):
        self.db = db

    def _ordered(self, user_id: int):
        # Highest priority first, ties broken by creation order
        return (
            select(SavingGoalRecord)
            .where(SavingGoalRecord.user_id == user_id)
            .order_by(
                SavingGoalRecord.priority_level.desc(),
                SavingGoalRecord.created_at.asc(),
                SavingGoalRecord.id.asc(),
            )
        )

    def create_goal(self, goal: SavingGoal) -> SavingGoal:
        record = SavingGoalRecord(
            user_id=goal.user_id,
            name=goal.name,
            description=goal.description,
            target_amount=goal.target_amount,
            current_amount=goal.current_amount,
            target_date=goal.target_date,
            status=goal.status.value,
            monthly_contribution=goal.monthly_contribution,
            priority_level=goal.priority_level,
            is_collaborative=goal.is_collaborative,
            completed_at=goal.completed_at,
            version=0,
        )
        self.db.add(record)
        self.db.flush()
        self.db.refresh(record)
        return _goal_to_domain(record)

    def find_goal(self, goal_id: int) -> Optional[SavingGoal]:
        record = self.db.get(SavingGoalRecord, goal_id)
        return _goal_to_domain(record) if record else None

    def find_goals(self, user_id: int) -> List[SavingGoal]:
        return [_goal_to_domain(r) for r in self.db.scalars(self._ordered(user_id)).all()]

    def find_active_goals(self, user_id: int) -> List[SavingGoal]:
        stmt = self._ordered(user_id).where(SavingGoalRecord.status == GoalStatus.ACTIVE.value)
        return [_goal_to_domain(r) for r in self.db.scalars(stmt).all()]

    def save_goal(self, goal: SavingGoal) -> SavingGoal:
        """
        Compare-and-swap write of progress and status.

        The row is only updated if its version still matches the version the
        goal was read with; the version is bumped on success.

        Raises:
            ConcurrencyConflictError: another writer updated the goal first
        """
        result = self.db.execute(
            update(SavingGoalRecord)
            .where(SavingGoalRecord.id == goal.id, SavingGoalRecord.version == goal.version)
            .values(
                name=goal.name,
                description=goal.description,
                current_amount=goal.current_amount,
                status=goal.status.value,
                priority_level=goal.priority_level,
                target_date=goal.target_date,
                completed_at=goal.completed_at,
                version=SavingGoalRecord.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if self.db.get(SavingGoalRecord, goal.id) is None:
                raise NotFoundError(f"Goal {goal.id} not found")
            raise ConcurrencyConflictError(f"Goal {goal.id} was modified concurrently (version {goal.version})")
        goal.version += 1
        return goal

    def sum_current_savings(self, user_id: int) -> Decimal:
        total = self.db.scalar(
            select(func.sum(SavingGoalRecord.current_amount)).where(SavingGoalRecord.user_id == user_id)
        )
        return Decimal(str(total)) if total is not None else ZERO

    def count_by_status(self, user_id: int) -> Dict[GoalStatus, int]:
        rows = self.db.execute(
            select(SavingGoalRecord.status, func.count())
            .where(SavingGoalRecord.user_id == user_id)
            .group_by(SavingGoalRecord.status)
        ).all()
        return {GoalStatus(status): count for status, count in rows}
