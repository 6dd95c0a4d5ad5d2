"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from savemate.domain.exceptions import InvalidInputError
from savemate.utils.date_utils import utc_now
from savemate.utils.money import ZERO


class SavingType(str, Enum):
    """Persisted discriminator for the saving strategy"""

    ROUND_UP = "ROUND_UP"
    PERCENTAGE = "PERCENTAGE"


class InsufficientBalancePolicy(str, Enum):
    """What to do when a proposed saving exceeds the user's safe ceiling"""

    SKIP_SAVING = "SKIP_SAVING"
    DEFER_AS_PENDING = "DEFER_AS_PENDING"
    CAP_AT_SAFE_BALANCE = "CAP_AT_SAFE_BALANCE"


class TransactionType(str, Enum):
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
    SAVING = "SAVING"
    FEE = "FEE"
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class GoalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class RoundUp:
    """Round each expense up to the next multiple and save the difference"""

    multiple: int


@dataclass(frozen=True)
class Percentage:
    """Save a fixed percentage (0-100) of each expense"""

    rate: Optional[Decimal]


SavingStrategy = Union[RoundUp, Percentage]


@dataclass
class User:
    """Aggregate root for savings configuration and the running savings total"""

    email: str
    username: str
    first_name: str
    last_name: str
    id: Optional[int] = None
    phone_number: Optional[str] = None
    bank_account: Optional[str] = None
    bank_name: Optional[str] = None
    saving_strategy: Optional[SavingStrategy] = None
    min_safe_balance: Optional[Decimal] = None
    insufficient_balance_policy: InsufficientBalancePolicy = InsufficientBalancePolicy.SKIP_SAVING
    total_saved: Decimal = ZERO
    monthly_fee_rate: Decimal = Decimal("2.5")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Transaction:
    """A single financial event recorded against one user"""

    user_id: int
    amount: Decimal
    transaction_type: TransactionType
    status: TransactionStatus = TransactionStatus.COMPLETED
    id: Optional[int] = None
    description: str = ""
    merchant_name: Optional[str] = None
    transaction_date: Optional[datetime] = None
    original_amount: Optional[Decimal] = None
    rounded_amount: Optional[Decimal] = None
    saving_amount: Optional[Decimal] = None
    notification_source: Optional[str] = None
    bank_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def complete(self) -> None:
        """Settle a deferred saving. Status never moves backward."""
        if self.status != TransactionStatus.PENDING:
            raise InvalidInputError(
                f"Transaction {self.id} is {self.status.value}, only PENDING transactions can be completed"
            )
        self.status = TransactionStatus.COMPLETED


@dataclass
class SavingGoal:
    """User-defined savings target funded by allocations and direct progress updates"""

    user_id: int
    name: str
    target_amount: Decimal
    current_amount: Decimal = ZERO
    status: GoalStatus = GoalStatus.ACTIVE
    priority_level: int = 1
    id: Optional[int] = None
    description: Optional[str] = None
    target_date: Optional[datetime] = None
    monthly_contribution: Optional[Decimal] = None
    is_collaborative: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    version: int = 0

    @property
    def progress_percentage(self) -> Decimal:
        if not self.target_amount:
            return ZERO
        return self.current_amount / self.target_amount * 100

    @property
    def remaining_amount(self) -> Decimal:
        return max(ZERO, self.target_amount - self.current_amount)

    @property
    def is_terminal(self) -> bool:
        return self.status in (GoalStatus.COMPLETED, GoalStatus.CANCELLED)

    def mark_completed(self, when: datetime | None = None) -> None:
        self.status = GoalStatus.COMPLETED
        self.completed_at = when or utc_now()


@dataclass
class SavingComputation:
    """Output of the rounding/percentage calculator"""

    rounded_amount: Decimal
    saving_amount: Decimal


@dataclass
class PolicyOutcome:
    """Saving after the balance-sufficiency policy, plus the resulting transaction status"""

    adjusted_saving: Decimal
    status: TransactionStatus


@dataclass
class GoalAllocation:
    """Amount credited to one goal by a distribution pass"""

    goal_id: Optional[int]
    amount: Decimal
    completed: bool


@dataclass
class AllocationResult:
    """Outcome of spreading a lump sum over active goals"""

    total_amount: Decimal
    allocations: List[GoalAllocation] = field(default_factory=list)

    @property
    def allocated(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)

    @property
    def unallocated(self) -> Decimal:
        return self.total_amount - self.allocated


@dataclass
class GoalSummary:
    """Aggregate view over a user's goals"""

    active_count: int
    completed_count: int
    total_current_savings: Decimal
