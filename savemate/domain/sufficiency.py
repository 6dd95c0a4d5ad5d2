"""Balance-sufficiency policy - guards users against over-aggressive automatic saving"""

from decimal import Decimal
from typing import Optional

from savemate.domain.models import InsufficientBalancePolicy, PolicyOutcome, TransactionStatus
from savemate.utils.money import ZERO


def is_saving_safe(proposed_saving: Decimal, min_safe_balance: Optional[Decimal]) -> bool:
    """
    A saving is safe when it does not exceed the user's per-transaction ceiling.

    The ceiling is user configuration, not a live bank balance: the service has
    no visibility into the user's actual account. No ceiling means always safe.
    """
    if min_safe_balance is None:
        return True
    return proposed_saving <= min_safe_balance


def apply_policy(
    proposed_saving: Decimal,
    min_safe_balance: Optional[Decimal],
    policy: InsufficientBalancePolicy,
) -> PolicyOutcome:
    """
    Adjust a proposed saving according to the user's insufficient-balance policy.

    - safe:                 unchanged, COMPLETED
    - SKIP_SAVING:          0, COMPLETED
    - DEFER_AS_PENDING:     unchanged, PENDING (not counted until realized)
    - CAP_AT_SAFE_BALANCE:  max(0, proposed - min_safe_balance), COMPLETED
    """
    if is_saving_safe(proposed_saving, min_safe_balance):
        return PolicyOutcome(adjusted_saving=proposed_saving, status=TransactionStatus.COMPLETED)

    if policy == InsufficientBalancePolicy.SKIP_SAVING:
        return PolicyOutcome(adjusted_saving=ZERO, status=TransactionStatus.COMPLETED)
    elif policy == InsufficientBalancePolicy.DEFER_AS_PENDING:
        return PolicyOutcome(adjusted_saving=proposed_saving, status=TransactionStatus.PENDING)
    elif policy == InsufficientBalancePolicy.CAP_AT_SAFE_BALANCE:
        return PolicyOutcome(
            adjusted_saving=max(ZERO, proposed_saving - min_safe_balance),
            status=TransactionStatus.COMPLETED,
        )

    raise ValueError(f"Unhandled insufficient balance policy: {policy!r}")
