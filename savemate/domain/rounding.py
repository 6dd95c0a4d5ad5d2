"""Rounding/percentage calculator - how much of an expense to set aside"""

from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Any, Dict, Iterable, Optional

from savemate.domain.exceptions import InvalidInputError
from savemate.domain.models import Percentage, RoundUp, SavingComputation, SavingStrategy
from savemate.utils.money import ZERO, quantize_cents, to_decimal

# Largest share of an expense that may be diverted to savings before it looks wrong
MAX_REASONABLE_SAVING_RATIO = Decimal("0.5")

SCENARIO_MULTIPLES = (1000, 5000, 10000)
SCENARIO_PERCENTAGE = Decimal("10")


def round_up_to_multiple(amount: Decimal, multiple: Optional[int]) -> Decimal:
    """
    Round amount up (ceiling, never to nearest) to the next multiple.

    Example: 4200 with multiple 1000 -> 5000; 4000 stays 4000.
    An invalid multiple (None or <= 0) returns the amount unchanged.
    """
    if multiple is None or multiple <= 0:
        return amount
    step = Decimal(multiple)
    return (amount / step).to_integral_value(rounding=ROUND_CEILING) * step


def round_down_to_multiple(amount: Decimal, multiple: Optional[int]) -> Decimal:
    """Round amount down (floor) to a multiple, e.g. 4800 with 1000 -> 4000"""
    if multiple is None or multiple <= 0:
        return amount
    step = Decimal(multiple)
    return (amount / step).to_integral_value(rounding=ROUND_FLOOR) * step


def saving_by_rounding(original_amount: Decimal, rounded_amount: Decimal) -> Decimal:
    """Difference between the rounded and the original amount, never negative"""
    return max(ZERO, rounded_amount - original_amount)


def saving_by_percentage(amount: Decimal, rate: Optional[Decimal]) -> Decimal:
    """amount * rate / 100 to the cent; a missing or negative rate saves nothing"""
    if rate is None:
        return ZERO
    rate = to_decimal(rate)
    if rate < 0:
        return ZERO
    return max(ZERO, quantize_cents(amount * rate / 100))


def compute_saving(amount: Any, strategy: Optional[SavingStrategy]) -> SavingComputation:
    """
    Apply a user's saving strategy to one expense.

    Requirements:
    - RoundUp: rounded = ceil(amount / multiple) * multiple, saving = rounded - amount
    - Percentage: saving = amount * rate / 100, rounded is the amount itself (display only)
    - Missing strategy or multiple <= 0 degrades to zero savings, never an error

    Raises:
        InvalidInputError: amount is not positive
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidInputError(f"Amount must be positive, got {amount}")

    if isinstance(strategy, RoundUp):
        if strategy.multiple is None or strategy.multiple <= 0:
            return SavingComputation(rounded_amount=amount, saving_amount=ZERO)
        rounded = round_up_to_multiple(amount, strategy.multiple)
        return SavingComputation(rounded_amount=rounded, saving_amount=saving_by_rounding(amount, rounded))

    if isinstance(strategy, Percentage):
        return SavingComputation(rounded_amount=amount, saving_amount=saving_by_percentage(amount, strategy.rate))

    return SavingComputation(rounded_amount=amount, saving_amount=ZERO)


def find_optimal_rounding_multiple(amount: Optional[Decimal]) -> int:
    """
    Suggest a rounding multiple scaled to the size of the expense.

    Tiers: < 5000 -> 1000, < 20000 -> 5000, < 50000 -> 10000, otherwise 20000.
    """
    if amount is None or amount <= 0:
        return 1000
    if amount < 5000:
        return 1000
    elif amount < 20000:
        return 5000
    elif amount < 50000:
        return 10000
    else:
        return 20000


def calculate_rounding_impact(amounts: Iterable[Decimal], multiple: Optional[int]) -> Decimal:
    """Total round-up saving a multiple would have produced over past expenses"""
    if multiple is None:
        return ZERO
    total = ZERO
    for amount in amounts:
        if amount is None or amount <= 0:
            continue
        amount = to_decimal(amount)
        total += saving_by_rounding(amount, round_up_to_multiple(amount, multiple))
    return total


def simulate_rounding_scenarios(amount: Optional[Decimal]) -> Dict[str, Any]:
    """Compare what-if outcomes for one amount: round-up to 1k/5k/10k and a flat 10%"""
    if amount is None:
        return {}
    amount = to_decimal(amount)

    scenarios: Dict[str, Any] = {"original_amount": amount}
    for multiple in SCENARIO_MULTIPLES:
        rounded = round_up_to_multiple(amount, multiple)
        scenarios[f"rounding_{multiple}"] = {
            "rounded": rounded,
            "saving": saving_by_rounding(amount, rounded),
        }
    scenarios["percentage_10"] = {"saving": saving_by_percentage(amount, SCENARIO_PERCENTAGE)}
    return scenarios


def is_saving_reasonable(original_amount: Optional[Decimal], saving_amount: Optional[Decimal]) -> bool:
    """A saving is reasonable when it is non-negative and at most half the original expense"""
    if original_amount is None or saving_amount is None:
        return False
    return ZERO <= saving_amount <= original_amount * MAX_REASONABLE_SAVING_RATIO
