"""Goal allocation distributor - spreads a lump savings amount over active goals"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List

from savemate.domain.exceptions import InvalidInputError
from savemate.domain.models import AllocationResult, GoalAllocation, GoalStatus, SavingGoal
from savemate.utils.money import floor_cents, to_decimal

PRIORITY_BASE = Decimal("1.0")
PRIORITY_WEIGHT = Decimal("0.2")


def priority_multiplier(priority_level: int) -> Decimal:
    """1.0 + priority * 0.2: priority 1 -> 1.2, priority 3 -> 1.6"""
    return PRIORITY_BASE + Decimal(priority_level) * PRIORITY_WEIGHT


def order_by_priority(goals: Iterable[SavingGoal]) -> List[SavingGoal]:
    """Highest priority first; stable, so ties keep the caller's (creation) order"""
    return sorted(goals, key=lambda g: -g.priority_level)


def distribute_savings(
    total_amount: Any,
    goals: Iterable[SavingGoal],
    now: datetime | None = None,
) -> AllocationResult:
    """
    Distribute total_amount across active goals in a single priority-ordered pass.

    Requirements:
    - Each goal gets min(remaining, needed_to_complete, total / n_active * multiplier)
    - A goal reaching its target is completed and receives nothing more
    - Never allocates more than total_amount, never overfills a goal
    - Leftover after the pass is reported as unallocated, not redistributed

    The weighted share is truncated to whole cents so the sum of allocations
    cannot exceed the total. A total too small to give any goal a whole cent
    (0.01 over two priority 1 goals: 0.006 each) is left entirely unallocated.
    Goals are mutated in place; the caller persists them.

    Example:
        100 over priorities 3 and 1 (both far from target), n_active = 2:
        priority 3 -> min(100, 50 * 1.6) = 80, priority 1 -> min(20, 50 * 1.2) = 20
    """
    total_amount = to_decimal(total_amount)
    if total_amount <= 0:
        raise InvalidInputError(f"Amount to distribute must be positive, got {total_amount}")

    result = AllocationResult(total_amount=total_amount)
    active_goals = [g for g in goals if g.status == GoalStatus.ACTIVE]
    if not active_goals:
        return result

    goal_count = len(active_goals)
    remaining = total_amount

    for goal in order_by_priority(active_goals):
        if remaining <= 0:
            break

        needed_to_complete = goal.remaining_amount
        if needed_to_complete <= 0:
            continue

        # (total / n) * multiplier, multiplied first so 100 / 3 * 1.2 is exactly 40
        weighted_share = floor_cents(total_amount * priority_multiplier(goal.priority_level) / goal_count)
        amount = min(remaining, needed_to_complete, weighted_share)
        if amount <= 0:
            continue

        goal.current_amount += amount
        remaining -= amount

        completed = goal.current_amount >= goal.target_amount
        if completed:
            goal.mark_completed(now)

        result.allocations.append(GoalAllocation(goal_id=goal.id, amount=amount, completed=completed))

    return result
