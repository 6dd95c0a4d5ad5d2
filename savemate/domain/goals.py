"""Saving goal lifecycle rules"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List

from savemate.domain.exceptions import InvalidInputError
from savemate.domain.models import GoalStatus, SavingGoal
from savemate.utils.date_utils import as_utc, utc_now

# Allowed user-directed moves; COMPLETED and CANCELLED are terminal
ALLOWED_TRANSITIONS = {
    GoalStatus.ACTIVE: {GoalStatus.PAUSED, GoalStatus.CANCELLED, GoalStatus.COMPLETED},
    GoalStatus.PAUSED: {GoalStatus.ACTIVE, GoalStatus.CANCELLED, GoalStatus.COMPLETED},
    GoalStatus.COMPLETED: set(),
    GoalStatus.CANCELLED: set(),
}


def change_status(goal: SavingGoal, new_status: GoalStatus, now: datetime | None = None) -> None:
    """
    Apply a user-requested status change.

    Raises:
        InvalidInputError: the goal is terminal, the move is not allowed, or
            COMPLETED is requested before the target is reached
    """
    if new_status == goal.status:
        return
    if new_status not in ALLOWED_TRANSITIONS[goal.status]:
        raise InvalidInputError(f"Cannot move goal {goal.id} from {goal.status.value} to {new_status.value}")

    if new_status == GoalStatus.COMPLETED:
        if goal.current_amount < goal.target_amount:
            raise InvalidInputError(f"Goal {goal.id} has not reached its target yet")
        goal.mark_completed(now)
    else:
        goal.status = new_status


def add_progress(goal: SavingGoal, additional_amount: Decimal, now: datetime | None = None) -> bool:
    """
    Add money to a goal directly, completing it when the target is reached.

    Returns True when this call completed the goal.
    """
    if additional_amount <= 0:
        raise InvalidInputError(f"Progress amount must be positive, got {additional_amount}")
    if goal.is_terminal:
        raise InvalidInputError(f"Goal {goal.id} is {goal.status.value} and no longer accepts progress")

    goal.current_amount += additional_amount
    if goal.current_amount >= goal.target_amount:
        goal.mark_completed(now)
        return True
    return False


def check_and_complete_goals(goals: Iterable[SavingGoal], now: datetime | None = None) -> List[SavingGoal]:
    """
    Idempotent sweep: complete every non-terminal goal whose target is reached.

    Cancelled goals stay cancelled. Returns the goals completed by this sweep.
    """
    completed = []
    for goal in goals:
        if goal.is_terminal:
            continue
        if goal.current_amount >= goal.target_amount:
            goal.mark_completed(now)
            completed.append(goal)
    return completed


def find_overdue_goals(goals: Iterable[SavingGoal], now: datetime | None = None) -> List[SavingGoal]:
    """Active goals whose target date has passed"""
    now = now or utc_now()
    return [
        g for g in goals
        if g.status == GoalStatus.ACTIVE and g.target_date is not None and as_utc(g.target_date) < now
    ]


def find_goals_due_by(goals: Iterable[SavingGoal], deadline: datetime) -> List[SavingGoal]:
    """Active goals with a target date on or before the deadline, soonest first"""
    due = [
        g for g in goals
        if g.status == GoalStatus.ACTIVE and g.target_date is not None and as_utc(g.target_date) <= deadline
    ]
    return sorted(due, key=lambda g: as_utc(g.target_date))
