"""Unit tests for saving goal lifecycle rules"""

import copy
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from savemate.domain.exceptions import InvalidInputError
from savemate.domain.goals import (
    add_progress,
    change_status,
    check_and_complete_goals,
    find_goals_due_by,
    find_overdue_goals,
)
from savemate.domain.models import GoalStatus, Transaction, TransactionStatus, TransactionType


NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def test_check_and_complete_goals_is_idempotent(make_goal):
    goals = [
        make_goal(priority=1, target="100", current="100", goal_id=1),
        make_goal(priority=1, target="100", current="150", goal_id=2, status=GoalStatus.PAUSED),
        make_goal(priority=1, target="100", current="99", goal_id=3),
        make_goal(priority=1, target="100", current="200", goal_id=4, status=GoalStatus.CANCELLED),
    ]

    first = check_and_complete_goals(goals, now=NOW)
    after_first = copy.deepcopy(goals)
    second = check_and_complete_goals(goals, now=NOW)

    assert [g.id for g in first] == [1, 2]
    assert second == []
    assert goals == after_first
    assert [g.status for g in goals] == [
        GoalStatus.COMPLETED,
        GoalStatus.COMPLETED,
        GoalStatus.ACTIVE,
        GoalStatus.CANCELLED,  # terminal, never completed by the sweep
    ]


def test_add_progress_completes_goal(make_goal):
    goal = make_goal(priority=1, target="100", current="60")

    assert add_progress(goal, Decimal("30"), now=NOW) is False
    assert add_progress(goal, Decimal("10"), now=NOW) is True
    assert goal.status == GoalStatus.COMPLETED
    assert goal.completed_at == NOW


def test_add_progress_rejects_non_positive_and_terminal(make_goal):
    goal = make_goal(priority=1, target="100")
    with pytest.raises(InvalidInputError):
        add_progress(goal, Decimal("0"))

    goal.status = GoalStatus.CANCELLED
    with pytest.raises(InvalidInputError):
        add_progress(goal, Decimal("10"))


def test_completed_goal_stays_completed(make_goal):
    goal = make_goal(priority=1, target="100", current="100")
    check_and_complete_goals([goal], now=NOW)

    goal.current_amount = Decimal("50")
    check_and_complete_goals([goal], now=NOW)

    assert goal.status == GoalStatus.COMPLETED
    with pytest.raises(InvalidInputError):
        change_status(goal, GoalStatus.ACTIVE)


def test_pause_and_resume(make_goal):
    goal = make_goal(priority=1, target="100")

    change_status(goal, GoalStatus.PAUSED)
    assert goal.status == GoalStatus.PAUSED
    change_status(goal, GoalStatus.ACTIVE)
    assert goal.status == GoalStatus.ACTIVE


def test_cannot_complete_before_target(make_goal):
    goal = make_goal(priority=1, target="100", current="10")

    with pytest.raises(InvalidInputError):
        change_status(goal, GoalStatus.COMPLETED)


def test_cancelled_is_terminal(make_goal):
    goal = make_goal(priority=1, target="100")
    change_status(goal, GoalStatus.CANCELLED)

    with pytest.raises(InvalidInputError):
        change_status(goal, GoalStatus.ACTIVE)


def test_overdue_and_due_soon(make_goal):
    overdue = make_goal(priority=1, target="100", goal_id=1, target_date=NOW - timedelta(days=1))
    soon = make_goal(priority=1, target="100", goal_id=2, target_date=NOW + timedelta(days=5))
    later = make_goal(priority=1, target="100", goal_id=3, target_date=NOW + timedelta(days=90))
    undated = make_goal(priority=1, target="100", goal_id=4)
    paused = make_goal(
        priority=1, target="100", goal_id=5, target_date=NOW - timedelta(days=3), status=GoalStatus.PAUSED
    )
    goals = [later, soon, overdue, undated, paused]

    assert [g.id for g in find_overdue_goals(goals, now=NOW)] == [1]
    assert [g.id for g in find_goals_due_by(goals, NOW + timedelta(days=30))] == [1, 2]


def test_goal_progress_helpers(make_goal):
    goal = make_goal(priority=1, target="200", current="50")

    assert goal.progress_percentage == Decimal("25")
    assert goal.remaining_amount == Decimal("150")

    goal.current_amount = Decimal("250")
    assert goal.remaining_amount == 0


def test_transaction_status_only_moves_forward():
    txn = Transaction(user_id=1, amount=Decimal("10"), transaction_type=TransactionType.EXPENSE,
                      status=TransactionStatus.PENDING)

    txn.complete()
    assert txn.status == TransactionStatus.COMPLETED

    with pytest.raises(InvalidInputError):
        txn.complete()
