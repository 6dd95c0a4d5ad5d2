"""Saving goal operations: creation, progress, lifecycle and savings distribution"""

import logging
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from savemate.config import settings
from savemate.domain import goals as goal_rules
from savemate.domain.allocation import distribute_savings
from savemate.domain.exceptions import InvalidInputError, NotFoundError
from savemate.domain.models import AllocationResult, GoalStatus, GoalSummary, SavingGoal
from savemate.infrastructure.database.repositories import GoalRepository, UserRepository
from savemate.infrastructure.database.session import transactional
from savemate.infrastructure.observability.logging import log_allocation
from savemate.infrastructure.observability.metrics import goal_completed_counter, record_allocation
from savemate.services.schemas import GoalCreate, parse_positive_amount, validate_input
from savemate.utils.date_utils import days_from_now, utc_now


def allocate_to_active_goals(db: Session, user_id: int, total_amount: Decimal) -> AllocationResult:
    """
    Run the distributor over the user's active goals inside an open session.

    Only goals that received money are written back; each write is a
    version-checked compare-and-swap, so a concurrent change to any of them
    aborts the whole unit of work with ConcurrencyConflictError.
    """
    repo = GoalRepository(db)
    active_goals = repo.find_active_goals(user_id)
    result = distribute_savings(total_amount, active_goals)

    touched = {a.goal_id for a in result.allocations}
    for goal in active_goals:
        if goal.id in touched:
            repo.save_goal(goal)
    return result


def report_allocation(user_id: int, result: AllocationResult) -> None:
    """Emit metrics and the structured log line for a committed distribution"""
    completed = sum(1 for a in result.allocations if a.completed)
    record_allocation(len(result.allocations), completed, result.unallocated)
    log_allocation(user_id, result.total_amount, result.allocated, result.unallocated, len(result.allocations))
    if result.unallocated > 0:
        logging.info(
            f"{result.unallocated} left unallocated for user {user_id}",
            extra={"user_id": user_id, "step": "goal_allocation"},
        )


class GoalService:
    """Goal operations, each run as one database transaction"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _require_goal(self, repo: GoalRepository, goal_id: int) -> SavingGoal:
        goal = repo.find_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Goal {goal_id} not found")
        return goal

    def _require_user(self, db: Session, user_id: int) -> None:
        if UserRepository(db).find_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

    def create_goal(self, user_id: int, data: GoalCreate | dict) -> SavingGoal:
        data = validate_input(GoalCreate, data)

        def operation(db: Session) -> SavingGoal:
            self._require_user(db, user_id)
            goal = SavingGoal(
                user_id=user_id,
                name=data.name,
                description=data.description,
                target_amount=data.target_amount,
                current_amount=data.current_amount,
                target_date=data.target_date,
                monthly_contribution=data.monthly_contribution,
                priority_level=data.priority_level,
                is_collaborative=data.is_collaborative,
            )
            # A goal funded at creation is already complete
            goal_rules.check_and_complete_goals([goal])
            return GoalRepository(db).create_goal(goal)

        goal = transactional(self.session_factory, operation)
        logging.info(f"Saving goal created: {goal.name}", extra={"user_id": user_id, "goal_id": goal.id})
        return goal

    def get_goal(self, goal_id: int) -> SavingGoal:
        return transactional(self.session_factory, lambda db: self._require_goal(GoalRepository(db), goal_id))

    def list_goals(self, user_id: int) -> List[SavingGoal]:
        """All goals, highest priority first"""
        def operation(db: Session) -> List[SavingGoal]:
            self._require_user(db, user_id)
            return GoalRepository(db).find_goals(user_id)

        return transactional(self.session_factory, operation)

    def list_active_goals(self, user_id: int) -> List[SavingGoal]:
        def operation(db: Session) -> List[SavingGoal]:
            self._require_user(db, user_id)
            return GoalRepository(db).find_active_goals(user_id)

        return transactional(self.session_factory, operation)

    def list_high_priority_goals(self, user_id: int, min_priority: Optional[int] = None) -> List[SavingGoal]:
        threshold = settings.high_priority_threshold if min_priority is None else min_priority
        return [g for g in self.list_active_goals(user_id) if g.priority_level >= threshold]

    def list_goals_due_soon(self, user_id: int, days_ahead: Optional[int] = None) -> List[SavingGoal]:
        days = settings.goals_due_soon_days if days_ahead is None else days_ahead
        return goal_rules.find_goals_due_by(self.list_active_goals(user_id), days_from_now(days))

    def find_overdue_goals(self, user_id: int) -> List[SavingGoal]:
        overdue = goal_rules.find_overdue_goals(self.list_active_goals(user_id))
        for goal in overdue:
            logging.info(f"Overdue goal: {goal.name}", extra={"user_id": user_id, "goal_id": goal.id})
        return overdue

    def summarize_goals(self, user_id: int) -> GoalSummary:
        def operation(db: Session) -> GoalSummary:
            self._require_user(db, user_id)
            repo = GoalRepository(db)
            counts = repo.count_by_status(user_id)
            return GoalSummary(
                active_count=counts.get(GoalStatus.ACTIVE, 0),
                completed_count=counts.get(GoalStatus.COMPLETED, 0),
                total_current_savings=repo.sum_current_savings(user_id),
            )

        return transactional(self.session_factory, operation)

    def distribute_savings(self, user_id: int, total_amount: Any) -> AllocationResult:
        """
        Spread total_amount over the user's active goals.

        With no active goals nothing happens and the whole amount is reported
        as unallocated; it stays in the user's general savings.
        """
        total_amount = parse_positive_amount(total_amount, "total_amount")

        def operation(db: Session) -> AllocationResult:
            self._require_user(db, user_id)
            return allocate_to_active_goals(db, user_id, total_amount)

        result = transactional(self.session_factory, operation)
        report_allocation(user_id, result)
        return result

    def check_and_complete_goals(self, user_id: int) -> List[SavingGoal]:
        """Idempotent sweep completing every goal that has reached its target"""
        def operation(db: Session) -> List[SavingGoal]:
            self._require_user(db, user_id)
            repo = GoalRepository(db)
            completed = goal_rules.check_and_complete_goals(repo.find_goals(user_id))
            for goal in completed:
                repo.save_goal(goal)
            return completed

        completed = transactional(self.session_factory, operation)
        if completed:
            goal_completed_counter.labels(source="sweep").inc(len(completed))
        return completed

    def update_goal_progress(self, goal_id: int, additional_amount: Any) -> SavingGoal:
        additional_amount = parse_positive_amount(additional_amount, "additional_amount")

        def operation(db: Session):
            repo = GoalRepository(db)
            goal = self._require_goal(repo, goal_id)
            completed = goal_rules.add_progress(goal, additional_amount)
            return repo.save_goal(goal), completed

        goal, completed = transactional(self.session_factory, operation)
        if completed:
            goal_completed_counter.labels(source="progress").inc()
            logging.info(f"Saving goal completed: {goal.name}", extra={"goal_id": goal.id})
        return goal

    def update_goal_status(self, goal_id: int, status: GoalStatus | str) -> SavingGoal:
        try:
            status = GoalStatus(status)
        except ValueError as e:
            raise InvalidInputError(f"Unknown goal status: {status!r}") from e

        def operation(db: Session):
            repo = GoalRepository(db)
            goal = self._require_goal(repo, goal_id)
            previous = goal.status
            goal_rules.change_status(goal, status, now=utc_now())
            return repo.save_goal(goal), previous

        goal, previous = transactional(self.session_factory, operation)
        if goal.status == GoalStatus.COMPLETED and previous != GoalStatus.COMPLETED:
            goal_completed_counter.labels(source="manual").inc()
        logging.info(
            f"Goal status changed: {previous.value} -> {goal.status.value}",
            extra={"goal_id": goal.id, "user_id": goal.user_id},
        )
        return goal
