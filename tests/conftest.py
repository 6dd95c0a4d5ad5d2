"""Pytest fixtures for testing"""

import pytest
from decimal import Decimal
from typing import Callable, Generator

from sqlalchemy.orm import sessionmaker

from savemate.app import SaveMateServices, create_services
from savemate.domain.models import GoalStatus, InsufficientBalancePolicy, SavingGoal, SavingType, User
from savemate.infrastructure.database.models import Base


@pytest.fixture
def services(tmp_path) -> Generator[SaveMateServices, None, None]:
    """Services over a fresh file-backed SQLite database"""
    services = create_services(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        create_schema=True,
        configure_logging=False,
    )
    try:
        yield services
    finally:
        engine = services.session_factory.kw["bind"]
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(services: SaveMateServices) -> sessionmaker:
    return services.session_factory


@pytest.fixture
def make_user(services: SaveMateServices) -> Callable[..., User]:
    """Register a user; keyword arguments override the saving configuration"""
    counter = {"n": 0}

    def _make_user(**overrides) -> User:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "email": f"user{n}@example.com",
            "username": f"user{n}",
            "first_name": "Ana",
            "last_name": "Rojas",
            "saving_type": SavingType.ROUND_UP,
            "rounding_multiple": 1000,
        }
        data.update(overrides)
        return services.users.create_user(data)

    return _make_user


@pytest.fixture
def round_up_user(make_user) -> User:
    """Round-up to 1000, no safe-balance ceiling"""
    return make_user()


@pytest.fixture
def capped_user(make_user) -> User:
    """Round-up to 1000 with a 500 ceiling capped by policy"""
    return make_user(
        min_safe_balance=Decimal("500"),
        insufficient_balance_policy=InsufficientBalancePolicy.CAP_AT_SAFE_BALANCE,
    )


def goal(priority: int, target: str, current: str = "0", goal_id: int | None = None, **kwargs) -> SavingGoal:
    """In-memory goal for pure domain tests"""
    return SavingGoal(
        id=goal_id,
        user_id=1,
        name=f"goal-{goal_id or priority}",
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        priority_level=priority,
        status=kwargs.pop("status", GoalStatus.ACTIVE),
        **kwargs,
    )


@pytest.fixture
def make_goal() -> Callable[..., SavingGoal]:
    return goal
