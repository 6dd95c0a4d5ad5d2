"""Service container factory"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from savemate.config import settings
from savemate.infrastructure.database.session import create_session_factory, init_db
from savemate.infrastructure.observability.logging import setup_logging
from savemate.services.goals import GoalService
from savemate.services.transactions import TransactionProcessor
from savemate.services.users import UserService


@dataclass
class SaveMateServices:
    """Entry points exposed to the request-handling layer"""

    session_factory: sessionmaker
    users: UserService
    transactions: TransactionProcessor
    goals: GoalService


def create_services(
    database_url: Optional[str] = None,
    create_schema: bool = False,
    configure_logging: bool = True,
) -> SaveMateServices:
    """Create and wire services sharing one session factory"""
    if configure_logging:
        setup_logging(settings.log_level)

    session_factory = create_session_factory(database_url)
    if create_schema:
        init_db(session_factory)

    return SaveMateServices(
        session_factory=session_factory,
        users=UserService(session_factory),
        transactions=TransactionProcessor(session_factory),
        goals=GoalService(session_factory),
    )
