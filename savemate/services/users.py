"""User registration and saving configuration"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from savemate.config import settings
from savemate.domain.exceptions import InvalidInputError, NotFoundError
from savemate.domain.models import (
    InsufficientBalancePolicy,
    Percentage,
    RoundUp,
    SavingStrategy,
    SavingType,
    User,
)
from savemate.infrastructure.database.repositories import UserRepository
from savemate.infrastructure.database.session import transactional
from savemate.services.schemas import ProfileUpdate, SavingConfigUpdate, UserCreate, validate_input
from savemate.utils.money import to_decimal


def _default_min_safe_balance() -> Optional[Decimal]:
    if settings.default_min_safe_balance is None:
        return None
    return to_decimal(settings.default_min_safe_balance)


def resolve_strategy(
    current: Optional[SavingStrategy],
    saving_type: Optional[SavingType],
    rounding_multiple: Optional[int],
    saving_percentage: Optional[Decimal],
) -> Optional[SavingStrategy]:
    """
    Merge a partial saving configuration into the current strategy.

    Switching type without the matching parameter keeps the current value when
    the type is unchanged, otherwise falls back to the configured default.
    """
    if saving_type is None:
        if isinstance(current, RoundUp):
            saving_type = SavingType.ROUND_UP
        elif isinstance(current, Percentage):
            saving_type = SavingType.PERCENTAGE
        elif rounding_multiple is not None:
            saving_type = SavingType.ROUND_UP
        elif saving_percentage is not None:
            saving_type = SavingType.PERCENTAGE
        else:
            return None

    if saving_type == SavingType.ROUND_UP:
        if rounding_multiple is None:
            rounding_multiple = current.multiple if isinstance(current, RoundUp) else settings.default_rounding_multiple
        return RoundUp(multiple=rounding_multiple)

    if saving_percentage is None:
        saving_percentage = (
            current.rate if isinstance(current, Percentage) else to_decimal(settings.default_saving_percentage)
        )
    return Percentage(rate=saving_percentage)


class UserService:
    """User operations, each run as one database transaction"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _require_user(self, repo: UserRepository, user_id: int) -> User:
        user = repo.find_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def create_user(self, data: UserCreate | dict) -> User:
        data = validate_input(UserCreate, data)

        def operation(db: Session) -> User:
            repo = UserRepository(db)
            if repo.find_by_email(data.email) is not None:
                raise InvalidInputError(f"Email already registered: {data.email}")
            if repo.username_taken(data.username):
                raise InvalidInputError(f"Username already taken: {data.username}")

            user = User(
                email=data.email,
                username=data.username,
                first_name=data.first_name,
                last_name=data.last_name,
                phone_number=data.phone_number,
                saving_strategy=resolve_strategy(
                    None,
                    data.saving_type or SavingType(settings.default_saving_type),
                    data.rounding_multiple,
                    data.saving_percentage,
                ),
                min_safe_balance=(
                    data.min_safe_balance if data.min_safe_balance is not None else _default_min_safe_balance()
                ),
                insufficient_balance_policy=(
                    data.insufficient_balance_policy
                    or InsufficientBalancePolicy(settings.default_insufficient_balance_policy)
                ),
                monthly_fee_rate=to_decimal(settings.default_monthly_fee_rate),
            )
            return repo.save_user(user)

        user = transactional(self.session_factory, operation)
        logging.info("User created", extra={"user_id": user.id, "step": "user_created"})
        return user

    def get_user(self, user_id: int) -> User:
        return transactional(self.session_factory, lambda db: self._require_user(UserRepository(db), user_id))

    def update_profile(self, user_id: int, data: ProfileUpdate | dict) -> User:
        data = validate_input(ProfileUpdate, data)

        def operation(db: Session) -> User:
            repo = UserRepository(db)
            user = self._require_user(repo, user_id)
            if data.first_name is not None:
                user.first_name = data.first_name
            if data.last_name is not None:
                user.last_name = data.last_name
            if data.phone_number is not None:
                user.phone_number = data.phone_number
            return repo.save_user(user)

        return transactional(self.session_factory, operation)

    def link_bank_account(self, user_id: int, bank_account: str, bank_name: str) -> User:
        if not bank_account or not bank_name:
            raise InvalidInputError("Bank account and bank name are required")

        def operation(db: Session) -> User:
            repo = UserRepository(db)
            user = self._require_user(repo, user_id)
            user.bank_account = bank_account
            user.bank_name = bank_name
            return repo.save_user(user)

        user = transactional(self.session_factory, operation)
        logging.info("Bank account linked", extra={"user_id": user_id})
        return user

    def update_saving_configuration(self, user_id: int, data: SavingConfigUpdate | dict) -> User:
        """
        Change strategy, safe-balance ceiling and insufficient-balance policy.

        total_saved cannot be set through configuration.
        """
        data = validate_input(SavingConfigUpdate, data)

        def operation(db: Session) -> User:
            repo = UserRepository(db)
            user = self._require_user(repo, user_id)
            user.saving_strategy = resolve_strategy(
                user.saving_strategy, data.saving_type, data.rounding_multiple, data.saving_percentage
            )
            if data.clear_min_safe_balance:
                user.min_safe_balance = None
            elif data.min_safe_balance is not None:
                user.min_safe_balance = data.min_safe_balance
            if data.insufficient_balance_policy is not None:
                user.insufficient_balance_policy = data.insufficient_balance_policy
            return repo.save_user(user)

        user = transactional(self.session_factory, operation)
        logging.info(
            "Saving configuration updated",
            extra={
                "user_id": user_id,
                "strategy": type(user.saving_strategy).__name__ if user.saving_strategy else None,
                "policy": user.insufficient_balance_policy.value,
            },
        )
        return user
