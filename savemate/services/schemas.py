"""Pydantic schemas validating service input before it reaches the domain"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from savemate.domain.exceptions import InvalidInputError
from savemate.domain.models import InsufficientBalancePolicy, SavingType
from savemate.utils.money import has_sub_cent_digits, to_decimal

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def parse_positive_amount(value, field: str = "amount") -> Decimal:
    """
    Exact Decimal for a strictly positive monetary input.

    Amounts are stored with two decimal places; anything finer is rejected
    rather than rounded, so calculations run on exactly the stored value.
    """
    try:
        amount = to_decimal(value)
    except TypeError as e:
        raise InvalidInputError(f"Invalid {field}: {e}") from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidInputError(f"{field} must be positive, got {value}")
    if has_sub_cent_digits(amount):
        raise InvalidInputError(f"{field} must have at most two decimal places, got {value}")
    return amount


def validate_input(schema: Type[SchemaT], data) -> SchemaT:
    """Coerce dict/model input into schema, mapping validation failures to InvalidInputError"""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e


class UserCreate(BaseModel):
    """Registration data; unset saving fields fall back to settings defaults"""

    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    username: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone_number: Optional[str] = None
    saving_type: Optional[SavingType] = None
    rounding_multiple: Optional[int] = Field(None, gt=0)
    saving_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    min_safe_balance: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    insufficient_balance_policy: Optional[InsufficientBalancePolicy] = None


class ProfileUpdate(BaseModel):
    """Partial profile update"""

    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    phone_number: Optional[str] = None


class SavingConfigUpdate(BaseModel):
    """Partial update of a user's saving configuration"""

    model_config = ConfigDict(extra="forbid")

    saving_type: Optional[SavingType] = None
    rounding_multiple: Optional[int] = Field(None, gt=0, description="Round-up base, e.g. 1000")
    saving_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2, description="Percent of each expense")
    min_safe_balance: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Per-transaction saving ceiling")
    clear_min_safe_balance: bool = False
    insufficient_balance_policy: Optional[InsufficientBalancePolicy] = None

    @model_validator(mode="after")
    def _ceiling_is_set_or_cleared(self):
        if self.clear_min_safe_balance and self.min_safe_balance is not None:
            raise ValueError("min_safe_balance cannot be set and cleared at once")
        return self


class ExpenseMetadata(BaseModel):
    """Descriptive data attached to an expense"""

    description: str = ""
    merchant_name: Optional[str] = None
    transaction_date: Optional[datetime] = None
    notification_source: Optional[str] = None
    bank_reference: Optional[str] = None


class GoalCreate(BaseModel):
    """New saving goal"""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    target_amount: Decimal = Field(..., gt=0, decimal_places=2)
    current_amount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    target_date: Optional[datetime] = None
    monthly_contribution: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    priority_level: int = Field(1, ge=1, le=10)
    is_collaborative: bool = False
