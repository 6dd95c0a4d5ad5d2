"""SQLAlchemy ORM models for users, transactions and saving goals"""

from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Numeric, Text, Index
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# Money columns: fixed-point, two decimal places
Money = Numeric(14, 2, asdecimal=True)


class UserRecord(Base):
    """Registered user with saving configuration and running total"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    username = Column(String(100), nullable=False, unique=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    phone_number = Column(Text, nullable=True)
    bank_account = Column(Text, nullable=True)
    bank_name = Column(Text, nullable=True)

    saving_type = Column(String(20), nullable=True)  # ROUND_UP | PERCENTAGE | NULL
    rounding_multiple = Column(Integer, nullable=True)
    saving_percentage = Column(Numeric(5, 2, asdecimal=True), nullable=True)
    min_safe_balance = Column(Money, nullable=True)
    insufficient_balance_policy = Column(String(30), nullable=False, default="SKIP_SAVING")
    total_saved = Column(Money, nullable=False, default=0)
    monthly_fee_rate = Column(Numeric(5, 2, asdecimal=True), nullable=False, default=2.5)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    transactions = relationship("TransactionRecord", back_populates="user")
    goals = relationship("SavingGoalRecord", back_populates="user")


class TransactionRecord(Base):
    """Financial event with its saving breakdown"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    description = Column(Text, nullable=False, default="")
    merchant_name = Column(Text, nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=True)
    transaction_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="COMPLETED")
    original_amount = Column(Money, nullable=True)
    rounded_amount = Column(Money, nullable=True)
    saving_amount = Column(Money, nullable=True)
    notification_source = Column(Text, nullable=True)
    bank_reference = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("UserRecord", back_populates="transactions")

    __table_args__ = (Index("ix_transactions_user_status", "user_id", "status"),)


class SavingGoalRecord(Base):
    """Savings target; version guards current_amount against lost updates"""

    __tablename__ = "saving_goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    target_amount = Column(Money, nullable=False)
    current_amount = Column(Money, nullable=False, default=0)
    target_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE")
    monthly_contribution = Column(Money, nullable=True)
    priority_level = Column(Integer, nullable=False, default=1)
    is_collaborative = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("UserRecord", back_populates="goals")
