"""Integration tests for the transaction processor against SQLite"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from prometheus_client import REGISTRY

from savemate.app import SaveMateServices
from savemate.domain.exceptions import InsufficientFundsError, InvalidInputError, NotFoundError
from savemate.domain.models import InsufficientBalancePolicy, SavingType, TransactionStatus, TransactionType
from savemate.infrastructure.database.repositories import TransactionRepository, UserRepository


pytestmark = pytest.mark.integration


def total_saved(services: SaveMateServices, user_id: int) -> Decimal:
    return services.users.get_user(user_id).total_saved


def test_record_expense_round_up(services, round_up_user):
    """15200 with a 1000 multiple saves 800 and updates the total"""
    txn = services.transactions.record_expense(
        round_up_user.id,
        Decimal("15200"),
        {"description": "Groceries", "merchant_name": "Supermarket", "bank_reference": "REF-1"},
    )

    assert txn.id is not None
    assert txn.transaction_type == TransactionType.EXPENSE
    assert txn.status == TransactionStatus.COMPLETED
    assert txn.original_amount == Decimal("15200")
    assert txn.rounded_amount == Decimal("16000")
    assert txn.saving_amount == Decimal("800")
    assert txn.rounded_amount == txn.original_amount + txn.saving_amount
    assert txn.merchant_name == "Supermarket"
    assert total_saved(services, round_up_user.id) == Decimal("800")


def test_record_expense_percentage(services, make_user):
    user = make_user(saving_type=SavingType.PERCENTAGE, saving_percentage=Decimal("5.0"))

    txn = services.transactions.record_expense(user.id, Decimal("20000"))

    assert txn.saving_amount == Decimal("1000")
    assert txn.rounded_amount is None
    assert total_saved(services, user.id) == Decimal("1000")


def test_record_expense_capped_keeps_rounded_consistent(services, capped_user):
    """Policy caps 800 to 300; rounded amount follows the adjusted saving"""
    txn = services.transactions.record_expense(capped_user.id, Decimal("15200"))

    assert txn.saving_amount == Decimal("300")
    assert txn.rounded_amount == Decimal("15500")
    assert txn.rounded_amount == txn.original_amount + txn.saving_amount
    assert total_saved(services, capped_user.id) == Decimal("300")


def test_record_expense_skip_saving(services, make_user):
    user = make_user(min_safe_balance=Decimal("500"), insufficient_balance_policy=InsufficientBalancePolicy.SKIP_SAVING)
    before = REGISTRY.get_sample_value("savemate_policy_adjustments_total", {"policy": "SKIP_SAVING"}) or 0

    txn = services.transactions.record_expense(user.id, Decimal("15200"))

    assert txn.saving_amount == 0
    assert txn.status == TransactionStatus.COMPLETED
    assert total_saved(services, user.id) == 0
    after = REGISTRY.get_sample_value("savemate_policy_adjustments_total", {"policy": "SKIP_SAVING"})
    assert after == before + 1


def test_deferred_saving_is_realized_oldest_first(services, make_user):
    user = make_user(
        min_safe_balance=Decimal("500"),
        insufficient_balance_policy=InsufficientBalancePolicy.DEFER_AS_PENDING,
    )
    first = services.transactions.record_expense(user.id, Decimal("15200"))  # saves 800, deferred
    second = services.transactions.record_expense(user.id, Decimal("4100"))  # saves 900, deferred
    safe = services.transactions.record_expense(user.id, Decimal("4700"))  # saves 300, safe

    assert first.status == TransactionStatus.PENDING
    assert second.status == TransactionStatus.PENDING
    assert safe.status == TransactionStatus.COMPLETED
    assert total_saved(services, user.id) == Decimal("300")

    realized = services.transactions.realize_pending_transactions(user.id)

    assert [t.id for t in realized] == [first.id, second.id]
    assert all(t.status == TransactionStatus.COMPLETED for t in realized)
    assert total_saved(services, user.id) == Decimal("2000")

    # Nothing left to settle
    assert services.transactions.realize_pending_transactions(user.id) == []
    assert total_saved(services, user.id) == Decimal("2000")


def test_record_income_is_saved_in_full(services, round_up_user):
    txn = services.transactions.record_income(round_up_user.id, Decimal("2500.50"))

    assert txn.transaction_type == TransactionType.INCOME
    assert txn.saving_amount == Decimal("2500.50")
    assert total_saved(services, round_up_user.id) == Decimal("2500.50")


def test_withdrawal_reduces_total(services, round_up_user):
    services.transactions.record_income(round_up_user.id, Decimal("1000"))

    txn = services.transactions.record_withdrawal(round_up_user.id, Decimal("400"))

    assert txn.transaction_type == TransactionType.WITHDRAWAL
    assert txn.status == TransactionStatus.COMPLETED
    assert total_saved(services, round_up_user.id) == Decimal("600")


def test_withdrawal_of_entire_balance_allowed(services, round_up_user):
    services.transactions.record_income(round_up_user.id, Decimal("300"))

    services.transactions.record_withdrawal(round_up_user.id, Decimal("300"))

    assert total_saved(services, round_up_user.id) == 0


def test_withdrawal_exceeding_balance_fails_without_writes(services, round_up_user):
    """Withdrawing 500 from 300 fails and leaves total and history untouched"""
    services.transactions.record_income(round_up_user.id, Decimal("300"))
    before = REGISTRY.get_sample_value("savemate_withdrawals_rejected_total") or 0

    with pytest.raises(InsufficientFundsError) as exc_info:
        services.transactions.record_withdrawal(round_up_user.id, Decimal("500"))

    assert exc_info.value.available == Decimal("300")
    assert total_saved(services, round_up_user.id) == Decimal("300")
    assert services.transactions.list_transactions(round_up_user.id, TransactionType.WITHDRAWAL) == []
    assert REGISTRY.get_sample_value("savemate_withdrawals_rejected_total") == before + 1


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "abc", None])
def test_invalid_amounts_rejected(services, round_up_user, amount):
    with pytest.raises(InvalidInputError):
        services.transactions.record_expense(round_up_user.id, amount)
    with pytest.raises(InvalidInputError):
        services.transactions.record_income(round_up_user.id, amount)
    with pytest.raises(InvalidInputError):
        services.transactions.record_withdrawal(round_up_user.id, amount)

    assert services.transactions.list_transactions(round_up_user.id) == []


def test_sub_cent_expense_rejected(services, make_user):
    """10.045 cannot be stored exactly, so it never reaches the calculator"""
    user = make_user(rounding_multiple=1)

    with pytest.raises(InvalidInputError):
        services.transactions.record_expense(user.id, Decimal("10.045"))

    assert services.transactions.list_transactions(user.id) == []
    assert total_saved(services, user.id) == 0


def test_cent_expenses_keep_rounded_consistent(services, make_user):
    user = make_user(rounding_multiple=1)

    for cents in range(1001, 1020):
        txn = services.transactions.record_expense(user.id, Decimal(cents) / 100)
        assert txn.rounded_amount == Decimal("11")
        assert txn.rounded_amount == txn.original_amount + txn.saving_amount


def test_sub_cent_withdrawal_rejected(services, round_up_user):
    services.transactions.record_income(round_up_user.id, Decimal("1.00"))

    with pytest.raises(InvalidInputError):
        services.transactions.record_withdrawal(round_up_user.id, Decimal("0.004"))

    assert total_saved(services, round_up_user.id) == Decimal("1.00")
    assert services.transactions.list_transactions(round_up_user.id, TransactionType.WITHDRAWAL) == []


def test_trailing_zeros_are_accepted(services, round_up_user):
    txn = services.transactions.record_income(round_up_user.id, Decimal("12.500"))

    assert txn.amount == Decimal("12.50")


def test_unknown_user(services):
    with pytest.raises(NotFoundError):
        services.transactions.record_expense(9999, Decimal("100"))
    with pytest.raises(NotFoundError):
        services.transactions.record_income(9999, Decimal("100"))
    with pytest.raises(NotFoundError):
        services.transactions.realize_pending_transactions(9999)


def test_failure_after_insert_rolls_back_transaction_row(services, round_up_user, monkeypatch):
    """Transaction row and total update commit together or not at all"""
    def boom(self, user_id, delta):
        raise RuntimeError("storage failure")

    monkeypatch.setattr(UserRepository, "increment_total_saved", boom)

    with pytest.raises(RuntimeError):
        services.transactions.record_expense(round_up_user.id, Decimal("15200"))

    monkeypatch.undo()
    assert services.transactions.list_transactions(round_up_user.id) == []
    assert total_saved(services, round_up_user.id) == 0


def test_manual_deposit_with_goal_allocation(services, round_up_user):
    low = services.goals.create_goal(round_up_user.id, {"name": "Trip", "target_amount": "10000", "priority_level": 1})
    high = services.goals.create_goal(round_up_user.id, {"name": "Laptop", "target_amount": "10000", "priority_level": 3})

    txn = services.transactions.record_saving_deposit(round_up_user.id, Decimal("100"), allocate_to_goals=True)

    assert txn.transaction_type == TransactionType.SAVING
    assert txn.description == "Manual deposit"
    assert total_saved(services, round_up_user.id) == Decimal("100")
    assert services.goals.get_goal(high.id).current_amount == Decimal("80")
    assert services.goals.get_goal(low.id).current_amount == Decimal("20")


def test_manual_deposit_without_allocation_leaves_goals(services, round_up_user):
    goal = services.goals.create_goal(round_up_user.id, {"name": "Trip", "target_amount": "10000"})

    services.transactions.record_saving_deposit(round_up_user.id, Decimal("100"), description="Cash")

    assert services.goals.get_goal(goal.id).current_amount == 0
    assert total_saved(services, round_up_user.id) == Decimal("100")


def test_transaction_queries(services, round_up_user):
    now = datetime.now(timezone.utc)
    old = services.transactions.record_expense(
        round_up_user.id, Decimal("4200"), {"transaction_date": now - timedelta(days=40)}
    )
    recent = services.transactions.record_expense(
        round_up_user.id, Decimal("15200"), {"transaction_date": now - timedelta(days=1)}
    )
    income = services.transactions.record_income(round_up_user.id, Decimal("1000"))

    assert services.transactions.get_transaction(old.id).amount == Decimal("4200")
    with pytest.raises(NotFoundError):
        services.transactions.get_transaction(9999)

    everything = services.transactions.list_transactions(round_up_user.id)
    assert [t.id for t in everything] == [income.id, recent.id, old.id]

    expenses = services.transactions.list_transactions(round_up_user.id, TransactionType.EXPENSE)
    assert {t.id for t in expenses} == {old.id, recent.id}

    window_start, window_end = now - timedelta(days=7), now + timedelta(minutes=5)
    in_window = services.transactions.list_transactions_between(round_up_user.id, window_start, window_end)
    assert {t.id for t in in_window} == {recent.id, income.id}

    assert services.transactions.total_expenses(round_up_user.id, window_start, window_end) == Decimal("15200")
    # 800 from the recent expense + 1000 income
    assert services.transactions.total_savings(round_up_user.id, window_start, window_end) == Decimal("1800")


def test_rounded_equals_original_plus_saving_for_all_expenses(services, session_factory, capped_user, make_user):
    pct_user = make_user(saving_type=SavingType.PERCENTAGE, saving_percentage=Decimal("12.5"))
    for amount in ["0.99", "1234.56", "15200", "999999.99"]:
        services.transactions.record_expense(capped_user.id, Decimal(amount))
        services.transactions.record_expense(pct_user.id, Decimal(amount))

    with session_factory() as db:
        repo = TransactionRepository(db)
        for txn in repo.find_by_user(capped_user.id) + repo.find_by_user(pct_user.id):
            assert txn.saving_amount >= 0
            if txn.rounded_amount is not None and txn.original_amount is not None:
                assert txn.rounded_amount == txn.original_amount + txn.saving_amount
