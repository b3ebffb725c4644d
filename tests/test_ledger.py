from decimal import Decimal

import pytest

from tripsplit import ledger
from tripsplit.errors import LedgerError
from tripsplit.models import Expense, Group, User
from tripsplit.splits import calculate_split


@pytest.fixture
def trip(db):
    payer = User(ctk="meera", name="Meera")
    friend = User(ctk="arjun", name="Arjun")
    db.add_all([payer, friend])
    db.flush()
    group = Group(name="Hampi", creator_id=payer.id, max_members=4, currency="INR", total_expenses=0)
    db.add(group)
    db.commit()
    return group, payer, friend


def add(db, group, payer, friend, amount):
    return ledger.create_expense(
        db,
        group,
        description="Scooter rental",
        amount=Decimal(amount),
        shares=calculate_split(amount, "equal", [payer.id, friend.id]),
        paid_by_id=payer.id,
        added_by_id=payer.id,
        split_method="equal",
    )


def test_create_and_delete_move_the_group_total_by_the_amount(db, trip):
    group, payer, friend = trip
    first = add(db, group, payer, friend, "900")
    add(db, group, payer, friend, "120.40")
    assert db.get(Group, group.id).total_expenses == Decimal("1020.40")

    assert ledger.delete_expense(db, first) == Decimal("900.00")
    assert db.get(Group, group.id).total_expenses == Decimal("120.40")


def test_delete_floors_a_drifted_total_at_zero(db, trip):
    group, payer, friend = trip
    expense = add(db, group, payer, friend, "900")

    # Counter drifted below what the expense contributed
    group.total_expenses = Decimal("250.00")
    db.commit()

    ledger.delete_expense(db, expense)

    total = db.get(Group, group.id).total_expenses
    assert total == Decimal("0")
    assert total >= 0
    assert db.query(Expense).count() == 0


def test_amount_edit_adjusts_total_by_the_difference(db, trip):
    group, payer, friend = trip
    expense = add(db, group, payer, friend, "900")

    ledger.update_expense(db, expense, {"amount": Decimal("1000")})

    assert db.get(Group, group.id).total_expenses == Decimal("1000.00")
    assert [s.amount for s in expense.splits] == [Decimal("500.00"), Decimal("500.00")]


def test_get_expense_raises_not_found(db, trip):
    with pytest.raises(LedgerError, match="Expense not found"):
        ledger.get_expense(db, "nope")
