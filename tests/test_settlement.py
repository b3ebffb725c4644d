from datetime import datetime
from decimal import Decimal

import pytest

from tripsplit.errors import ErrorKind, LedgerError
from tripsplit.models import Expense, ExpenseSplit
from tripsplit.settlement import (
    change_status,
    compute_member_balances,
    mark_settled,
    recompute_status,
    suggest_settlements,
)


def make_expense(expense_id="e1", amount="900", payer="alice", shares=None, status="pending"):
    shares = shares or [("alice", "300"), ("bob", "300"), ("carol", "300")]
    expense = Expense(
        id=expense_id,
        description="Houseboat",
        amount=Decimal(amount),
        paid_by_id=payer,
        status=status,
        category="accommodation",
        date=datetime(2026, 3, 1),
    )
    expense.splits = [
        ExpenseSplit(user_id=uid, position=i, amount=Decimal(value), share=Decimal("1"), settled=False)
        for i, (uid, value) in enumerate(shares)
    ]
    return expense


def test_settling_one_then_all_participants():
    expense = make_expense()

    mark_settled(expense, "bob", "alice")
    assert expense.status == "partially_settled"
    assert expense.settled_user_ids == ["bob"]

    mark_settled(expense, "carol", "alice")
    assert expense.status == "settled"
    assert expense.settled_user_ids == ["bob", "carol"]


def test_settling_twice_fails_and_leaves_split_untouched():
    expense = make_expense()
    stamp = datetime(2026, 3, 2, 9, 30)
    mark_settled(expense, "bob", "alice", now=stamp)

    with pytest.raises(LedgerError) as exc:
        mark_settled(expense, "bob", "alice")

    assert exc.value.kind == ErrorKind.VALIDATION
    assert exc.value.message == "Payment already settled"
    assert expense.split_for("bob").settled_at == stamp
    assert expense.settled_user_ids == ["bob"]


def test_only_payer_can_mark_settled():
    expense = make_expense()
    with pytest.raises(LedgerError) as exc:
        mark_settled(expense, "carol", "bob")
    assert exc.value.kind == ErrorKind.FORBIDDEN
    assert expense.settled_user_ids == []


def test_settling_someone_outside_the_split():
    expense = make_expense()
    with pytest.raises(LedgerError, match="not part of this expense split"):
        mark_settled(expense, "mallory", "alice")


def test_payer_cannot_settle_own_share():
    expense = make_expense()
    with pytest.raises(LedgerError) as exc:
        mark_settled(expense, "alice", "alice")
    assert exc.value.kind == ErrorKind.VALIDATION


def test_cancelled_expense_cannot_be_settled():
    expense = make_expense(status="cancelled")
    with pytest.raises(LedgerError, match="cancelled"):
        mark_settled(expense, "bob", "alice")


def test_payer_appended_at_zero_does_not_block_full_settlement():
    expense = make_expense(amount="600", shares=[("bob", "300"), ("carol", "300"), ("alice", "0")])
    mark_settled(expense, "bob", "alice")
    mark_settled(expense, "carol", "alice")
    assert recompute_status(expense) == "settled"


def test_change_status_to_settled_marks_every_debtor():
    expense = make_expense()
    change_status(expense, "settled")
    assert expense.status == "settled"
    assert expense.settled_user_ids == ["bob", "carol"]


def test_change_status_to_pending_clears_settlements():
    expense = make_expense()
    mark_settled(expense, "bob", "alice")
    change_status(expense, "pending")
    assert expense.status == "pending"
    assert expense.settled_user_ids == []
    assert expense.split_for("bob").settled_at is None


def test_settled_expense_cannot_be_cancelled():
    expense = make_expense()
    change_status(expense, "settled")
    with pytest.raises(LedgerError, match="cannot be cancelled"):
        change_status(expense, "cancelled")
    assert expense.status == "settled"


def test_partially_settled_must_match_recorded_settlements():
    expense = make_expense()
    with pytest.raises(LedgerError, match="does not match"):
        change_status(expense, "partially_settled")

    mark_settled(expense, "bob", "alice")
    change_status(expense, "partially_settled")
    assert expense.status == "partially_settled"


def test_invalid_status_is_rejected():
    with pytest.raises(LedgerError, match="Invalid status"):
        change_status(make_expense(), "refunded")


def test_member_balances():
    expense = make_expense()
    mark_settled(expense, "bob", "alice")

    balances = compute_member_balances(["alice", "bob", "carol"], [expense])

    alice = balances["alice"]
    assert alice["totalPaid"] == Decimal("900")
    assert alice["totalOwed"] == 0
    assert alice["netBalance"] == Decimal("900")
    assert alice["totalReceived"] == Decimal("300")
    assert alice["outstandingBalance"] == Decimal("300")
    assert alice["expensesPaid"] == 1

    bob = balances["bob"]
    assert bob["totalOwed"] == Decimal("300")
    assert bob["netBalance"] == Decimal("-300")
    assert bob["totalSettled"] == Decimal("300")
    assert bob["outstandingBalance"] == 0
    assert bob["pendingPayments"] == []

    carol = balances["carol"]
    assert carol["outstandingBalance"] == Decimal("-300")
    assert [p["expenseId"] for p in carol["pendingPayments"]] == ["e1"]
    assert carol["pendingPayments"][0]["paidTo"] == "alice"

    assert sum(b["outstandingBalance"] for b in balances.values()) == 0


def test_cancelled_expenses_do_not_count_towards_balances():
    live = make_expense()
    cancelled = make_expense(expense_id="e2", payer="bob", status="cancelled")

    balances = compute_member_balances(["alice", "bob", "carol"], [live, cancelled])

    assert balances["bob"]["totalPaid"] == 0
    assert balances["alice"]["totalOwed"] == 0


def test_balances_are_recomputed_from_current_expense_set():
    first = make_expense()
    second = make_expense(expense_id="e2", payer="bob")

    before = compute_member_balances(["alice", "bob", "carol"], [first, second])
    after = compute_member_balances(["alice", "bob", "carol"], [first])

    assert before["bob"]["totalPaid"] == Decimal("900")
    assert after["bob"]["totalPaid"] == 0


def test_settlement_suggestions_clear_outstanding_balances():
    dinner = make_expense()
    taxi = make_expense(expense_id="e2", amount="300", payer="bob",
                        shares=[("alice", "100"), ("bob", "100"), ("carol", "100")])
    balances = compute_member_balances(["alice", "bob", "carol"], [dinner, taxi])

    transfers = suggest_settlements(balances)

    net = {uid: entry["outstandingBalance"] for uid, entry in balances.items()}
    for t in transfers:
        net[t["from"]] += t["amount"]
        net[t["to"]] -= t["amount"]
    assert all(value == 0 for value in net.values())
    assert {"from": "carol", "to": "alice", "amount": Decimal("400.00")} in transfers


def test_no_suggestions_once_everything_is_settled():
    expense = make_expense()
    change_status(expense, "settled")
    balances = compute_member_balances(["alice", "bob", "carol"], [expense])
    assert suggest_settlements(balances) == []


def test_cancelled_expense_stays_cancelled():
    expense = make_expense()
    change_status(expense, "cancelled")

    for status in ("pending", "partially_settled", "settled"):
        with pytest.raises(LedgerError, match="cannot be reopened"):
            change_status(expense, status)

    assert expense.status == "cancelled"
    assert expense.settled_user_ids == []

    change_status(expense, "cancelled")
    assert expense.status == "cancelled"
