"""Settlement tracking and balance computation for group expenses.

Everything here works on loaded ORM objects and never touches the session,
so balances are always a fresh projection of the expense rows.
"""

from datetime import datetime
from decimal import Decimal

from tripsplit.errors import forbidden, validation_error
from tripsplit.models import EXPENSE_STATUSES, Expense, ExpenseSplit
from tripsplit.splits import ZERO, from_cents, to_cents

# Statuses an expense may be cancelled from
CANCELLABLE = ("pending", "partially_settled")


def debtor_splits(expense: Expense) -> list[ExpenseSplit]:
    """Split rows of everyone except the payer."""
    return [s for s in expense.splits if s.user_id != expense.paid_by_id]


def recompute_status(expense: Expense) -> str:
    debtors = debtor_splits(expense)
    if all(s.settled for s in debtors):
        return "settled"
    if any(s.settled for s in debtors):
        return "partially_settled"
    return "pending"


def mark_settled(expense: Expense, user_id: str, caller_id: str, now: datetime | None = None) -> ExpenseSplit:
    """Record that `user_id` has paid back their share to the payer.

    Only the payer may do this. Settling twice is an error and leaves the
    split untouched.
    """
    if expense.paid_by_id != caller_id:
        raise forbidden("Only the person who paid can mark expenses as settled")
    if expense.status == "cancelled":
        raise validation_error("Cannot settle a cancelled expense")

    split = expense.split_for(user_id)
    if split is None:
        raise validation_error("User is not part of this expense split")
    if user_id == expense.paid_by_id:
        raise validation_error("The payer does not owe anything on this expense")
    if split.settled:
        raise validation_error("Payment already settled")

    split.settled = True
    split.settled_at = now or datetime.utcnow()
    expense.status = recompute_status(expense)
    return split


def change_status(expense: Expense, status: str, now: datetime | None = None) -> None:
    """Apply an explicit status update, keeping split flags consistent with it."""
    if status not in EXPENSE_STATUSES:
        raise validation_error("Invalid status")
    if expense.status == "cancelled" and status != "cancelled":
        raise validation_error("A cancelled expense cannot be reopened")

    if status == "cancelled":
        if expense.status not in CANCELLABLE and expense.status != "cancelled":
            raise validation_error(f"A {expense.status} expense cannot be cancelled")
    elif status == "settled":
        stamp = now or datetime.utcnow()
        for split in debtor_splits(expense):
            if not split.settled:
                split.settled = True
                split.settled_at = stamp
    elif status == "pending":
        for split in expense.splits:
            split.settled = False
            split.settled_at = None
    elif recompute_status(expense) != "partially_settled":
        raise validation_error("Status does not match the recorded settlements")

    expense.status = status


def _empty_balance() -> dict:
    return {
        "totalPaid": ZERO,
        "totalOwed": ZERO,
        "netBalance": ZERO,
        "totalSettled": ZERO,
        "totalReceived": ZERO,
        "outstandingBalance": ZERO,
        "expensesPaid": 0,
        "expensesInvolved": 0,
        "pendingPayments": [],
    }


def compute_member_balances(member_ids: list[str], expenses: list[Expense]) -> dict[str, dict]:
    """Per-member paid/owed totals across non-cancelled expenses.

    netBalance = totalPaid - totalOwed. outstandingBalance only counts
    unsettled shares between members: what others still owe the member
    minus what the member still owes. It sums to zero across the group.
    """
    balances = {mid: _empty_balance() for mid in member_ids}

    for expense in expenses:
        if expense.status == "cancelled":
            continue

        payer = expense.paid_by_id
        if payer in balances:
            balances[payer]["totalPaid"] += expense.amount
            balances[payer]["expensesPaid"] += 1

        for split in expense.splits:
            uid = split.user_id
            if uid == payer or uid not in balances:
                continue
            balances[uid]["totalOwed"] += split.amount
            balances[uid]["expensesInvolved"] += 1
            if split.settled:
                balances[uid]["totalSettled"] += split.amount
                if payer in balances:
                    balances[payer]["totalReceived"] += split.amount
            else:
                balances[uid]["outstandingBalance"] -= split.amount
                if payer in balances:
                    balances[payer]["outstandingBalance"] += split.amount
                balances[uid]["pendingPayments"].append({
                    "expenseId": expense.id,
                    "description": expense.description,
                    "amount": split.amount,
                    "paidTo": payer,
                    "date": expense.date,
                })

    for entry in balances.values():
        entry["netBalance"] = entry["totalPaid"] - entry["totalOwed"]

    return balances


def balance_state(amount: Decimal) -> str:
    if amount > 0:
        return "owed"
    if amount < 0:
        return "owes"
    return "settled"


def suggest_settlements(balances: dict[str, dict]) -> list[dict]:
    """Greedy creditor/debtor matching over outstanding balances.

    Returns a list of {from, to, amount} transfers.
    """
    creditors = []
    debtors = []

    for member_id, entry in balances.items():
        cents = to_cents(entry["outstandingBalance"])
        if cents > 0:
            creditors.append({"id": member_id, "amount": cents})
        elif cents < 0:
            debtors.append({"id": member_id, "amount": -cents})

    creditors.sort(key=lambda x: x["amount"], reverse=True)
    debtors.sort(key=lambda x: x["amount"], reverse=True)

    transfers = []
    ci = 0
    di = 0

    while ci < len(creditors) and di < len(debtors):
        transfer = min(creditors[ci]["amount"], debtors[di]["amount"])
        if transfer > 0:
            transfers.append({
                "from": debtors[di]["id"],
                "to": creditors[ci]["id"],
                "amount": from_cents(transfer),
            })
        creditors[ci]["amount"] -= transfer
        debtors[di]["amount"] -= transfer
        if creditors[ci]["amount"] == 0:
            ci += 1
        if debtors[di]["amount"] == 0:
            di += 1

    return transfers
