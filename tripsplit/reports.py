"""Read-side views over a group's expenses: summary, balances, analytics, CSV."""

import csv
import io
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal

from tripsplit.models import Expense, Group, User
from tripsplit.serializers import money, serialize_user_brief
from tripsplit.settlement import balance_state, compute_member_balances, suggest_settlements
from tripsplit.splits import ZERO

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}
RECENT_LIMIT = 5


def _active(expenses: list[Expense]) -> list[Expense]:
    return [e for e in expenses if e.status != "cancelled"]


def _pct(part: Decimal, whole: Decimal, places: int = 2) -> float:
    if not whole:
        return 0.0
    return round(float(part / whole * 100), places)


def _serialize_balance(entry: dict, user: User | None) -> dict:
    return {
        "user": serialize_user_brief(user),
        "totalPaid": money(entry["totalPaid"]),
        "totalOwed": money(entry["totalOwed"]),
        "netBalance": money(entry["netBalance"]),
        "totalSettled": money(entry["totalSettled"]),
        "totalReceived": money(entry["totalReceived"]),
        "outstandingBalance": money(entry["outstandingBalance"]),
        "expensesPaid": entry["expensesPaid"],
        "expensesInvolved": entry["expensesInvolved"],
        "pendingPayments": [
            {
                "expenseId": p["expenseId"],
                "description": p["description"],
                "amount": money(p["amount"]),
                "paidTo": p["paidTo"],
                "date": p["date"].isoformat(),
            }
            for p in entry["pendingPayments"]
        ],
    }


def _roster(group: Group) -> dict[str, User]:
    return {m.user_id: m.user for m in group.approved_members}


def build_summary(group: Group, expenses: list[Expense], caller_id: str) -> dict:
    roster = _roster(group)
    balances = compute_member_balances(list(roster), expenses)
    active = _active(expenses)

    total = sum((e.amount for e in active), ZERO)
    share_per_person = total / len(roster) if roster else ZERO

    budget_used = 0.0
    if group.budget_max:
        budget_used = _pct(total, Decimal(group.budget_max))

    categories: dict[str, dict] = {}
    for expense in active:
        bucket = categories.setdefault(expense.category or "other", {"total": ZERO, "count": 0})
        bucket["total"] += expense.amount
        bucket["count"] += 1

    category_breakdown = sorted(
        (
            {
                "category": category,
                "total": money(data["total"]),
                "count": data["count"],
                "percentage": _pct(data["total"], total, 1),
            }
            for category, data in categories.items()
        ),
        key=lambda c: c["total"],
        reverse=True,
    )

    recent = sorted(active, key=lambda e: e.date, reverse=True)[:RECENT_LIMIT]
    caller_balance = balances.get(caller_id)

    return {
        "groupId": group.id,
        "totalExpenses": money(total),
        "sharePerPerson": money(share_per_person),
        "userBalance": money(caller_balance["netBalance"]) if caller_balance else 0.0,
        "memberCount": len(roster),
        "expensesCount": len(expenses),
        "balances": {uid: _serialize_balance(entry, roster.get(uid)) for uid, entry in balances.items()},
        "budget": {
            "min": money(group.budget_min) if group.budget_min is not None else None,
            "max": money(group.budget_max) if group.budget_max is not None else None,
            "currency": group.currency,
        },
        "budgetUsed": budget_used,
        "categoryBreakdown": category_breakdown,
        "recentExpenses": [
            {
                "id": e.id,
                "description": e.description,
                "amount": money(e.amount),
                "category": e.category,
                "date": e.date.isoformat(),
                "status": e.status,
            }
            for e in recent
        ],
    }


def build_balances(group: Group, expenses: list[Expense]) -> dict:
    roster = _roster(group)
    balances = compute_member_balances(list(roster), expenses)

    simplified = sorted(
        (
            {
                "user": serialize_user_brief(roster.get(uid)),
                "paid": money(entry["totalPaid"]),
                "owed": money(entry["totalOwed"]),
                "net": money(entry["netBalance"]),
                "outstanding": money(entry["outstandingBalance"]),
                "pendingPayments": len(entry["pendingPayments"]),
                "status": balance_state(entry["outstandingBalance"]),
            }
            for uid, entry in balances.items()
        ),
        key=lambda b: b["net"],
        reverse=True,
    )

    to_pay = sum((-e["outstandingBalance"] for e in balances.values() if e["outstandingBalance"] < 0), ZERO)
    to_receive = sum((e["outstandingBalance"] for e in balances.values() if e["outstandingBalance"] > 0), ZERO)

    return {
        "balances": simplified,
        "summary": {
            "totalMembers": len(simplified),
            "totalOwed": money(to_pay),
            "totalToReceive": money(to_receive),
            "isBalanced": abs(to_pay - to_receive) < Decimal("0.01"),
        },
    }


def build_settlement_suggestions(group: Group, expenses: list[Expense]) -> dict:
    roster = _roster(group)
    balances = compute_member_balances(list(roster), expenses)
    transfers = suggest_settlements(balances)
    currency = group.currency

    suggestions = []
    for t in transfers:
        debtor = roster.get(t["from"])
        creditor = roster.get(t["to"])
        suggestions.append({
            "from": serialize_user_brief(debtor),
            "to": serialize_user_brief(creditor),
            "amount": money(t["amount"]),
            "description": (
                f"{debtor.name if debtor else 'Someone'} should pay {currency} {t['amount']} "
                f"to {creditor.name if creditor else 'someone'}"
            ),
        })

    efficiency = 100.0
    if roster:
        efficiency = round((1 - len(suggestions) / len(roster)) * 100, 2)

    return {
        "suggestions": suggestions,
        "summary": {
            "totalTransactions": len(suggestions),
            "totalAmount": money(sum((t["amount"] for t in transfers), ZERO)),
            "efficiency": efficiency,
            "message": (
                "All balances are settled!"
                if not suggestions
                else f"Settle {len(suggestions)} transaction(s) to clear all balances"
            ),
        },
    }


def build_analytics(expenses: list[Expense], period: str = "month", now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    days = PERIOD_DAYS.get(period, PERIOD_DAYS["month"])
    start = now - timedelta(days=days)
    in_range = [e for e in _active(expenses) if start <= e.date <= now]

    total = ZERO
    daily: dict[str, Decimal] = defaultdict(lambda: ZERO)
    weekly: dict[int, Decimal] = defaultdict(lambda: ZERO)
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_member: dict[str, Decimal] = defaultdict(lambda: ZERO)
    payers: dict[str, User] = {}

    for expense in in_range:
        total += expense.amount
        daily[expense.date.date().isoformat()] += expense.amount
        weekly[expense.date.isocalendar()[1]] += expense.amount
        by_category[expense.category] += expense.amount
        by_member[expense.paid_by_id] += expense.amount
        payers[expense.paid_by_id] = expense.paid_by

    most_expensive = None
    if by_category:
        category, amount = max(by_category.items(), key=lambda kv: kv[1])
        most_expensive = {"category": category, "amount": money(amount)}

    top_spender = None
    if by_member:
        member_id, amount = max(by_member.items(), key=lambda kv: kv[1])
        top_spender = {"user": serialize_user_brief(payers.get(member_id)), "amount": money(amount)}

    return {
        "period": period if period in PERIOD_DAYS else "month",
        "totalSpent": money(total),
        "averagePerDay": money(total / days),
        "mostExpensiveCategory": most_expensive,
        "topSpender": top_spender,
        "dailyBreakdown": [{"date": d, "amount": money(a)} for d, a in sorted(daily.items())],
        "weeklyTrend": [{"week": f"Week {w}", "amount": money(a)} for w, a in sorted(weekly.items())],
        "categoryDistribution": sorted(
            (
                {"category": c, "amount": money(a), "percentage": _pct(a, total)}
                for c, a in by_category.items()
            ),
            key=lambda c: c["amount"],
            reverse=True,
        ),
        "memberContributions": sorted(
            (
                {"user": serialize_user_brief(payers.get(m)), "amount": money(a), "percentage": _pct(a, total)}
                for m, a in by_member.items()
            ),
            key=lambda c: c["amount"],
            reverse=True,
        ),
    }


CSV_COLUMNS = [
    "Date", "Description", "Amount", "Category", "Paid By",
    "Status", "Split Between", "Per Person", "Notes",
]


def export_csv(expenses: list[Expense]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()

    total = ZERO
    for expense in expenses:
        total += expense.amount
        count = len(expense.splits) or 1
        writer.writerow({
            "Date": expense.date.date().isoformat(),
            "Description": expense.description,
            "Amount": f"{expense.amount:.2f}",
            "Category": expense.category,
            "Paid By": expense.paid_by.name if expense.paid_by and expense.paid_by.name else "Unknown",
            "Status": expense.status,
            "Split Between": len(expense.splits),
            "Per Person": f"{expense.amount / count:.2f}",
            "Notes": expense.notes or "",
        })

    writer.writerow({
        "Date": "TOTAL",
        "Amount": f"{total:.2f}",
        "Notes": f"{len(expenses)} expenses",
    })
    return buffer.getvalue()
