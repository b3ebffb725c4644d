"""Split calculation for group expenses.

Amounts are Decimal at the edges and integer minor units (paise/cents) inside,
so every stored split sums to the expense total exactly. Custom splits are
checked against SPLIT_TOLERANCE on the values as sent, then rounded.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from tripsplit.errors import validation_error

CENT = Decimal("0.01")
SPLIT_TOLERANCE = Decimal("0.01")
PERCENT_PLACES = Decimal("0.0001")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


@dataclass
class SplitShare:
    """One participant's owed amount on an expense."""

    user_id: str
    amount: Decimal
    percentage: Decimal
    share: Decimal = ONE


@dataclass
class SplitInput:
    """A caller-supplied split entry; which field matters depends on the method."""

    user_id: str
    amount: Decimal | None = None
    percentage: Decimal | None = None
    share: Decimal | None = None


def to_decimal(value) -> Decimal:
    """Parse a number-ish value exactly as sent, without rounding."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise validation_error("Amount must be a positive number")
    if not amount.is_finite():
        raise validation_error("Amount must be a positive number")
    return amount


def to_money(value) -> Decimal:
    """Parse a number-ish value into a Decimal rounded half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int((amount / CENT).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) * CENT).quantize(CENT)


def _percentage_of(part_cents: int, total_cents: int) -> Decimal:
    if total_cents == 0:
        return ZERO
    return (Decimal(part_cents) * HUNDRED / Decimal(total_cents)).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def _unique(user_ids: list[str]) -> list[str]:
    seen = set()
    result = []
    for uid in user_ids:
        if uid not in seen:
            seen.add(uid)
            result.append(uid)
    return result


def equal_split(amount: Decimal, participants: list[str]) -> list[SplitShare]:
    """Divide amount evenly; leftover cents go one each to the first participants."""
    participants = _unique(participants)
    if not participants:
        raise validation_error("Expense must involve at least 1 member")

    total = to_cents(amount)
    count = len(participants)
    base = total // count
    remainder = total - base * count

    result = []
    for i, uid in enumerate(participants):
        cents = base + (1 if i < remainder else 0)
        result.append(SplitShare(uid, from_cents(cents), _percentage_of(cents, total)))
    return result


def custom_split(amount: Decimal, entries: list[SplitInput]) -> list[SplitShare]:
    """Take caller-given amounts as they are.

    The tolerance check runs on the values exactly as sent. Rows are then
    rounded to cents and the last row takes whatever cents remain, so the
    stored split always sums to the rounded expense amount.
    """
    if not entries:
        raise validation_error("Expense must involve at least 1 member")
    if len({e.user_id for e in entries}) != len(entries):
        raise validation_error("A member appears more than once in the custom splits")

    requested = []
    for entry in entries:
        value = to_decimal(entry.amount if entry.amount is not None else 0)
        if value < ZERO:
            raise validation_error("Custom split amounts cannot be negative")
        requested.append(value)

    total_custom = sum(requested, ZERO)
    if abs(total_custom - amount) > SPLIT_TOLERANCE:
        raise validation_error(
            f"Custom splits total ({total_custom}) must equal expense amount ({amount})"
        )

    total = to_cents(amount)
    cents = [to_cents(value) for value in requested]
    cents[-1] = total - sum(cents[:-1])
    if cents[-1] < 0:
        raise validation_error("Custom split amounts cannot be negative")

    return [
        SplitShare(entry.user_id, from_cents(c), _percentage_of(c, total), entry.share or ONE)
        for entry, c in zip(entries, cents)
    ]


def _weighted_split(amount: Decimal, entries: list[SplitInput], weights: list[Decimal]) -> list[SplitShare]:
    """Allocate proportionally to weights; the last entry absorbs rounding."""
    total = to_cents(amount)
    total_weight = sum(weights, ZERO)
    result = []
    allocated = 0
    for i, (entry, weight) in enumerate(zip(entries, weights)):
        if i == len(entries) - 1:
            cents = total - allocated
        else:
            exact = Decimal(total) * weight / total_weight
            cents = int(exact.to_integral_value(rounding=ROUND_HALF_UP))
            allocated += cents
        if cents < 0:
            raise validation_error("Split weights produce a negative share")
        result.append(SplitShare(
            entry.user_id,
            from_cents(cents),
            _percentage_of(cents, total),
            entry.share if entry.share is not None else ONE,
        ))
    return result


def percentage_split(amount: Decimal, entries: list[SplitInput]) -> list[SplitShare]:
    if not entries:
        raise validation_error("Expense must involve at least 1 member")
    if len({e.user_id for e in entries}) != len(entries):
        raise validation_error("A member appears more than once in the percentage splits")

    percentages = []
    for entry in entries:
        if entry.percentage is None:
            raise validation_error("Every percentage split needs a percentage")
        pct = Decimal(str(entry.percentage))
        if pct < ZERO:
            raise validation_error("Percentages cannot be negative")
        percentages.append(pct)

    total_pct = sum(percentages, ZERO)
    if abs(total_pct - HUNDRED) > SPLIT_TOLERANCE:
        raise validation_error(f"Percentages total ({total_pct}) must equal 100")

    return _weighted_split(amount, entries, percentages)


def shares_split(amount: Decimal, entries: list[SplitInput]) -> list[SplitShare]:
    if not entries:
        raise validation_error("Expense must involve at least 1 member")
    if len({e.user_id for e in entries}) != len(entries):
        raise validation_error("A member appears more than once in the share splits")

    weights = []
    for entry in entries:
        weight = Decimal(str(entry.share)) if entry.share is not None else ONE
        if weight < ZERO:
            raise validation_error("Shares cannot be negative")
        weights.append(weight)

    if sum(weights, ZERO) == ZERO:
        raise validation_error("Total shares must be greater than zero")

    entries = [
        SplitInput(e.user_id, e.amount, e.percentage, w) for e, w in zip(entries, weights)
    ]
    return _weighted_split(amount, entries, weights)


def calculate_split(
    amount,
    method: str,
    participants: list[str] | None = None,
    entries: list[SplitInput] | None = None,
    payer_id: str | None = None,
) -> list[SplitShare]:
    """Compute per-participant shares for an expense.

    `participants` drives the equal method; `entries` drives custom,
    percentage and shares. The payer is appended at zero when not already
    among the participants so every split carries the full roster.
    """
    requested = to_decimal(amount)
    amount = requested.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= ZERO:
        raise validation_error("Amount must be a positive number")

    if method == "equal":
        result = equal_split(amount, participants or [])
    elif method == "custom":
        result = custom_split(requested, entries or [])
    elif method == "percentage":
        result = percentage_split(amount, entries or [])
    elif method == "shares":
        result = shares_split(amount, entries or [])
    else:
        raise validation_error(f"Unknown split method: {method}")

    if payer_id and all(s.user_id != payer_id for s in result):
        result.append(SplitShare(payer_id, from_cents(0), ZERO, ZERO))

    return result


def split_total(shares: list[SplitShare]) -> Decimal:
    return sum((s.amount for s in shares), ZERO)
