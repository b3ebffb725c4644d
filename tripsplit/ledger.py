"""Persistence for expenses and their split rows.

Every write that touches an expense also adjusts the owning group's
`total_expenses` counter before the single commit, so the two never
diverge.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tripsplit.errors import ErrorKind, LedgerError, not_found, validation_error
from tripsplit.models import Expense, ExpenseSplit, Group
from tripsplit.splits import ZERO, SplitShare, equal_split, to_money

logger = logging.getLogger("tripsplit")


def _commit(db: Session, failure_message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{failure_message}: {e}", exc_info=True)
        raise LedgerError(ErrorKind.INTERNAL, failure_message)


def _split_rows(shares: list[SplitShare]) -> list[ExpenseSplit]:
    return [
        ExpenseSplit(
            user_id=share.user_id,
            position=i,
            amount=share.amount,
            percentage=share.percentage,
            share=share.share,
            settled=False,
        )
        for i, share in enumerate(shares)
    ]


def _adjust_group_total(group: Group, delta: Decimal) -> None:
    current = Decimal(group.total_expenses or 0)
    group.total_expenses = max(ZERO, current + delta)
    group.updated_at = datetime.utcnow()


def create_expense(
    db: Session,
    group: Group,
    *,
    description: str,
    amount: Decimal,
    shares: list[SplitShare],
    paid_by_id: str,
    added_by_id: str,
    split_method: str,
    category: str = "other",
    notes: str | None = None,
    receipt_image: str | None = None,
    date: datetime | None = None,
) -> Expense:
    amount = to_money(amount)
    expense = Expense(
        group_id=group.id,
        description=description,
        amount=amount,
        currency=group.currency,
        category=category,
        paid_by_id=paid_by_id,
        added_by_id=added_by_id,
        split_method=split_method,
        status="pending",
        notes=notes,
        receipt_image=receipt_image,
        date=date or datetime.utcnow(),
    )
    expense.splits = _split_rows(shares)
    db.add(expense)
    _adjust_group_total(group, amount)

    _commit(db, "Failed to add expense")
    db.refresh(expense)
    return expense


def list_group_expenses(db: Session, group_id: str) -> list[Expense]:
    return (
        db.query(Expense)
        .filter(Expense.group_id == group_id)
        .order_by(Expense.date.desc(), Expense.created_at.desc())
        .all()
    )


def get_expense(db: Session, expense_id: str, for_update: bool = False) -> Expense:
    query = db.query(Expense).filter(Expense.id == expense_id)
    if for_update:
        # Serialises concurrent settlements on databases with row locks
        query = query.with_for_update()
    expense = query.first()
    if not expense:
        raise not_found("Expense")
    return expense


def _equal_roster(expense: Expense) -> list[str]:
    """Participants of an equal split, minus a payer that was only appended at zero."""
    return [
        s.user_id
        for s in expense.splits
        if not (s.user_id == expense.paid_by_id and s.share == 0)
    ]


def update_expense(db: Session, expense: Expense, changes: dict) -> Expense:
    """Apply description/amount/category/notes/receipt_image edits."""
    group = expense.group

    if "amount" in changes and changes["amount"] is not None:
        new_amount = to_money(changes["amount"])
        if new_amount <= ZERO:
            raise validation_error("Amount must be a positive number")
        if new_amount != expense.amount:
            if expense.split_method != "equal":
                raise validation_error(
                    f"Changing the amount of a {expense.split_method} split requires new splits"
                )
            if any(s.settled for s in expense.splits):
                raise validation_error("Cannot change the amount after settlements have been recorded")

            roster = _equal_roster(expense)
            reshared = {s.user_id: s for s in equal_split(new_amount, roster)}
            for split in expense.splits:
                share = reshared.get(split.user_id)
                if share is not None:
                    split.amount = share.amount
                    split.percentage = share.percentage

            _adjust_group_total(group, new_amount - expense.amount)
            expense.amount = new_amount

    for field in ("description", "category", "notes", "receipt_image"):
        if field in changes and changes[field] is not None:
            setattr(expense, field, changes[field])

    _commit(db, "Failed to update expense")
    db.refresh(expense)
    return expense


def save(db: Session, expense: Expense, failure_message: str = "Failed to update expense") -> Expense:
    _commit(db, failure_message)
    db.refresh(expense)
    return expense


def delete_expense(db: Session, expense: Expense) -> Decimal:
    """Remove the expense and take its amount off the group total, floored at zero."""
    amount = expense.amount
    group = expense.group
    if group is not None:
        _adjust_group_total(group, -amount)
    db.delete(expense)
    _commit(db, "Failed to delete expense")
    return amount
