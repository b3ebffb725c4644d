import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from tripsplit import ledger, reports
from tripsplit.database import get_db
from tripsplit.deps import ensure_member, get_group, require_user
from tripsplit.errors import forbidden, validation_error
from tripsplit.models import EXPENSE_CATEGORIES, SPLIT_METHODS, Expense, User
from tripsplit.notifications import (
    notify_expense_updated,
    notify_payment_requests,
    notify_reminder,
    notify_settlement,
)
from tripsplit.ratelimit import EXPENSE_RATE_LIMIT, limiter
from tripsplit.schemas import ExpenseIn, ExpenseStatusIn, UpdateExpenseIn
from tripsplit.serializers import money, ok, serialize_expense, serialize_split
from tripsplit.settlement import change_status, mark_settled
from tripsplit.splits import SplitInput, calculate_split

logger = logging.getLogger("tripsplit")

router = APIRouter()


def _validate_category(category: str | None) -> str:
    category = category or "other"
    if category not in EXPENSE_CATEGORIES:
        raise validation_error(f"Invalid category: {category}")
    return category


def _can_modify(expense: Expense, user: User) -> bool:
    """Payer, the member who added the expense, or the group creator."""
    return user.id in (expense.paid_by_id, expense.added_by_id, expense.group.creator_id)


def _load_expense_for_member(db: Session, expense_id: str, user: User, for_update: bool = False) -> Expense:
    expense = ledger.get_expense(db, expense_id, for_update=for_update)
    ensure_member(expense.group, user)
    return expense


@router.post("/expenses", status_code=201)
@limiter.limit(EXPENSE_RATE_LIMIT)
def create_expense(
    request: Request,
    data: ExpenseIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    description = data.description.strip()
    if not description:
        raise validation_error("Group ID, description, and amount are required")

    group = get_group(db, data.group_id)
    ensure_member(group, user)

    member_ids = [m.user_id for m in group.approved_members]
    payer_id = data.paid_by or user.id
    if payer_id not in member_ids:
        raise validation_error("Payer is not a member of this group")

    method = data.split_method
    if method not in SPLIT_METHODS:
        raise validation_error(f"Unknown split method: {method}")
    category = _validate_category(data.category)

    participants = None
    entries = None
    if method == "equal":
        if data.split_between:
            participants = [uid for uid in data.split_between if uid in member_ids]
        else:
            participants = member_ids
    else:
        if not data.custom_splits:
            raise validation_error(f"customSplits are required for a {method} split")
        for entry in data.custom_splits:
            if entry.user_id not in member_ids:
                raise validation_error(f"Member {entry.user_id} is not in this group")
        entries = [
            SplitInput(e.user_id, e.amount, e.percentage, e.share) for e in data.custom_splits
        ]

    shares = calculate_split(data.amount, method, participants, entries, payer_id=payer_id)

    expense = ledger.create_expense(
        db,
        group,
        description=description,
        amount=data.amount,
        shares=shares,
        paid_by_id=payer_id,
        added_by_id=user.id,
        split_method=method,
        category=category,
        notes=data.notes,
        receipt_image=data.receipt_image,
        date=data.date,
    )
    logger.info(
        "Expense created",
        extra={"extra_data": {
            "expense_id": expense.id,
            "group_id": group.id,
            "amount": str(expense.amount),
            "split_method": method,
            "participants": len(shares),
        }},
    )

    payment_requests = notify_payment_requests(db, expense, user.id, background_tasks)
    failed = [p["userId"] for p in payment_requests if not p["notified"]]
    if failed:
        logger.warning("Some payment requests were not delivered",
                       extra={"extra_data": {"expense_id": expense.id, "failed": failed}})

    db.refresh(expense)
    return ok(
        {
            "expense": serialize_expense(expense),
            "splitDetails": [serialize_split(s) for s in expense.splits],
            "paymentRequests": payment_requests,
            "summary": {
                "totalAmount": money(expense.amount),
                "splitBetween": len(expense.splits),
                "splitMethod": method,
                "currency": expense.currency,
            },
        },
        message="Expense added and payment requests sent",
    )


@router.get("/expenses/single/{expense_id}")
def get_expense(expense_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    expense = _load_expense_for_member(db, expense_id, user)
    return ok(serialize_expense(expense))


@router.get("/expenses/{group_id}")
def list_expenses(group_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    expenses = ledger.list_group_expenses(db, group.id)
    return ok([serialize_expense(e) for e in expenses])


@router.put("/expenses/{expense_id}")
def update_expense(
    expense_id: str,
    data: UpdateExpenseIn,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    expense = _load_expense_for_member(db, expense_id, user)
    if not _can_modify(expense, user):
        raise forbidden("You are not authorized to modify this expense")

    changes = data.model_dump(exclude_unset=True)
    if "description" in changes and changes["description"] is not None:
        changes["description"] = changes["description"].strip()
        if not changes["description"]:
            raise validation_error("Description cannot be empty")
    if changes.get("category") is not None:
        _validate_category(changes["category"])

    previous_amount = expense.amount
    expense = ledger.update_expense(db, expense, changes)
    logger.info("Expense updated", extra={"extra_data": {"expense_id": expense.id, "fields": sorted(changes)}})
    if expense.amount != previous_amount:
        notify_expense_updated(db, expense, user.id)
        db.refresh(expense)
    return ok(serialize_expense(expense), message="Expense updated successfully")


@router.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    expense = _load_expense_for_member(db, expense_id, user)
    if not _can_modify(expense, user):
        raise forbidden("You are not authorized to delete this expense")

    group_id = expense.group_id
    amount = ledger.delete_expense(db, expense)
    logger.info("Expense deleted",
                extra={"extra_data": {"expense_id": expense_id, "group_id": group_id, "amount": str(amount)}})
    return ok(message="Expense deleted successfully")


@router.get("/expenses/{group_id}/summary")
def get_summary(group_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    expenses = ledger.list_group_expenses(db, group.id)
    return ok(reports.build_summary(group, expenses, user.id))


@router.get("/expenses/{group_id}/balances")
def get_balances(group_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    expenses = ledger.list_group_expenses(db, group.id)
    return ok(reports.build_balances(group, expenses))


@router.get("/expenses/{group_id}/settlement-suggestions")
def get_settlement_suggestions(group_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    expenses = ledger.list_group_expenses(db, group.id)
    return ok(reports.build_settlement_suggestions(group, expenses))


@router.get("/expenses/{group_id}/analytics")
def get_analytics(
    group_id: str,
    request: Request,
    period: str = Query("month"),
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    expenses = ledger.list_group_expenses(db, group.id)
    return ok(reports.build_analytics(expenses, period))


@router.get("/expenses/{group_id}/export/csv")
def export_expenses_csv(group_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    expenses = ledger.list_group_expenses(db, group.id)
    filename = f"expenses-{group.id}.csv"
    return Response(
        content=reports.export_csv(expenses),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/expenses/{expense_id}/settle/{user_id}")
def settle_participant(
    expense_id: str,
    user_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    expense = _load_expense_for_member(db, expense_id, user, for_update=True)

    mark_settled(expense, user_id, user.id)
    expense = ledger.save(db, expense, "Failed to mark payment as settled")
    logger.info(
        "Payment settled",
        extra={"extra_data": {"expense_id": expense.id, "user_id": user_id, "status": expense.status}},
    )

    notification = notify_settlement(db, expense, user_id, user.id, background_tasks)
    db.refresh(expense)
    return ok(
        {"expense": serialize_expense(expense), "notification": notification},
        message="Payment marked as settled",
    )


@router.post("/expenses/{expense_id}/remind/{user_id}")
def send_payment_reminder(expense_id: str, user_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    expense = _load_expense_for_member(db, expense_id, user)
    if user.id not in (expense.paid_by_id, expense.added_by_id):
        raise forbidden("Only the payer or expense creator can send reminders")

    split = expense.split_for(user_id)
    if split is None or user_id == expense.paid_by_id:
        raise validation_error("User is not part of this expense")
    if split.settled:
        raise validation_error("Payment already settled")

    if not notify_reminder(db, expense, user_id, user.id):
        return ok({"notified": False}, message="Payment reminder could not be delivered")
    return ok({"notified": True}, message="Payment reminder sent successfully")


@router.put("/expenses/{expense_id}/status")
def update_expense_status(
    expense_id: str,
    data: ExpenseStatusIn,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    expense = _load_expense_for_member(db, expense_id, user, for_update=True)
    previous = expense.status

    change_status(expense, data.status)
    expense = ledger.save(db, expense)
    logger.info(
        "Expense status changed",
        extra={"extra_data": {"expense_id": expense.id, "from": previous, "to": expense.status}},
    )
    return ok(serialize_expense(expense), message=f"Expense marked as {expense.status}")
