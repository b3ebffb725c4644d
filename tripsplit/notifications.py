"""In-app notifications and the fan-out that follows ledger events.

Fan-out runs after the ledger write has committed. Each recipient is handled
on its own commit, and a failure for one recipient is logged and reported in
the returned status list rather than raised.
"""

import logging
from decimal import Decimal
from urllib.parse import quote

from fastapi import BackgroundTasks
from sqlalchemy import func
from sqlalchemy.orm import Session

from tripsplit.email import send_payment_request_email, send_settlement_email
from tripsplit.models import NOTIFICATION_TYPES, Expense, Notification, User

logger = logging.getLogger("tripsplit")

NOTIFICATION_CAP = 50

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


def format_amount(amount: Decimal, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{symbol}{amount}"
    return f"{currency} {amount}"


def build_upi_link(upi_id: str, payee_name: str, amount: Decimal, note: str, currency: str = "INR") -> str:
    return (
        f"upi://pay?pa={quote(upi_id, safe='')}"
        f"&pn={quote(payee_name or '', safe='')}"
        f"&am={amount}"
        f"&tn={quote(note, safe='')}"
        f"&cu={currency}"
    )


def _evict_overflow(db: Session, user_id: str) -> int:
    """Drop everything past the newest NOTIFICATION_CAP entries for a user."""
    stale_ids = [
        row.id
        for row in db.query(Notification.id)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.seq.desc())
        .offset(NOTIFICATION_CAP)
        .all()
    ]
    if stale_ids:
        db.query(Notification).filter(Notification.id.in_(stale_ids)).delete(synchronize_session=False)
    return len(stale_ids)


def push_notification(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    sender_id: str | None = None,
    payload: dict | None = None,
) -> Notification:
    """Add a notification to a user's list (caller commits)."""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    last_seq = db.query(func.max(Notification.seq)).filter(Notification.user_id == user_id).scalar()
    notification = Notification(
        user_id=user_id,
        seq=(last_seq or 0) + 1,
        sender_id=sender_id,
        type=type,
        title=title,
        message=message,
        payload=payload or {},
    )
    db.add(notification)
    db.flush()
    _evict_overflow(db, user_id)
    return notification


def notify_user(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    sender_id: str | None = None,
    payload: dict | None = None,
) -> bool:
    """Best-effort single notification; returns whether it was stored."""
    try:
        push_notification(db, user_id, type, title, message, sender_id, payload)
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.warning(
            f"Notification failed: {e}",
            extra={"extra_data": {"user_id": user_id, "type": type}},
        )
        return False


def notify_payment_requests(
    db: Session,
    expense: Expense,
    sender_id: str,
    background_tasks: BackgroundTasks | None = None,
) -> list[dict]:
    """Send a payment request to every participant except the payer.

    Returns one status entry per participant.
    """
    payer = expense.paid_by
    payer_name = payer.name if payer and payer.name else "Someone"
    payer_upi = payer.upi_id if payer else None
    description = expense.description
    currency = expense.currency
    expense_id = expense.id
    group_id = expense.group_id
    group_name = expense.group.destination or expense.group.name
    targets = [
        (s.user_id, s.amount)
        for s in expense.splits
        if s.user_id != expense.paid_by_id
    ]

    results = []
    for user_id, amount in targets:
        upi_link = None
        if payer_upi:
            upi_link = build_upi_link(payer_upi, payer_name, amount, f"Expense: {description}", currency)
        amount_label = format_amount(amount, currency)

        try:
            user = db.get(User, user_id)
            if user is None:
                raise LookupError("User not found")

            push_notification(
                db,
                user_id,
                "payment_request",
                "Payment Request",
                f'{payer_name} requests {amount_label} for "{description}"',
                sender_id=sender_id,
                payload={
                    "expenseId": expense_id,
                    "amount": float(amount),
                    "upiLink": upi_link,
                    "description": description,
                    "groupId": group_id,
                    "groupName": group_name,
                },
            )
            db.commit()

            if user.email and background_tasks is not None:
                background_tasks.add_task(
                    send_payment_request_email,
                    user.email, payer_name, amount_label, description, group_id, group_name, upi_link,
                )

            results.append({
                "userId": user_id,
                "name": user.name,
                "amount": float(amount),
                "upiId": user.upi_id or "Not set",
                "upiLink": upi_link,
                "notified": True,
            })
        except Exception as e:
            db.rollback()
            logger.warning(
                f"Payment request notification failed: {e}",
                extra={"extra_data": {"expense_id": expense_id, "user_id": user_id}},
            )
            results.append({
                "userId": user_id,
                "name": "Unknown",
                "amount": float(amount),
                "upiId": "Error",
                "upiLink": upi_link,
                "notified": False,
                "error": str(e),
            })

    return results


def notify_settlement(
    db: Session,
    expense: Expense,
    user_id: str,
    sender_id: str,
    background_tasks: BackgroundTasks | None = None,
) -> dict:
    """Tell a participant their share was marked as paid."""
    payer = expense.paid_by
    payer_name = payer.name if payer and payer.name else "Someone"
    split = expense.split_for(user_id)
    amount = split.amount if split else Decimal("0")
    amount_label = format_amount(amount, expense.currency)
    description = expense.description
    expense_id = expense.id

    user = db.get(User, user_id)
    if user is None:
        logger.warning("Settlement notification skipped: user not found",
                       extra={"extra_data": {"expense_id": expense_id, "user_id": user_id}})
        return {"userId": user_id, "notified": False, "error": "User not found"}

    notified = notify_user(
        db,
        user_id,
        "payment_settled",
        "Payment Settled",
        f"{payer_name} marked your payment of {amount_label} as settled",
        sender_id=sender_id,
        payload={"expenseId": expense_id, "amount": float(amount), "description": description},
    )
    if notified and user.email and background_tasks is not None:
        background_tasks.add_task(send_settlement_email, user.email, payer_name, amount_label, description)

    status = {"userId": user_id, "notified": notified}
    if not notified:
        status["error"] = "Notification could not be stored"
    return status


def notify_reminder(db: Session, expense: Expense, user_id: str, sender_id: str) -> bool:
    payer = expense.paid_by
    payer_name = payer.name if payer and payer.name else "the payer"
    split = expense.split_for(user_id)
    amount_label = format_amount(split.amount, expense.currency)
    group = expense.group
    return notify_user(
        db,
        user_id,
        "payment_reminder",
        "Payment Reminder",
        f'Reminder: Please pay {amount_label} to {payer_name} for "{expense.description}"',
        sender_id=sender_id,
        payload={
            "expenseId": expense.id,
            "amount": float(split.amount),
            "description": expense.description,
            "groupId": group.id,
            "groupName": group.destination or group.name,
        },
    )


def notify_expense_updated(db: Session, expense: Expense, sender_id: str) -> list[dict]:
    """Tell unsettled participants their share changed after an amount edit."""
    description = expense.description
    currency = expense.currency
    expense_id = expense.id
    targets = [
        (s.user_id, s.amount)
        for s in expense.splits
        if s.user_id != expense.paid_by_id and s.user_id != sender_id and not s.settled
    ]

    results = []
    for user_id, amount in targets:
        notified = notify_user(
            db,
            user_id,
            "expense_updated",
            "Expense Updated",
            f'Your share of "{description}" is now {format_amount(amount, currency)}',
            sender_id=sender_id,
            payload={"expenseId": expense_id, "amount": float(amount), "description": description},
        )
        results.append({"userId": user_id, "notified": notified})
    return results
