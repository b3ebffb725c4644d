from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tripsplit.database import get_db
from tripsplit.deps import require_user
from tripsplit.errors import not_found
from tripsplit.models import Notification
from tripsplit.serializers import ok, serialize_notification

router = APIRouter()


@router.get("/notifications")
def list_notifications(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    notifications = (
        db.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.seq.desc())
        .all()
    )
    return ok({
        "notifications": [serialize_notification(n) for n in notifications],
        "unreadCount": sum(1 for n in notifications if not n.is_read),
    })


@router.post("/notifications/read-all")
def mark_all_read(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read == False)  # noqa: E712
        .update({"is_read": True}, synchronize_session=False)
    )
    db.commit()
    return ok({"updated": updated}, message="All notifications marked as read")


@router.post("/notifications/{notification_id}/read")
def mark_read(notification_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    notification = db.query(Notification).filter(
        Notification.id == notification_id, Notification.user_id == user.id
    ).first()
    if not notification:
        raise not_found("Notification")

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return ok(serialize_notification(notification))
