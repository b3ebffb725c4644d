from datetime import datetime
from decimal import Decimal

from tests.conftest import add_expense
from tripsplit import ledger
from tripsplit.models import Group, Notification, User
from tripsplit.notifications import (
    NOTIFICATION_CAP,
    build_upi_link,
    format_amount,
    notify_payment_requests,
    push_notification,
)
from tripsplit.splits import calculate_split


def test_upi_link_encodes_fields():
    link = build_upi_link("alice@okbank", "Alice K", Decimal("250.50"), "Expense: Dinner & drinks")
    assert link == "upi://pay?pa=alice%40okbank&pn=Alice%20K&am=250.50&tn=Expense%3A%20Dinner%20%26%20drinks&cu=INR"


def test_format_amount():
    assert format_amount(Decimal("300.00"), "INR") == "₹300.00"
    assert format_amount(Decimal("12.50"), "JPY") == "JPY 12.50"


def test_payment_request_notifications(alice, bob, carol, group_id):
    expense_id = add_expense(alice, group_id, "900").json()["data"]["expense"]["id"]

    data = bob.get("/api/notifications").json()["data"]
    assert data["unreadCount"] == 2
    note = data["notifications"][0]
    assert note["type"] == "payment_request"
    assert note["senderId"] == alice.user_id
    assert note["message"] == 'Alice requests ₹300.00 for "Beach shack dinner"'
    assert note["metadata"]["expenseId"] == expense_id
    assert note["metadata"]["amount"] == 300.0
    assert note["metadata"]["upiLink"].startswith("upi://pay?pa=alice%40okbank")
    assert note["metadata"]["groupName"] == "Goa"

    kinds = [n["type"] for n in alice.get("/api/notifications").json()["data"]["notifications"]]
    assert "payment_request" not in kinds


def test_no_upi_link_when_payer_has_no_upi_id(alice, bob, group_id):
    add_expense(bob, group_id, "200", splitBetween=[alice.user_id, bob.user_id])
    note = alice.get("/api/notifications").json()["data"]["notifications"][0]
    assert note["type"] == "payment_request"
    assert note["metadata"]["upiLink"] is None


def test_mark_read(alice, bob, group_id):
    add_expense(alice, group_id, "900")
    add_expense(alice, group_id, "300")

    notes = bob.get("/api/notifications").json()["data"]["notifications"]
    resp = bob.post(f"/api/notifications/{notes[0]['id']}/read")
    assert resp.status_code == 200
    assert resp.json()["data"]["isRead"] is True
    assert bob.get("/api/notifications").json()["data"]["unreadCount"] == 2

    # Another user's notification is invisible
    assert alice.post(f"/api/notifications/{notes[1]['id']}/read").status_code == 404

    resp = bob.post("/api/notifications/read-all")
    assert resp.json()["data"] == {"updated": 2}
    assert bob.get("/api/notifications").json()["data"]["unreadCount"] == 0


def test_notification_list_is_capped(db):
    user = User(ctk="capped")
    db.add(user)
    db.flush()

    for i in range(NOTIFICATION_CAP + 5):
        push_notification(db, user.id, "payment_reminder", "Payment Reminder", f"Reminder {i}")
    db.commit()

    assert db.query(Notification).filter(Notification.user_id == user.id).count() == NOTIFICATION_CAP


def test_eviction_keeps_newest_even_when_timestamps_tie(db):
    user = User(ctk="same-tick")
    db.add(user)
    db.flush()

    for i in range(NOTIFICATION_CAP):
        push_notification(db, user.id, "payment_reminder", "Payment Reminder", f"Reminder {i}")
    # Stamp every existing row later than the next insert will be
    db.query(Notification).filter(Notification.user_id == user.id).update(
        {"created_at": datetime(2099, 1, 1)}, synchronize_session=False,
    )
    db.commit()

    push_notification(db, user.id, "payment_reminder", "Payment Reminder", "Newest")
    db.commit()

    messages = {n.message for n in db.query(Notification).filter(Notification.user_id == user.id)}
    assert len(messages) == NOTIFICATION_CAP
    assert "Newest" in messages
    assert "Reminder 0" not in messages
    assert "Reminder 1" in messages


def test_fan_out_failure_for_one_recipient_does_not_stop_others(db):
    payer = User(ctk="payer", name="Priya", upi_id="priya@okaxis")
    friend = User(ctk="friend", name="Rahul")
    db.add_all([payer, friend])
    db.flush()
    group = Group(name="Kerala", creator_id=payer.id, max_members=5, currency="INR", total_expenses=0)
    db.add(group)
    db.flush()

    shares = calculate_split("300", "equal", [payer.id, friend.id, "ghost-user"])
    expense = ledger.create_expense(
        db,
        group,
        description="Houseboat",
        amount=Decimal("300"),
        shares=shares,
        paid_by_id=payer.id,
        added_by_id=payer.id,
        split_method="equal",
    )
    friend_id = friend.id

    results = notify_payment_requests(db, expense, payer.id)

    by_user = {r["userId"]: r for r in results}
    assert set(by_user) == {friend_id, "ghost-user"}
    assert by_user[friend_id]["notified"] is True
    assert by_user[friend_id]["upiLink"].startswith("upi://pay?pa=priya%40okaxis&pn=Priya&am=100.00")
    assert by_user["ghost-user"]["notified"] is False
    assert by_user["ghost-user"]["error"] == "User not found"

    assert db.query(Notification).filter(Notification.user_id == friend_id).count() == 1
    assert db.get(Group, group.id).total_expenses == Decimal("300.00")


def test_amount_edit_notifies_participants(alice, bob, carol, group_id):
    expense_id = add_expense(alice, group_id, "900").json()["data"]["expense"]["id"]
    alice.put(f"/api/expenses/{expense_id}", json={"amount": "600"})

    note = bob.get("/api/notifications").json()["data"]["notifications"][0]
    assert note["type"] == "expense_updated"
    assert note["message"] == 'Your share of "Beach shack dinner" is now ₹200.00'

    # A notes-only edit leaves nobody a new notification
    alice.put(f"/api/expenses/{expense_id}", json={"notes": "Paid in cash"})
    kinds = [n["type"] for n in carol.get("/api/notifications").json()["data"]["notifications"]]
    assert kinds.count("expense_updated") == 1
