from decimal import Decimal

from tripsplit.models import Expense, ExpenseSplit, Group, GroupInvitation, GroupMember, Notification, User


def ok(data=None, message: str | None = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def money(value) -> float:
    if value is None:
        return 0.0
    return float(Decimal(value).quantize(Decimal("0.01")))


def serialize_user(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "upiId": user.upi_id,
    }


def serialize_user_brief(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": str(user.id), "name": user.name, "upiId": user.upi_id}


def serialize_member(member: GroupMember) -> dict:
    return {
        "userId": str(member.user_id),
        "name": member.user.name if member.user else None,
        "role": member.role,
        "status": member.status,
        "message": member.message,
        "joinedAt": member.joined_at.isoformat() if member.joined_at else None,
    }


def serialize_group(group: Group) -> dict:
    approved = group.approved_members
    return {
        "id": str(group.id),
        "name": group.name,
        "destination": group.destination,
        "description": group.description,
        "creatorId": str(group.creator_id) if group.creator_id is not None else None,
        "maxMembers": group.max_members,
        "currentMembersCount": len(approved),
        "availableSlots": group.available_slots,
        "isFull": group.available_slots <= 0,
        "budget": {
            "min": money(group.budget_min) if group.budget_min is not None else None,
            "max": money(group.budget_max) if group.budget_max is not None else None,
            "currency": group.currency,
        },
        "currency": group.currency,
        "totalExpenses": money(group.total_expenses),
        "members": [serialize_member(m) for m in approved],
        "pendingRequests": [serialize_member(m) for m in group.members if m.status == "pending"],
        "createdAt": group.created_at.isoformat(),
        "updatedAt": group.updated_at.isoformat(),
    }


def serialize_invitation(invitation: GroupInvitation) -> dict:
    group = invitation.group
    return {
        "id": str(invitation.id),
        "groupId": str(invitation.group_id),
        "groupName": group.destination or group.name,
        "description": group.description,
        "currentMembersCount": len(group.approved_members),
        "maxMembers": group.max_members,
        "invitedBy": serialize_user_brief(invitation.inviter),
        "inviteeId": str(invitation.invitee_id),
        "message": invitation.message,
        "status": invitation.status,
        "invitedAt": invitation.created_at.isoformat(),
        "respondedAt": invitation.responded_at.isoformat() if invitation.responded_at else None,
    }


def serialize_split(split: ExpenseSplit) -> dict:
    return {
        "userId": str(split.user_id),
        "amount": money(split.amount),
        "percentage": float(split.percentage or 0),
        "share": float(split.share or 0),
        "settled": bool(split.settled),
        "settledAt": split.settled_at.isoformat() if split.settled_at else None,
    }


def serialize_expense(expense: Expense) -> dict:
    return {
        "id": str(expense.id),
        "groupId": str(expense.group_id),
        "description": expense.description,
        "amount": money(expense.amount),
        "currency": expense.currency,
        "category": expense.category,
        "paidBy": serialize_user_brief(expense.paid_by),
        "addedBy": serialize_user_brief(expense.added_by),
        "splitBetween": [str(s.user_id) for s in expense.splits],
        "splitMethod": expense.split_method,
        "splitDetails": [serialize_split(s) for s in expense.splits],
        "settledUsers": [str(uid) for uid in expense.settled_user_ids],
        "status": expense.status,
        "notes": expense.notes,
        "receiptImage": expense.receipt_image,
        "date": expense.date.isoformat(),
        "createdAt": expense.created_at.isoformat(),
        "updatedAt": expense.updated_at.isoformat(),
    }


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.payload or {},
        "senderId": str(notification.sender_id) if notification.sender_id is not None else None,
        "isRead": bool(notification.is_read),
        "createdAt": notification.created_at.isoformat(),
    }
