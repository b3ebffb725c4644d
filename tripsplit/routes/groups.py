import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tripsplit.database import get_db
from tripsplit.deps import ensure_creator, ensure_member, get_group, get_membership, require_user
from tripsplit.errors import conflict, not_found, validation_error
from tripsplit.models import Group, GroupMember
from tripsplit.notifications import notify_user
from tripsplit.ratelimit import GROUP_RATE_LIMIT, limiter
from tripsplit.schemas import CreateGroupIn, JoinRequestIn
from tripsplit.serializers import ok, serialize_group, serialize_member

logger = logging.getLogger("tripsplit")

router = APIRouter()


@router.post("/groups", status_code=201)
@limiter.limit(GROUP_RATE_LIMIT)
def create_group(request: Request, data: CreateGroupIn, db: Session = Depends(get_db)):
    user = require_user(request, db)
    name = data.name.strip()
    if not name:
        raise validation_error("Group name is required")
    if data.budget_min is not None and data.budget_max is not None and data.budget_min > data.budget_max:
        raise validation_error("Minimum budget cannot exceed maximum budget")

    group = Group(
        name=name,
        destination=data.destination,
        description=data.description,
        creator_id=user.id,
        max_members=data.max_members,
        budget_min=data.budget_min,
        budget_max=data.budget_max,
        currency=data.currency.upper(),
        total_expenses=0,
    )
    db.add(group)
    db.flush()  # get group.id

    now = datetime.utcnow()
    db.add(GroupMember(group_id=group.id, user_id=user.id, role="creator", status="approved", joined_at=now))
    db.commit()
    db.refresh(group)
    logger.info("Group created", extra={"extra_data": {"group_id": group.id, "creator_id": user.id}})
    return ok(serialize_group(group), message="Group created")


@router.get("/groups")
def my_groups(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    groups = (
        db.query(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .filter(GroupMember.user_id == user.id, GroupMember.status == "approved")
        .order_by(Group.created_at.desc())
        .all()
    )
    return ok([serialize_group(g) for g in groups])


@router.get("/groups/{group_id}")
def get_group_detail(group_id: str, request: Request, db: Session = Depends(get_db)):
    require_user(request, db)
    group = get_group(db, group_id)
    return ok(serialize_group(group))


@router.post("/groups/{group_id}/join", status_code=201)
def request_to_join(
    group_id: str,
    data: JoinRequestIn,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    group = get_group(db, group_id)

    membership = get_membership(group, user.id)
    if membership and membership.status == "approved":
        raise conflict("You are already a member of this group")
    if membership and membership.status == "pending":
        raise conflict("Join request already pending")
    if group.available_slots <= 0:
        raise validation_error("Group is full")

    if membership:
        # Previously rejected: reopen the request
        membership.status = "pending"
        membership.message = data.message
    else:
        membership = GroupMember(
            group_id=group.id, user_id=user.id, role="member", status="pending", message=data.message,
        )
        db.add(membership)
    db.commit()
    db.refresh(membership)
    logger.info("Join requested", extra={"extra_data": {"group_id": group.id, "user_id": user.id}})

    if group.creator_id:
        notify_user(
            db,
            group.creator_id,
            "join_request",
            "New Join Request",
            f"{user.name or 'Someone'} wants to join {group.destination or group.name}",
            sender_id=user.id,
            payload={"groupId": group.id, "userId": user.id, "message": data.message},
        )
    return ok(serialize_member(membership), message="Join request sent")


def _pending_request(db: Session, group: Group, user_id: str) -> GroupMember:
    membership = (
        db.query(GroupMember)
        .filter(GroupMember.group_id == group.id, GroupMember.user_id == user_id)
        .first()
    )
    if not membership or membership.status != "pending":
        raise not_found("Join request")
    return membership


@router.post("/groups/{group_id}/requests/{user_id}/approve")
def approve_request(group_id: str, user_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_creator(group, user)

    membership = _pending_request(db, group, user_id)
    if group.available_slots <= 0:
        raise validation_error("Group is full")

    membership.status = "approved"
    membership.joined_at = datetime.utcnow()
    group.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(group)
    logger.info("Join approved", extra={"extra_data": {"group_id": group.id, "user_id": user_id}})

    notify_user(
        db,
        user_id,
        "join_approved",
        "Join Request Approved",
        f"You are now a member of {group.destination or group.name}",
        sender_id=user.id,
        payload={"groupId": group.id},
    )
    return ok(serialize_group(group), message="Join request approved")


@router.post("/groups/{group_id}/requests/{user_id}/reject")
def reject_request(group_id: str, user_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_creator(group, user)

    membership = _pending_request(db, group, user_id)
    membership.status = "rejected"
    db.commit()
    logger.info("Join rejected", extra={"extra_data": {"group_id": group.id, "user_id": user_id}})

    notify_user(
        db,
        user_id,
        "join_rejected",
        "Join Request Declined",
        f"Your request to join {group.destination or group.name} was declined",
        sender_id=user.id,
        payload={"groupId": group.id},
    )
    return ok(message="Join request rejected")


@router.get("/groups/{group_id}/members")
def list_members(group_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_member(group, user)
    return ok([serialize_member(m) for m in group.approved_members])
