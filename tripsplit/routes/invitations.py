import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from tripsplit.database import get_db
from tripsplit.deps import ensure_creator, get_group, get_membership, require_user
from tripsplit.email import send_invitation_email
from tripsplit.errors import conflict, not_found, validation_error
from tripsplit.models import INVITATION_STATUSES, GroupInvitation, GroupMember, User
from tripsplit.notifications import notify_user
from tripsplit.schemas import InvitationResponseIn, InviteIn
from tripsplit.serializers import ok, serialize_invitation

logger = logging.getLogger("tripsplit")

router = APIRouter()


def _pending_invitation(db: Session, group_id: str, user_id: str) -> GroupInvitation | None:
    return (
        db.query(GroupInvitation)
        .filter(
            GroupInvitation.group_id == group_id,
            GroupInvitation.invitee_id == user_id,
            GroupInvitation.status == "pending",
        )
        .first()
    )


@router.post("/groups/{group_id}/invitations")
def invite_to_group(
    group_id: str,
    data: InviteIn,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Invite users by id. Each id gets its own result entry; one bad id does not fail the rest."""
    user = require_user(request, db)
    group = get_group(db, group_id)
    ensure_creator(group, user)
    if group.available_slots <= 0:
        raise validation_error("Group is already full")

    results = []
    created: list[tuple[GroupInvitation, User]] = []
    for invitee_id in dict.fromkeys(data.user_ids):
        invitee = db.get(User, invitee_id)
        if invitee is None:
            results.append({"userId": invitee_id, "success": False, "type": "user_not_found"})
            continue
        membership = get_membership(group, invitee_id)
        if membership and membership.status == "approved":
            results.append({"userId": invitee_id, "success": False, "type": "already_member"})
            continue
        if _pending_invitation(db, group.id, invitee_id):
            results.append({"userId": invitee_id, "success": False, "type": "already_invited"})
            continue

        invitation = GroupInvitation(
            group_id=group.id,
            inviter_id=user.id,
            invitee_id=invitee_id,
            message=data.message or f"{user.name or 'Someone'} invited you to {group.destination or group.name}",
        )
        db.add(invitation)
        db.flush()
        created.append((invitation, invitee))
        results.append({
            "userId": invitee_id,
            "name": invitee.name,
            "invitationId": invitation.id,
            "success": True,
            "type": "new_invitation",
        })
    db.commit()

    group_name = group.destination or group.name
    for invitation, invitee in created:
        notify_user(
            db,
            invitee.id,
            "group_invitation",
            "Trip Invitation",
            f"{user.name or 'Someone'} invited you to join {group_name}",
            sender_id=user.id,
            payload={"groupId": group.id, "invitationId": invitation.id},
        )
        if invitee.email:
            background_tasks.add_task(
                send_invitation_email, invitee.email, user.name or "Someone", group_name, data.message,
            )

    invited = len(created)
    logger.info("Invitations sent", extra={"extra_data": {"group_id": group.id, "invited": invited}})
    return ok({"invitations": results, "invitedCount": invited}, message=f"{invited} invitation(s) sent")


@router.get("/invitations")
def my_invitations(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    invitations = (
        db.query(GroupInvitation)
        .filter(GroupInvitation.invitee_id == user.id, GroupInvitation.status == "pending")
        .order_by(GroupInvitation.created_at.desc())
        .all()
    )
    return ok([serialize_invitation(i) for i in invitations])


@router.post("/invitations/{invitation_id}/respond")
def respond_to_invitation(
    invitation_id: str,
    data: InvitationResponseIn,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    if data.status not in INVITATION_STATUSES or data.status == "pending":
        raise validation_error('Status must be either "accepted" or "declined"')

    invitation = db.query(GroupInvitation).filter(
        GroupInvitation.id == invitation_id, GroupInvitation.invitee_id == user.id
    ).first()
    if not invitation:
        raise not_found("Invitation")
    if invitation.status != "pending":
        raise conflict("Invitation already answered")

    group = invitation.group
    now = datetime.utcnow()
    if data.status == "accepted":
        membership = get_membership(group, user.id)
        if not (membership and membership.status == "approved"):
            if group.available_slots <= 0:
                raise validation_error("Group is full")
            if membership:
                # A pending or rejected join request becomes the membership
                membership.status = "approved"
                membership.joined_at = now
            else:
                db.add(GroupMember(
                    group_id=group.id, user_id=user.id, role="member", status="approved", joined_at=now,
                ))
            group.updated_at = now

    invitation.status = data.status
    invitation.responded_at = now
    db.commit()
    db.refresh(invitation)
    logger.info(
        "Invitation answered",
        extra={"extra_data": {"invitation_id": invitation.id, "group_id": group.id, "status": data.status}},
    )

    if group.creator_id:
        group_name = group.destination or group.name
        verb = "accepted" if data.status == "accepted" else "declined"
        notify_user(
            db,
            group.creator_id,
            f"invitation_{verb}",
            "Invitation Accepted" if verb == "accepted" else "Invitation Declined",
            f"{user.name or 'Someone'} {verb} your invitation to {group_name}",
            sender_id=user.id,
            payload={"groupId": group.id, "invitationId": invitation.id, "userId": user.id},
        )
        db.refresh(invitation)
    return ok(serialize_invitation(invitation), message=f"Invitation {data.status}")
