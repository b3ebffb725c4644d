import logging

from fastapi import Request
from sqlalchemy.orm import Session

from tripsplit.errors import ErrorKind, LedgerError, forbidden, not_found
from tripsplit.models import Group, GroupMember, User

logger = logging.getLogger("tripsplit")


def get_ctk(request: Request) -> str | None:
    """Read the cookie tracking key from the request."""
    return getattr(request.state, "ctk", None)


def get_or_create_user(request: Request, db: Session) -> User | None:
    """Look up or create a User for the request's ctk cookie."""
    ctk = get_ctk(request)
    if not ctk:
        return None
    user = db.query(User).filter(User.ctk == ctk).first()
    if not user:
        user = User(ctk=ctk)
        db.add(user)
        db.flush()
    return user


def require_user(request: Request, db: Session) -> User:
    """Return the caller's User, bound to this request's session."""
    resolved = getattr(request.state, "user", None)
    user = None
    if resolved is not None:
        user = db.get(User, resolved.id)
    if user is None:
        ctk = get_ctk(request)
        if ctk:
            user = db.query(User).filter(User.ctk == ctk).first()
    if user is None:
        raise LedgerError(ErrorKind.UNAUTHORIZED, "Not authenticated")
    return user


def get_group(db: Session, group_id: str) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise not_found("Group")
    return group


def get_membership(group: Group, user_id: str) -> GroupMember | None:
    for member in group.members:
        if member.user_id == user_id:
            return member
    return None


def is_member(group: Group, user_id: str) -> bool:
    member = get_membership(group, user_id)
    return member is not None and member.status == "approved"


def ensure_member(group: Group, user: User) -> None:
    if not is_member(group, user.id):
        logger.warning("Membership check failed", extra={"extra_data": {"group_id": group.id, "user_id": user.id}})
        raise forbidden("You are not a member of this group")


def ensure_creator(group: Group, user: User) -> None:
    if group.creator_id != user.id:
        logger.warning("Creator check failed", extra={"extra_data": {"group_id": group.id, "user_id": user.id}})
        raise forbidden("Only the group creator can do this")
