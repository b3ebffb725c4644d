import uuid
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, Column, String, Integer, Numeric, DateTime, ForeignKey, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from tripsplit.database import Base

EXPENSE_CATEGORIES = ("accommodation", "food", "transport", "activities", "shopping", "other")
EXPENSE_STATUSES = ("pending", "partially_settled", "settled", "cancelled")
SPLIT_METHODS = ("equal", "custom", "percentage", "shares")
NOTIFICATION_TYPES = (
    "payment_request", "payment_settled", "payment_reminder",
    "join_request", "join_approved", "join_rejected", "expense_updated",
    "group_invitation", "invitation_accepted", "invitation_declined",
)
INVITATION_STATUSES = ("pending", "accepted", "declined")


def new_uuid():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    ctk = Column(String, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    upi_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Group(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    creator_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    max_members = Column(Integer, nullable=False, default=10)
    budget_min = Column(Numeric(12, 2), nullable=True)
    budget_max = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="INR")
    # Running counter, updated in the same transaction as each expense write
    total_expenses = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")
    expenses = relationship("Expense", back_populates="group", cascade="all, delete-orphan")
    invitations = relationship("GroupInvitation", back_populates="group", cascade="all, delete-orphan")

    @property
    def approved_members(self) -> list["GroupMember"]:
        return [m for m in self.members if m.status == "approved"]

    @property
    def available_slots(self) -> int:
        return max(0, self.max_members - len(self.approved_members))


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String, primary_key=True, default=new_uuid)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, default="member")
    status = Column(String(20), nullable=False, default="pending")
    message = Column(String(500), nullable=True)
    joined_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    group = relationship("Group", back_populates="members")
    user = relationship("User")


class GroupInvitation(Base):
    __tablename__ = "group_invitations"

    id = Column(String, primary_key=True, default=new_uuid)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    inviter_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invitee_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(String(500), nullable=True)
    # At most one pending invitation per (group, invitee); enforced when inviting
    status = Column(String(20), nullable=False, default="pending")
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    group = relationship("Group", back_populates="invitations")
    inviter = relationship("User", foreign_keys=[inviter_id])
    invitee = relationship("User", foreign_keys=[invitee_id])


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=new_uuid)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    category = Column(String(20), nullable=False, default="other")
    paid_by_id = Column(String, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    added_by_id = Column(String, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    split_method = Column(String(20), nullable=False, default="equal")
    status = Column(String(20), nullable=False, default="pending", index=True)
    notes = Column(Text, nullable=True)
    receipt_image = Column(String(1000), nullable=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    group = relationship("Group", back_populates="expenses")
    paid_by = relationship("User", foreign_keys=[paid_by_id])
    added_by = relationship("User", foreign_keys=[added_by_id])
    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.position",
    )

    @property
    def settled_user_ids(self) -> list[str]:
        return [s.user_id for s in self.splits if s.settled]

    def split_for(self, user_id: str) -> "ExpenseSplit | None":
        for split in self.splits:
            if split.user_id == user_id:
                return split
        return None


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"

    id = Column(String, primary_key=True, default=new_uuid)
    expense_id = Column(String, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)
    percentage = Column(Numeric(7, 4), nullable=False, default=0)
    share = Column(Numeric(10, 4), nullable=False, default=1)
    settled = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("expense_id", "user_id"),)

    expense = relationship("Expense", back_populates="splits")
    user = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    payload = Column("metadata", JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    # Per-user insertion order; timestamps can tie
    seq = Column(Integer, nullable=False, default=0)
