from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


# --- Users ---

class UpdateMeIn(BaseModel):
    name: str | None = None
    email: str | None = None
    upi_id: str | None = Field(None, alias="upiId")

    model_config = {"populate_by_name": True}


# --- Groups ---

class CreateGroupIn(BaseModel):
    name: str
    destination: str | None = None
    description: str | None = None
    max_members: int = Field(10, alias="maxMembers", ge=2, le=20)
    budget_min: Decimal | None = Field(None, alias="budgetMin", ge=0)
    budget_max: Decimal | None = Field(None, alias="budgetMax", ge=0)
    currency: str = "INR"

    model_config = {"populate_by_name": True}


class JoinRequestIn(BaseModel):
    message: str | None = Field(None, max_length=500)


class InviteIn(BaseModel):
    user_ids: list[str] = Field(alias="userIds", min_length=1)
    message: str | None = Field(None, max_length=500)

    model_config = {"populate_by_name": True}


class InvitationResponseIn(BaseModel):
    status: str


# --- Expenses ---

class SplitEntryIn(BaseModel):
    user_id: str = Field(alias="userId")
    amount: Decimal | None = None
    percentage: Decimal | None = None
    share: Decimal | None = None

    model_config = {"populate_by_name": True}


class ExpenseIn(BaseModel):
    group_id: str = Field(alias="groupId")
    description: str
    amount: Decimal
    category: str | None = None
    split_between: list[str] | None = Field(None, alias="splitBetween")
    custom_splits: list[SplitEntryIn] = Field(default_factory=list, alias="customSplits")
    split_method: str = Field("equal", alias="splitMethod")
    paid_by: str | None = Field(None, alias="paidBy")
    notes: str | None = None
    receipt_image: str | None = Field(None, alias="receiptImage")
    date: datetime | None = None

    model_config = {"populate_by_name": True}


class UpdateExpenseIn(BaseModel):
    description: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    notes: str | None = None
    receipt_image: str | None = Field(None, alias="receiptImage")

    model_config = {"populate_by_name": True}


class ExpenseStatusIn(BaseModel):
    status: str
