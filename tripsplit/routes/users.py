from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tripsplit.database import get_db
from tripsplit.deps import get_or_create_user, require_user
from tripsplit.errors import ErrorKind, LedgerError, validation_error
from tripsplit.schemas import UpdateMeIn
from tripsplit.serializers import ok, serialize_user

router = APIRouter()


@router.get("/me")
def get_me(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    return ok(serialize_user(user))


@router.patch("/me")
def update_me(data: UpdateMeIn, request: Request, db: Session = Depends(get_db)):
    user = get_or_create_user(request, db)
    if not user:
        raise LedgerError(ErrorKind.UNAUTHORIZED, "No user found for this browser")

    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        name = (data.name or "").strip()
        if not name:
            raise validation_error("Name cannot be empty")
        user.name = name
    if "email" in changes:
        user.email = data.email or None
    if "upi_id" in changes:
        upi_id = (data.upi_id or "").strip()
        if upi_id and "@" not in upi_id:
            raise validation_error("UPI ID must look like name@bank")
        user.upi_id = upi_id or None

    db.commit()
    db.refresh(user)
    return ok(serialize_user(user), message="Profile updated")
