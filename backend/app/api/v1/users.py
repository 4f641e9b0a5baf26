from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_current_account, get_db, require_read_access
from app.core.errors import Conflict
from app.models.account import Account, Role, Visibility
from app.services.accounts import find_account_by_username
from app.services.consistency import store_errors, unit_of_work

router = APIRouter()


class ProfileOut(BaseModel):
    username: str
    first_name: str | None
    last_name: str | None
    logs_visibility: Visibility
    member_since: datetime

    @classmethod
    def from_account(cls, a: Account) -> "ProfileOut":
        return cls(
            username=a.username,
            first_name=a.first_name,
            last_name=a.last_name,
            logs_visibility=a.logs_visibility,
            member_since=a.created_at,
        )


class AccountMeOut(ProfileOut):
    email: str | None
    role: Role

    @classmethod
    def from_account(cls, a: Account) -> "AccountMeOut":
        return cls(
            **ProfileOut.from_account(a).model_dump(),
            email=a.email,
            role=a.role,
        )


class AccountMeUpdateIn(BaseModel):
    username: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    logs_visibility: Visibility | None = None


@router.get("/users/me", response_model=AccountMeOut)
def get_me(me: Account = Depends(get_current_account)):
    return AccountMeOut.from_account(me)


@router.patch("/users/me", response_model=AccountMeOut)
def update_me(
    payload: AccountMeUpdateIn,
    me: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    username = None
    if payload.username is not None:
        username = payload.username.strip()
        if not username:
            raise HTTPException(status_code=400, detail="username required")
        # Lookups are case-insensitive, so "Carol" and "carol" must not coexist.
        taken = find_account_by_username(db, username)
        if taken is not None and taken.id != me.id:
            raise Conflict(f"Username {username!r} is already in use")

    with unit_of_work(db, "email/username already in use"):
        if username is not None:
            me.username = username

        if payload.email is not None:
            me.email = payload.email.strip().lower() or None

        if payload.first_name is not None:
            me.first_name = payload.first_name.strip() or None

        if payload.last_name is not None:
            me.last_name = payload.last_name.strip() or None

        if payload.logs_visibility is not None:
            me.logs_visibility = payload.logs_visibility

    with store_errors():
        db.refresh(me)
    return AccountMeOut.from_account(me)


@router.get("/users/{username}", response_model=ProfileOut)
def get_profile(owner: Account = Depends(require_read_access)):
    return ProfileOut.from_account(owner)
