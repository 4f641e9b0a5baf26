from datetime import datetime

from fastapi import APIRouter, Body, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import (
    get_current_account,
    get_db,
    get_friendship_service,
    require_read_access,
    require_write_access,
)
from app.models.account import Account, Visibility
from app.models.friend import REASON_MAX_LENGTH, EdgeStatus
from app.services.accounts import get_account_by_username
from app.services.friendship import FriendListing, FriendshipService, FriendsView

router = APIRouter()


class FriendDataOut(BaseModel):
    username: str
    first_name: str | None
    last_name: str | None
    logs_visibility: Visibility
    member_since: datetime


class FriendOut(BaseModel):
    user: str
    friend: str
    status: EdgeStatus
    requested_on: datetime
    evaluated_on: datetime | None
    reason: str | None
    friend_data: FriendDataOut


class EvaluateIn(BaseModel):
    reason: str | None = Field(default=None, max_length=REASON_MAX_LENGTH)


def _to_out(owner: Account, listing: FriendListing) -> FriendOut:
    edge, other = listing
    incoming = edge.friend_id == owner.id
    return FriendOut(
        user=other.username if incoming else owner.username,
        friend=owner.username if incoming else other.username,
        status=edge.status,
        requested_on=edge.requested_at,
        evaluated_on=edge.evaluated_at,
        reason=edge.reason,
        friend_data=FriendDataOut(
            username=other.username,
            first_name=other.first_name,
            last_name=other.last_name,
            logs_visibility=other.logs_visibility,
            member_since=other.created_at,
        ),
    )


@router.get("/users/{username}/friends", response_model=list[FriendOut])
def list_friends(
    view: FriendsView = Query(FriendsView.FRIENDS, alias="type"),
    owner: Account = Depends(require_read_access),
    service: FriendshipService = Depends(get_friendship_service),
):
    return [_to_out(owner, listing) for listing in service.list_friends(owner, view)]


@router.delete("/users/{username}/friends", status_code=204)
def bulk_delete_friends(
    friend_names: list[str] = Body(..., max_length=1000),
    owner: Account = Depends(require_write_access),
    service: FriendshipService = Depends(get_friendship_service),
):
    service.bulk_delete(owner, friend_names)
    return Response(status_code=204)


@router.put("/users/{username}/friends/{friend_name}", status_code=204)
def create_friend_request(
    friend_name: str,
    owner: Account = Depends(require_write_access),
    me: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    service: FriendshipService = Depends(get_friendship_service),
):
    friend = get_account_by_username(db, friend_name)
    service.request_friendship(owner, friend, me.role)
    return Response(status_code=204)


@router.delete("/users/{username}/friends/{friend_name}", status_code=204)
def delete_friend(
    friend_name: str,
    owner: Account = Depends(require_write_access),
    service: FriendshipService = Depends(get_friendship_service),
):
    service.delete_friendship(owner, friend_name)
    return Response(status_code=204)


@router.post("/users/{username}/friends/{friend_name}/approve", status_code=204)
def approve_friend_request(
    username: str,
    friend_name: str,
    payload: EvaluateIn | None = None,
    me: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    service: FriendshipService = Depends(get_friendship_service),
):
    user = get_account_by_username(db, username)
    friend = get_account_by_username(db, friend_name)
    service.approve_request(me, user, friend, payload.reason if payload else None)
    return Response(status_code=204)


@router.post("/users/{username}/friends/{friend_name}/reject", status_code=204)
def reject_friend_request(
    username: str,
    friend_name: str,
    payload: EvaluateIn | None = None,
    me: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    service: FriendshipService = Depends(get_friendship_service),
):
    user = get_account_by_username(db, username)
    friend = get_account_by_username(db, friend_name)
    service.reject_request(me, user, friend, payload.reason if payload else None)
    return Response(status_code=204)
