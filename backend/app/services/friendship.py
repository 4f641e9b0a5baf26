"""Friend request lifecycle.

An edge ``user -> friend`` starts ``pending`` and is evaluated exactly once
by ``friend`` (approve or reject). Approval also writes the reciprocal
edge ``friend -> user``, so a friendship is two approved edges. A rejected
edge is reused, not duplicated, when ``user`` asks again.

Deletes are one-sided: each account owns and removes its outbound edges.
"""

import enum
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import NamedTuple, Protocol

from sqlalchemy.orm import Session

from app.core.errors import Conflict, Forbidden, InvalidOperation, LimitExceeded, NotFound
from app.models.account import Account, Role
from app.models.friend import REASON_MAX_LENGTH, EdgeStatus, Friend
from app.services import mailer
from app.services.accounts import account_ids_for_usernames
from app.services.consistency import store_errors, unit_of_work
from app.services.relationships import RelationshipStore

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    def send_mail(self, to: str, subject: str, body: str) -> None: ...


class FriendsView(str, enum.Enum):
    FRIENDS = "friends"
    INCOMING = "requests-incoming"
    OUTGOING = "requests-outgoing"


class FriendListing(NamedTuple):
    edge: Friend
    counterpart: Account


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FriendshipService:
    def __init__(
        self,
        db: Session,
        mail: MailSender,
        friend_limit: int,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.store = RelationshipStore(db)
        self.mail = mail
        self.friend_limit = friend_limit
        self.clock = clock

    # -- queries -----------------------------------------------------------

    def get_edge(self, user: Account, friend: Account) -> Friend:
        with store_errors():
            edge = self.store.get(user.id, friend.id)
        if edge is None:
            raise NotFound(f"No friend request from {user.username} to {friend.username}")
        return edge

    def list_friends(self, owner: Account, view: FriendsView = FriendsView.FRIENDS) -> list[FriendListing]:
        with store_errors():
            match view:
                case FriendsView.FRIENDS:
                    rows = self.store.outgoing(owner.id, EdgeStatus.APPROVED)
                case FriendsView.INCOMING:
                    rows = self.store.incoming(owner.id, EdgeStatus.PENDING)
                case FriendsView.OUTGOING:
                    rows = self.store.outgoing(owner.id, EdgeStatus.PENDING, EdgeStatus.REJECTED)
                case _:
                    raise InvalidOperation(f"Unknown friends view {view!r}")
        return [FriendListing(edge, other) for edge, other in rows]

    # -- lifecycle ---------------------------------------------------------

    def request_friendship(self, user: Account, friend: Account, requester_role: Role) -> Friend:
        """Create (or re-open) the pending edge ``user -> friend``.

        Admins skip the request step entirely and link both sides.
        """
        if user.id == friend.id:
            raise InvalidOperation("Cannot add yourself as a friend")
        if requester_role == Role.ADMIN:
            return self.link_friends(user, friend)

        now = self.clock()
        with unit_of_work(self.db, f"Friend request to {friend.username} already exists"):
            if self.store.has_edge(friend.id, user.id):
                raise Conflict(
                    f"{friend.username} already has a friend relationship with {user.username}; "
                    "approve or reject that request instead"
                )

            edge = self.store.get(user.id, friend.id)
            if edge is not None and edge.status != EdgeStatus.REJECTED:
                raise Conflict(f"Friend request to {friend.username} already exists")

            if self.store.count_active(user.id) >= self.friend_limit:
                raise LimitExceeded(f"Friend limit of {self.friend_limit} reached")

            if edge is None:
                edge = self.store.insert(
                    user.id, friend.id, status=EdgeStatus.PENDING, requested_at=now
                )
            elif not self.store.transition(
                edge,
                expected=EdgeStatus.REJECTED,
                status=EdgeStatus.PENDING,
                evaluated_at=None,
                requested_at=now,
            ):
                raise Conflict(f"Friend request to {friend.username} already exists")

        logger.info("Friend request %s -> %s", user.username, friend.username)
        self._notify(
            friend,
            "Dive Buddy Request",
            mailer.new_friend_request_email(user.full_name, friend.username, friend.friendly_name),
        )
        return edge

    def link_friends(self, user: Account, friend: Account) -> Friend:
        """Administrative link: both edges approved, replacing whatever was there."""
        if user.id == friend.id:
            raise InvalidOperation("Cannot add yourself as a friend")

        now = self.clock()
        with unit_of_work(self.db):
            self.store.delete_pair(user.id, friend.id)
            edge = self.store.insert(
                user.id, friend.id, status=EdgeStatus.APPROVED, requested_at=now, evaluated_at=now
            )
            self.store.insert(
                friend.id, user.id, status=EdgeStatus.APPROVED, requested_at=now, evaluated_at=now
            )

        logger.info("Admin linked %s <-> %s", user.username, friend.username)
        return edge

    def approve_request(self, caller: Account, user: Account, friend: Account, reason: str | None = None) -> Friend:
        """``friend`` approves the pending edge ``user -> friend``."""
        edge = self._evaluate(caller, user, friend, EdgeStatus.APPROVED, reason)
        self._notify(
            user,
            "Dive Buddy Request Accepted",
            mailer.approve_friend_request_email(user.friendly_name, friend.username, friend.full_name),
        )
        return edge

    def reject_request(self, caller: Account, user: Account, friend: Account, reason: str | None = None) -> Friend:
        """``friend`` rejects the pending edge ``user -> friend``. The reverse edge is untouched."""
        edge = self._evaluate(caller, user, friend, EdgeStatus.REJECTED, reason)
        self._notify(
            user,
            "Dive Buddy Request Rejected",
            mailer.reject_friend_request_email(user.friendly_name, friend.full_name, reason),
        )
        return edge

    def delete_friendship(self, user: Account, friend_username: str) -> int:
        """Remove ``user -> friend``. Deleting a missing edge is a no-op."""
        return self.bulk_delete(user, [friend_username])

    def bulk_delete(self, user: Account, friend_usernames: Iterable[str]) -> int:
        friend_ids = account_ids_for_usernames(self.db, friend_usernames)
        with unit_of_work(self.db):
            deleted = self.store.delete(user.id, friend_ids)
        logger.info("Deleted %d friend edge(s) from %s", deleted, user.username)
        return deleted

    def ensure_reciprocal(self, user: Account, friend: Account) -> Friend | None:
        """Re-apply the reciprocal write of an approval.

        Safe to run any number of times; returns None when ``user -> friend``
        is not approved and there is nothing to mirror.
        """
        with unit_of_work(self.db):
            edge = self.store.get(user.id, friend.id)
            if edge is None or edge.status != EdgeStatus.APPROVED:
                return None
            mirror = self.store.upsert(
                friend.id,
                user.id,
                status=EdgeStatus.APPROVED,
                requested_at=edge.requested_at,
                evaluated_at=edge.evaluated_at,
            )
        return mirror

    # -- internals ---------------------------------------------------------

    def _evaluate(
        self,
        caller: Account,
        user: Account,
        friend: Account,
        status: EdgeStatus,
        reason: str | None,
    ) -> Friend:
        # Only the addressed account may act, admins included.
        if caller.id != friend.id:
            raise Forbidden("Only the recipient of a friend request may approve or reject it")
        if reason is not None and len(reason) > REASON_MAX_LENGTH:
            raise InvalidOperation(f"Reason must be at most {REASON_MAX_LENGTH} characters")

        edge = self.get_edge(user, friend)
        if edge.status != EdgeStatus.PENDING:
            raise InvalidOperation(f"Friend request has already been {edge.status.value}")

        now = self.clock()
        with unit_of_work(self.db, "Friend request was evaluated concurrently"):
            if not self.store.transition(
                edge, expected=EdgeStatus.PENDING, status=status, evaluated_at=now, reason=reason
            ):
                raise InvalidOperation("Friend request has already been evaluated")
            if status == EdgeStatus.APPROVED:
                # Same transaction as the transition above; upsert keeps a retry harmless.
                self.store.upsert(
                    friend.id,
                    user.id,
                    status=EdgeStatus.APPROVED,
                    requested_at=now,
                    evaluated_at=now,
                )

        logger.info("Friend request %s -> %s %s", user.username, friend.username, status.value)
        return edge

    def _notify(self, to: Account, subject: str, body: str) -> None:
        if not to.email:
            logger.info("Skipping %r notification, %s has no e-mail", subject, to.username)
            return
        try:
            self.mail.send_mail(to.email, subject, body)
        except Exception:
            logger.exception("Failed to send %r e-mail to %s", subject, to.email)
