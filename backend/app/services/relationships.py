"""Relationship store: persistence of directed friend edges.

Thin query layer over the ``friends`` table. It never commits; callers
wrap mutations in ``app.services.consistency.unit_of_work``.
"""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.models.account import Account
from app.models.friend import EdgeStatus, Friend


class RelationshipStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int, friend_id: int) -> Friend | None:
        return self.db.execute(
            select(Friend).where(Friend.user_id == user_id, Friend.friend_id == friend_id)
        ).scalars().one_or_none()

    def has_edge(self, user_id: int, friend_id: int, status: EdgeStatus | None = None) -> bool:
        stmt = select(Friend.id).where(Friend.user_id == user_id, Friend.friend_id == friend_id)
        if status is not None:
            stmt = stmt.where(Friend.status == status)
        return self.db.execute(stmt).first() is not None

    def count_active(self, user_id: int) -> int:
        """Outgoing edges that count towards the friend quota."""
        return self.db.execute(
            select(func.count(Friend.id)).where(
                Friend.user_id == user_id, Friend.status != EdgeStatus.REJECTED
            )
        ).scalar_one()

    def insert(
        self,
        user_id: int,
        friend_id: int,
        *,
        status: EdgeStatus,
        requested_at: datetime,
        evaluated_at: datetime | None = None,
        reason: str | None = None,
    ) -> Friend:
        # flush() so a duplicate key fails here, inside the caller's unit of work.
        edge = Friend(
            user_id=user_id,
            friend_id=friend_id,
            status=status,
            requested_at=requested_at,
            evaluated_at=evaluated_at,
            reason=reason,
        )
        self.db.add(edge)
        self.db.flush()
        return edge

    def transition(
        self,
        edge: Friend,
        *,
        expected: EdgeStatus,
        status: EdgeStatus,
        evaluated_at: datetime | None,
        reason: str | None = None,
        requested_at: datetime | None = None,
    ) -> bool:
        """Conditionally move ``edge`` from ``expected`` to ``status``.

        Returns False when another writer changed the row first.
        """
        values = {"status": status, "evaluated_at": evaluated_at, "reason": reason}
        if requested_at is not None:
            values["requested_at"] = requested_at

        result = self.db.execute(
            update(Friend)
            .where(Friend.id == edge.id, Friend.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(edge)
        return result.rowcount == 1

    def upsert(
        self,
        user_id: int,
        friend_id: int,
        *,
        status: EdgeStatus,
        requested_at: datetime,
        evaluated_at: datetime | None,
        reason: str | None = None,
    ) -> Friend:
        """Insert or overwrite the edge keyed on ``(user_id, friend_id)``.

        Re-running with the same arguments leaves the same row behind.
        """
        edge = self.get(user_id, friend_id)
        if edge is None:
            return self.insert(
                user_id,
                friend_id,
                status=status,
                requested_at=requested_at,
                evaluated_at=evaluated_at,
                reason=reason,
            )

        edge.status = status
        edge.evaluated_at = evaluated_at
        edge.reason = reason
        self.db.flush()
        return edge

    def delete(self, user_id: int, friend_ids: Iterable[int]) -> int:
        friend_ids = list(friend_ids)
        if not friend_ids:
            return 0
        result = self.db.execute(
            delete(Friend)
            .where(Friend.user_id == user_id, Friend.friend_id.in_(friend_ids))
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    def delete_pair(self, a_id: int, b_id: int) -> int:
        result = self.db.execute(
            delete(Friend)
            .where(
                or_(
                    (Friend.user_id == a_id) & (Friend.friend_id == b_id),
                    (Friend.user_id == b_id) & (Friend.friend_id == a_id),
                )
            )
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    def outgoing(self, user_id: int, *statuses: EdgeStatus) -> list[tuple[Friend, Account]]:
        """Edges ``user -> x`` with the counterpart account, sorted by username."""
        stmt = (
            select(Friend, Account)
            .join(Account, Account.id == Friend.friend_id)
            .where(Friend.user_id == user_id)
            .order_by(Account.username)
        )
        if statuses:
            stmt = stmt.where(Friend.status.in_(statuses))
        return [(edge, other) for edge, other in self.db.execute(stmt).all()]

    def incoming(self, user_id: int, *statuses: EdgeStatus) -> list[tuple[Friend, Account]]:
        """Edges ``x -> user`` with the counterpart account, sorted by username."""
        stmt = (
            select(Friend, Account)
            .join(Account, Account.id == Friend.user_id)
            .where(Friend.friend_id == user_id)
            .order_by(Account.username)
        )
        if statuses:
            stmt = stmt.where(Friend.status.in_(statuses))
        return [(edge, other) for edge, other in self.db.execute(stmt).all()]
