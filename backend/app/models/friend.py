import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.account import Account


REASON_MAX_LENGTH = 500


class EdgeStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Friend(Base):
    """Directed edge: ``user`` regards ``friend`` as a friend, with a status.

    A friendship is two approved edges, one in each direction.
    """

    __tablename__ = "friends"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friend"),
        CheckConstraint("user_id <> friend_id", name="ck_friend_not_self"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    friend_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    status: Mapped[EdgeStatus] = mapped_column(
        Enum(
            EdgeStatus,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=EdgeStatus.PENDING,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Set iff status != pending.
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reason: Mapped[str | None] = mapped_column(String(REASON_MAX_LENGTH))

    user: Mapped[Account] = relationship(foreign_keys=[user_id])
    friend: Mapped[Account] = relationship(foreign_keys=[friend_id])
