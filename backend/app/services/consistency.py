"""Transaction discipline for the relationship store.

Every lifecycle write runs inside ``unit_of_work`` so the writes of one
operation (e.g. approving an edge and upserting its reciprocal) commit
together or not at all. Reads go through ``store_errors`` so a dead or
saturated database surfaces as ``Unavailable`` instead of a 500.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.core.errors import Conflict, Unavailable

logger = logging.getLogger(__name__)

_UNAVAILABLE_ERRORS = (OperationalError, PoolTimeoutError)


@contextmanager
def store_errors() -> Iterator[None]:
    try:
        yield
    except _UNAVAILABLE_ERRORS as exc:
        logger.error("Relationship store unavailable: %s", exc)
        raise Unavailable("Relationship store is unavailable, try again later") from exc


@contextmanager
def unit_of_work(db: Session, conflict_message: str = "Friend relationship already exists") -> Iterator[None]:
    """Commit on success, roll back on any failure.

    A unique-key violation on ``(user_id, friend_id)`` means a concurrent
    writer got there first; it is reported as ``Conflict``.
    """
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Rejected duplicate write: %s", exc.orig)
        raise Conflict(conflict_message) from exc
    except _UNAVAILABLE_ERRORS as exc:
        db.rollback()
        logger.error("Relationship store unavailable: %s", exc)
        raise Unavailable("Relationship store is unavailable, try again later") from exc
    except BaseException:
        db.rollback()
        raise
