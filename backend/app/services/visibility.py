"""Read/write access to another account's resources.

Used as a precondition gate by every route that exposes an account's
logs, friends list or profile. Read-only; never takes locks.
"""

from sqlalchemy.orm import Session

from app.models.account import Account, Visibility
from app.models.friend import EdgeStatus
from app.services.consistency import store_errors
from app.services.relationships import RelationshipStore


def _is_self_or_admin(viewer: Account | None, owner: Account) -> bool:
    return viewer is not None and (viewer.id == owner.id or viewer.is_admin)


def can_write(viewer: Account | None, owner: Account) -> bool:
    # Visibility never grants write access.
    return _is_self_or_admin(viewer, owner)


def can_read(db: Session, viewer: Account | None, owner: Account) -> bool:
    if _is_self_or_admin(viewer, owner):
        return True

    match owner.logs_visibility:
        case Visibility.PUBLIC:
            return True
        case Visibility.FRIENDS_ONLY:
            if viewer is None:
                return False
            # Only the owner's own approved edge towards the viewer counts;
            # an approved edge viewer -> owner alone is not enough.
            with store_errors():
                return RelationshipStore(db).has_edge(owner.id, viewer.id, EdgeStatus.APPROVED)
        case _:
            return False
