from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.models.account import Account
from app.services.consistency import store_errors


def find_account_by_id(db: Session, account_id: int) -> Account | None:
    with store_errors():
        return db.get(Account, account_id)


def find_account_by_username(db: Session, username: str) -> Account | None:
    username = (username or "").strip().lower()
    if not username:
        return None
    with store_errors():
        return db.execute(
            select(Account).where(func.lower(Account.username) == username)
        ).scalars().one_or_none()


def get_account_by_username(db: Session, username: str) -> Account:
    account = find_account_by_username(db, username)
    if account is None:
        raise NotFound(f"User {username!r} not found")
    return account


def account_ids_for_usernames(db: Session, usernames: Iterable[str]) -> list[int]:
    """Ids of the accounts that exist among ``usernames``; unknown names are dropped."""
    names = {n.strip().lower() for n in usernames if n and n.strip()}
    if not names:
        return []
    with store_errors():
        return list(
            db.execute(select(Account.id).where(func.lower(Account.username).in_(names))).scalars()
        )
