from __future__ import annotations

from collections.abc import Generator, Iterator
import json
import logging
import secrets
import time
import urllib.request

from fastapi import Depends, Header, HTTPException
from jose import jwt
from jose.exceptions import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import Forbidden
from app.core.settings import settings
from app.db.session import SessionLocal
from app.models.account import USERNAME_MAX_LENGTH, Account
from app.services.accounts import find_account_by_username, get_account_by_username
from app.services.consistency import store_errors
from app.services.friendship import FriendshipService
from app.services.mailer import Mailer
from app.services.visibility import can_read, can_write

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_mailer() -> Mailer:
    return Mailer()


def get_friendship_service(
    db: Session = Depends(get_db),
    mail: Mailer = Depends(get_mailer),
) -> FriendshipService:
    return FriendshipService(db, mail, friend_limit=settings.FRIEND_LIMIT)


def _account_for(db: Session, external_id: str) -> Account | None:
    return db.execute(select(Account).where(Account.external_id == external_id)).scalars().one_or_none()


def _username_candidates(external_id: str) -> Iterator[str]:
    yield external_id[:USERNAME_MAX_LENGTH]
    # The plain id may already be another account's chosen username.
    stem = external_id[: USERNAME_MAX_LENGTH - 7]
    for _ in range(5):
        yield f"{stem}-{secrets.token_hex(3)}"


def ensure_account(db: Session, external_id: str) -> Account:
    external_id = (external_id or "").strip()
    with store_errors():
        account = _account_for(db, external_id)
        if account:
            return account

        for username in _username_candidates(external_id):
            if find_account_by_username(db, username) is not None:
                continue
            account = Account(external_id=external_id, username=username)
            db.add(account)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                # Another request provisioned the same identity first.
                existing = _account_for(db, external_id)
                if existing is not None:
                    return existing
                continue
            db.refresh(account)
            logger.info("Provisioned account %s for %s", username, external_id)
            return account

    raise HTTPException(status_code=409, detail="username already in use")


_JWKS_CACHE: dict | None = None
_JWKS_CACHE_UNTIL: float = 0


def _get_jwks() -> dict:
    global _JWKS_CACHE, _JWKS_CACHE_UNTIL

    if _JWKS_CACHE and time.time() < _JWKS_CACHE_UNTIL:
        return _JWKS_CACHE

    if not settings.AUTH0_DOMAIN:
        raise RuntimeError("AUTH0_DOMAIN not configured")

    url = f"https://{settings.AUTH0_DOMAIN}/.well-known/jwks.json"
    with urllib.request.urlopen(url, timeout=5) as resp:
        data = json.loads(resp.read().decode("utf-8"))

    _JWKS_CACHE = data
    _JWKS_CACHE_UNTIL = time.time() + 3600
    return data


def _subject_from_token(authorization: str) -> str:
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    token = parts[1]

    try:
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")
        jwks = _get_jwks()
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise HTTPException(status_code=401, detail="Unable to find signing key")

        payload = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=settings.AUTH0_AUDIENCE,
            issuer=f"https://{settings.AUTH0_DOMAIN}/",
        )
    except HTTPException:
        raise
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing sub")
    return str(sub)


def get_optional_user_id(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> str | None:
    """External id of the caller, or None for anonymous requests."""
    # Dev fallback until Auth0 is configured.
    auth0_configured = bool(settings.AUTH0_DOMAIN and settings.AUTH0_AUDIENCE)
    if not auth0_configured:
        return (x_user_id or "").strip() or None

    if not authorization:
        return None
    return _subject_from_token(authorization)


def get_current_user_id(user_id: str | None = Depends(get_optional_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


def get_viewer(
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_optional_user_id),
) -> Account | None:
    if not user_id:
        return None
    return ensure_account(db, user_id)


def get_current_account(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Account:
    return ensure_account(db, user_id)


def get_owner(username: str, db: Session = Depends(get_db)) -> Account:
    """Account named by the ``{username}`` path segment."""
    return get_account_by_username(db, username)


def require_read_access(
    owner: Account = Depends(get_owner),
    viewer: Account | None = Depends(get_viewer),
    db: Session = Depends(get_db),
) -> Account:
    if not can_read(db, viewer, owner):
        raise Forbidden(f"You may not view resources belonging to {owner.username}")
    return owner


def require_write_access(
    owner: Account = Depends(get_owner),
    viewer: Account | None = Depends(get_viewer),
) -> Account:
    if not can_write(viewer, owner):
        raise Forbidden(f"You may not modify resources belonging to {owner.username}")
    return owner
