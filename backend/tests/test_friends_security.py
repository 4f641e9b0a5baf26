from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db, get_mailer
from app.db.base import Base
from app.models.account import Account, Role, Visibility
from app.models.friend import EdgeStatus, Friend
from app.main import app


class NullMailer:
    def send_mail(self, to, subject, body):
        pass


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with factory() as db:
        db.add_all(
            [
                Account(external_id="priv", username="priv", logs_visibility=Visibility.PRIVATE),
                Account(external_id="fo", username="fo", logs_visibility=Visibility.FRIENDS_ONLY),
                Account(external_id="pub", username="pub", logs_visibility=Visibility.PUBLIC),
                Account(external_id="root", username="root", role=Role.ADMIN),
                Account(external_id="buddy", username="buddy"),
            ]
        )
        db.commit()
    return factory


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = NullMailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _link(session_factory, user, friend, status=EdgeStatus.APPROVED):
    now = datetime.now(timezone.utc)
    with session_factory() as db:
        ids = {a.username: a.id for a in db.execute(select(Account)).scalars()}
        db.add(
            Friend(
                user_id=ids[user],
                friend_id=ids[friend],
                status=status,
                requested_at=now,
                evaluated_at=None if status == EdgeStatus.PENDING else now,
            )
        )
        db.commit()


def _as(username):
    return {"X-User-Id": username}


@pytest.mark.parametrize("owner, expected", [("priv", 403), ("fo", 403), ("pub", 200)])
def test_anonymous_friend_list_access(client, owner, expected):
    r = client.get(f"/api/v1/users/{owner}/friends")
    assert r.status_code == expected
    if expected == 403:
        assert r.json()["error"] == "forbidden"


def test_private_friends_hidden_even_when_friended(client, session_factory):
    _link(session_factory, "priv", "pub")
    _link(session_factory, "pub", "priv")
    assert client.get("/api/v1/users/priv/friends", headers=_as("pub")).status_code == 403


def test_friends_only_needs_owner_edge(client, session_factory):
    assert client.get("/api/v1/users/fo/friends", headers=_as("pub")).status_code == 403

    # pub's own approved edge towards fo does not open fo's lists.
    _link(session_factory, "pub", "fo")
    assert client.get("/api/v1/users/fo/friends", headers=_as("pub")).status_code == 403

    _link(session_factory, "fo", "pub")
    r = client.get("/api/v1/users/fo/friends", headers=_as("pub"))
    assert r.status_code == 200
    assert [f["friend"] for f in r.json()] == ["pub"]


@pytest.mark.parametrize("owner", ["priv", "fo", "pub"])
def test_admin_reads_everything(client, owner):
    assert client.get(f"/api/v1/users/{owner}/friends", headers=_as("root")).status_code == 200
    assert client.get(f"/api/v1/users/{owner}", headers=_as("root")).status_code == 200


def test_profiles_follow_the_same_rules(client):
    assert client.get("/api/v1/users/pub").status_code == 200
    assert client.get("/api/v1/users/fo").status_code == 403
    assert client.get("/api/v1/users/priv", headers=_as("priv")).json()["username"] == "priv"
    assert client.get("/api/v1/users/nobody").status_code == 404


@pytest.mark.parametrize("headers", [{}, {"X-User-Id": "priv"}])
def test_only_owner_or_admin_can_change_friends(client, session_factory, headers):
    _link(session_factory, "pub", "buddy")
    _link(session_factory, "buddy", "pub")

    assert client.delete("/api/v1/users/pub/friends/buddy", headers=headers).status_code == 403
    assert client.request("DELETE", "/api/v1/users/pub/friends", json=["buddy"], headers=headers).status_code == 403
    assert client.put("/api/v1/users/pub/friends/priv", headers=headers).status_code == 403

    # Friendship does not grant write access either.
    assert client.delete("/api/v1/users/pub/friends/buddy", headers=_as("buddy")).status_code == 403

    assert client.delete("/api/v1/users/pub/friends/buddy", headers=_as("root")).status_code == 204
    assert client.get("/api/v1/users/pub/friends", headers=_as("pub")).json() == []


def test_admin_may_not_approve_on_behalf_of_others(client, session_factory):
    _link(session_factory, "pub", "buddy", EdgeStatus.PENDING)

    r = client.post("/api/v1/users/pub/friends/buddy/approve", headers=_as("root"))
    assert r.status_code == 403
    r = client.post("/api/v1/users/pub/friends/buddy/reject", headers=_as("pub"))
    assert r.status_code == 403

    assert client.post("/api/v1/users/pub/friends/buddy/approve", headers=_as("buddy")).status_code == 204
