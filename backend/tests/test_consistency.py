from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import Conflict, InvalidOperation, Unavailable
from app.db.base import Base
from app.models.account import Account, Role
from app.models.friend import EdgeStatus, Friend
from app.services.consistency import store_errors, unit_of_work
from app.services.friendship import FriendshipService
from app.services.relationships import RelationshipStore


class NullMailer:
    def send_mail(self, to, subject, body):
        pass


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def service(db):
    return FriendshipService(db, NullMailer(), friend_limit=100)


@pytest.fixture()
def pair(db):
    a = Account(external_id="alice", username="alice")
    b = Account(external_id="bob", username="bob")
    db.add_all([a, b])
    db.commit()
    return a, b


def _all_edges(db) -> list[Friend]:
    db.expire_all()
    return db.execute(select(Friend).order_by(Friend.id)).scalars().all()


def test_duplicate_insert_is_a_conflict_and_session_stays_usable(db, service, pair):
    a, b = pair
    store = RelationshipStore(db)
    with unit_of_work(db):
        store.insert(a.id, b.id, status=EdgeStatus.PENDING, requested_at=service.clock())

    with pytest.raises(Conflict):
        with unit_of_work(db):
            store.insert(a.id, b.id, status=EdgeStatus.PENDING, requested_at=service.clock())

    assert len(_all_edges(db)) == 1


def test_racing_request_loses_on_unique_key(db, service, pair, monkeypatch):
    a, b = pair
    service.request_friendship(a, b, Role.USER)

    # The second writer read "no edge" before the first one committed.
    monkeypatch.setattr(service.store, "get", lambda *_: None)
    with pytest.raises(Conflict):
        service.request_friendship(a, b, Role.USER)

    [edge] = _all_edges(db)
    assert edge.status == EdgeStatus.PENDING


def test_self_edge_rejected_by_store(db, service, pair):
    a, _ = pair
    with pytest.raises(Conflict):
        with unit_of_work(db):
            RelationshipStore(db).insert(a.id, a.id, status=EdgeStatus.PENDING, requested_at=service.clock())


def test_conditional_transition_only_wins_once(db, service, pair):
    a, b = pair
    edge = service.request_friendship(a, b, Role.USER)
    store = service.store
    now = service.clock()

    with unit_of_work(db):
        first = store.transition(edge, expected=EdgeStatus.PENDING, status=EdgeStatus.APPROVED, evaluated_at=now)
    with unit_of_work(db):
        second = store.transition(edge, expected=EdgeStatus.PENDING, status=EdgeStatus.REJECTED, evaluated_at=now)

    assert first is True
    assert second is False
    assert _all_edges(db)[0].status == EdgeStatus.APPROVED


def test_lost_approval_race_writes_no_reciprocal(db, service, pair, monkeypatch):
    a, b = pair
    service.request_friendship(a, b, Role.USER)
    monkeypatch.setattr(service.store, "transition", lambda *_, **__: False)

    with pytest.raises(InvalidOperation):
        service.approve_request(b, a, b)

    edges = _all_edges(db)
    assert [(e.user_id, e.friend_id) for e in edges] == [(a.id, b.id)]


def test_failed_reciprocal_write_rolls_back_approval(db, service, pair, monkeypatch):
    a, b = pair
    service.request_friendship(a, b, Role.USER)

    def broken_upsert(*_, **__):
        raise OperationalError("INSERT INTO friends", {}, Exception("connection reset"))

    monkeypatch.setattr(service.store, "upsert", broken_upsert)
    with pytest.raises(Unavailable):
        service.approve_request(b, a, b)

    [edge] = _all_edges(db)
    assert edge.status == EdgeStatus.PENDING
    assert edge.evaluated_at is None


def test_ensure_reciprocal_repairs_half_applied_approval(db, service, pair):
    a, b = pair
    now = service.clock()
    store = RelationshipStore(db)
    with unit_of_work(db):
        store.insert(a.id, b.id, status=EdgeStatus.APPROVED, requested_at=now, evaluated_at=now)

    service.ensure_reciprocal(a, b)
    service.ensure_reciprocal(a, b)

    edges = _all_edges(db)
    assert len(edges) == 2
    forward, reverse = edges
    assert (reverse.user_id, reverse.friend_id) == (b.id, a.id)
    assert reverse.status == EdgeStatus.APPROVED
    assert reverse.evaluated_at == forward.evaluated_at


def test_ensure_reciprocal_ignores_unapproved_edges(db, service, pair):
    a, b = pair
    service.request_friendship(a, b, Role.USER)
    assert service.ensure_reciprocal(a, b) is None
    assert len(_all_edges(db)) == 1


@pytest.mark.parametrize(
    "exc",
    [
        OperationalError("SELECT 1", {}, Exception("could not connect")),
        PoolTimeoutError("QueuePool limit reached"),
    ],
)
def test_store_outages_are_retryable(exc):
    with pytest.raises(Unavailable):
        with store_errors():
            raise exc


def test_unit_of_work_rolls_back_on_domain_errors(db, pair):
    a, b = pair
    store = RelationshipStore(db)
    with pytest.raises(InvalidOperation):
        with unit_of_work(db):
            store.insert(a.id, b.id, status=EdgeStatus.PENDING, requested_at=datetime.now(timezone.utc))
            raise InvalidOperation("changed my mind")
    assert _all_edges(db) == []