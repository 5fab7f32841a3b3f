import threading
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from identity_bridge.core.base import Base
from identity_bridge.core.security import verify_password
from identity_bridge.federation import reconciler as reconciler_module
from identity_bridge.federation.projection import FederatedUser
from identity_bridge.federation.reconciler import ImportReconciler, ImportStatus
from identity_bridge.federation.records import ExternalUserRecord
from identity_bridge.models.local_user import LocalUser
from identity_bridge.services import local_users

from conftest import DEFAULT_ACTIONS, PROVIDER_ID


def _identity(**row) -> FederatedUser:
    base = {
        "id": 1,
        "email": "alice@example.com",
        "first_name": "Alice",
        "last_name": "Anders",
        "email_verified": True,
        "business_name": "Alice Storage",
        "role": 1,
    }
    base.update(row)
    return FederatedUser(ExternalUserRecord.from_row(base), PROVIDER_ID)


def test_first_login_imports_user(reconciler, db_session):
    outcome = reconciler.reconcile(_identity(), "alice-secret")

    assert outcome.status is ImportStatus.IMPORTED
    assert outcome.imported is True

    user = local_users.get_user_by_username(db_session, "alice@example.com")
    assert user.id == outcome.local_user_id
    assert user.email == "alice@example.com"
    assert user.first_name == "Alice"
    assert user.last_name == "Anders"
    assert user.enabled is True
    assert user.email_verified is True
    assert user.federation_link == PROVIDER_ID
    assert user.required_actions == []

    attributes = user.attribute_map()
    assert attributes["FED_BUSINESS_NAME"] == ["Alice Storage"]
    assert attributes["FED_ROLE"] == ["is_client"]
    assert attributes["FED_ID"] == ["1"]
    assert attributes["origin"] == [PROVIDER_ID]
    assert "email" not in attributes

    assert user.password_algorithm == "argon2"
    assert verify_password("alice-secret", user.password_hash)


def test_new_local_users_get_default_actions(db_session):
    user = local_users.add_user(db_session, "plain@example.com", default_required_actions=DEFAULT_ACTIONS)
    db_session.commit()
    assert sorted(user.required_actions) == sorted(DEFAULT_ACTIONS)


def test_second_login_writes_nothing(reconciler, db_session):
    first = reconciler.reconcile(_identity(), "alice-secret")
    second = reconciler.reconcile(_identity(business_name="Renamed"), "other-secret")

    assert second.status is ImportStatus.ALREADY_IMPORTED
    assert second.local_user_id == first.local_user_id
    assert local_users.count_users(db_session) == 1

    user = local_users.get_user_by_id(db_session, first.local_user_id)
    assert user.attribute_map()["FED_BUSINESS_NAME"] == ["Alice Storage"]
    assert verify_password("alice-secret", user.password_hash)


def test_local_native_account_is_left_alone(reconciler, db_session):
    native = local_users.add_user(db_session, "alice@example.com")
    db_session.commit()

    outcome = reconciler.reconcile(_identity(), "alice-secret")

    assert outcome.status is ImportStatus.LOCAL_CONFLICT
    assert outcome.local_user_id == native.id
    assert outcome.imported is False

    db_session.expire_all()
    user = local_users.get_user_by_id(db_session, native.id)
    assert user.federation_link is None
    assert user.password_hash is None
    assert user.attribute_map() == {}


def test_empty_password_imports_without_credential(reconciler, db_session):
    outcome = reconciler.reconcile(_identity(), "")

    assert outcome.status is ImportStatus.IMPORTED
    user = local_users.get_user_by_id(db_session, outcome.local_user_id)
    assert user.password_hash is None


def test_identity_without_username_fails(reconciler, db_session):
    identity = FederatedUser(ExternalUserRecord.from_row({"id": 4}), PROVIDER_ID)

    outcome = reconciler.reconcile(identity, "secret")

    assert outcome.status is ImportStatus.FAILED
    assert local_users.count_users(db_session) == 0


def test_lost_race_reports_concurrent_import(reconciler, db_session, monkeypatch):
    winner = reconciler.reconcile(_identity(), "alice-secret")

    # Second caller checked before the winner committed: its lookup saw nothing.
    real_lookup = local_users.get_user_by_username
    calls = {"n": 0}

    def stale_then_real(db, username):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_lookup(db, username)

    monkeypatch.setattr(reconciler_module.local_users, "get_user_by_username", stale_then_real)

    loser = reconciler.reconcile(_identity(), "alice-secret")

    assert loser.status is ImportStatus.CONCURRENTLY_IMPORTED
    assert loser.local_user_id == winner.local_user_id
    assert db_session.query(LocalUser).count() == 1


def test_parallel_first_logins_import_once(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'local.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    reconciler = ImportReconciler(factory, PROVIDER_ID, DEFAULT_ACTIONS)

    workers = 8
    start = threading.Barrier(workers)

    def login(_):
        start.wait()
        return reconciler.reconcile(_identity(), "alice-secret")

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(login, range(workers)))

    statuses = [o.status for o in outcomes]
    assert statuses.count(ImportStatus.IMPORTED) == 1
    assert set(statuses) <= {
        ImportStatus.IMPORTED,
        ImportStatus.ALREADY_IMPORTED,
        ImportStatus.CONCURRENTLY_IMPORTED,
    }
    assert len({o.local_user_id for o in outcomes}) == 1

    db = factory()
    try:
        assert db.query(LocalUser).count() == 1
    finally:
        db.close()
    engine.dispose()


def test_store_failure_is_reported_not_raised(reconciler, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(reconciler_module.local_users, "add_user", broken)

    outcome = reconciler.reconcile(_identity(), "alice-secret")

    assert outcome.status is ImportStatus.FAILED
    assert outcome.local_user_id is None


def test_set_attributes_replaces_values(db_session):
    user = local_users.add_user(db_session, "x@example.com")
    local_users.set_attributes(db_session, user, {"FED_TAGS": ["a", "b"]})
    db_session.commit()

    local_users.set_attributes(db_session, user, {"FED_TAGS": ["b", "c"], "FED_EMPTY": []})
    db_session.commit()
    db_session.expire_all()

    reloaded = local_users.get_user_by_id(db_session, user.id)
    assert sorted(reloaded.attribute_map()["FED_TAGS"]) == ["b", "c"]
    assert "FED_EMPTY" not in reloaded.attribute_map()
