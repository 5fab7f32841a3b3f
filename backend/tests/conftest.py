import os

# Keep tests independent of a developer's shell / .env.
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("LOCAL_DATABASE_URL", "sqlite+pysqlite:///:memory:")

import httpx
import pytest
from passlib.hash import bcrypt as bcrypt_hash
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from identity_bridge.core.base import Base
from identity_bridge.federation.gateway import ExternalUserGateway
from identity_bridge.federation.provider import FederationProvider
from identity_bridge.federation.reconciler import ImportReconciler

# Import models so they register with SQLAlchemy metadata.
from identity_bridge.models.local_user import LocalUser, LocalUserAttribute, LocalUserRequiredAction  # noqa: F401

PROVIDER_ID = "legacy-test-provider"
DEFAULT_ACTIONS = ("VERIFY_EMAIL", "UPDATE_PROFILE")

LEGACY_USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    first_name VARCHAR(255),
    last_name VARCHAR(255),
    password_digest VARCHAR(255),
    email_verified BOOLEAN DEFAULT 0,
    disabled BOOLEAN DEFAULT 0,
    business_name VARCHAR(255),
    business_type VARCHAR(255),
    business_user BOOLEAN,
    confirmed BOOLEAN,
    confirmation_token VARCHAR(255),
    legacy BOOLEAN,
    payment_issue BOOLEAN,
    phone_number VARCHAR(64),
    user_code VARCHAR(64),
    stripe_customer_id VARCHAR(64),
    role INTEGER DEFAULT 0 NOT NULL,
    subrole INTEGER,
    role_id VARCHAR(36),
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""


def legacy_hash(password: str, ident: str = "2b") -> str:
    """bcrypt hash as the legacy application would have stored it (low cost for speed)."""
    return bcrypt_hash.using(rounds=4, ident=ident).hash(password)


def insert_legacy_user(engine, **columns) -> None:
    names = ", ".join(columns)
    params = ", ".join(f":{name}" for name in columns)
    with engine.begin() as conn:
        conn.execute(text(f"INSERT INTO users ({names}) VALUES ({params})"), columns)


@pytest.fixture()
def legacy_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.execute(text(LEGACY_USERS_DDL))
    yield engine
    engine.dispose()


@pytest.fixture()
def legacy_users(legacy_engine):
    """Three legacy rows: a business client, a driver, and a disabled account."""
    insert_legacy_user(
        legacy_engine,
        id=1,
        email="alice@example.com",
        first_name="Alice",
        last_name="Anders",
        password_digest=legacy_hash("alice-secret"),
        email_verified=1,
        business_name="Alice Storage",
        business_user=1,
        confirmed=1,
        confirmation_token="tok-123",
        phone_number="+15550001",
        role=1,
        created_at="2020-01-02 03:04:05",
    )
    insert_legacy_user(
        legacy_engine,
        id=2,
        email="bob@example.com",
        first_name="Bob",
        last_name="Baker",
        password_digest=legacy_hash("bob-secret", ident="2a"),
        role=0,
        subrole=5,
    )
    insert_legacy_user(
        legacy_engine,
        id=3,
        email="carol@example.org",
        first_name="Carol",
        last_name="Baker",
        password_digest=legacy_hash("carol-secret"),
        disabled=1,
        role=2,
    )
    return legacy_engine


@pytest.fixture()
def gateway(legacy_users):
    return ExternalUserGateway(legacy_users)


@pytest.fixture()
def local_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(local_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=local_engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def reconciler(session_factory):
    return ImportReconciler(session_factory, PROVIDER_ID, DEFAULT_ACTIONS)


@pytest.fixture()
def provider(gateway, reconciler):
    return FederationProvider(gateway, PROVIDER_ID, reconciler=reconciler, import_users=True)


@pytest.fixture()
def mock_http():
    """
    httpx client whose transport is driven by the test.

    Usage:
        mock_http.handler = lambda request: httpx.Response(200, json={...})
    """

    class _Recorder:
        def __init__(self) -> None:
            self.handler = lambda request: httpx.Response(500)
            self.requests: list[httpx.Request] = []

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.handler(request)

    recorder = _Recorder()
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    client.recorder = recorder
    yield client
    client.close()
