# identity_bridge/core/database.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from identity_bridge.core.config import settings


def build_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(
        url,
        pool_pre_ping=True,   # checks stale connections
        connect_args=connect_args,
    )


# Local identity store. The legacy user store has its own engine (federation/gateway.py).
engine = build_engine(settings.LOCAL_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
