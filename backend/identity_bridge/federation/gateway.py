# identity_bridge/federation/gateway.py
"""
Read-only access to the legacy user table.

Every lookup goes straight to the database (no caching). Database errors are
logged here and surfaced to callers as "not found" / empty results, so an
unavailable legacy store never leaks driver exceptions into authentication.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from identity_bridge.core import config as cfg
from identity_bridge.federation import records as f
from identity_bridge.federation.records import ExternalUserRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserTableMapping:
    """Names of the legacy table and of the columns the service relies on."""

    table: str = cfg.DEFAULT_USERS_TABLE
    id_field: str = cfg.DEFAULT_ID_FIELD
    email_field: str = cfg.DEFAULT_EMAIL_FIELD
    password_field: str = cfg.DEFAULT_PASSWORD_FIELD
    first_name_field: str = cfg.DEFAULT_FIRSTNAME_FIELD
    last_name_field: str = cfg.DEFAULT_LASTNAME_FIELD

    @classmethod
    def from_settings(cls, settings: cfg.Settings) -> UserTableMapping:
        return cls(
            table=settings.EXTERNAL_USERS_TABLE,
            id_field=settings.EXTERNAL_ID_FIELD,
            email_field=settings.EXTERNAL_EMAIL_FIELD,
            password_field=settings.EXTERNAL_PASSWORD_FIELD,
            first_name_field=settings.EXTERNAL_FIRSTNAME_FIELD,
            last_name_field=settings.EXTERNAL_LASTNAME_FIELD,
        )

    def canonical_names(self) -> dict[str, str]:
        """Configured column name (lower-case) -> canonical record key."""
        return {
            self.id_field.lower(): f.FIELD_ID,
            self.email_field.lower(): f.FIELD_EMAIL,
            self.password_field.lower(): f.FIELD_PASSWORD_DIGEST,
            self.first_name_field.lower(): f.FIELD_FIRST_NAME,
            self.last_name_field.lower(): f.FIELD_LAST_NAME,
        }


DEFAULT_SEARCH_LIMIT = 100
UNBOUNDED_LIMIT = 2**31 - 1


class ExternalUserGateway:
    def __init__(
        self,
        engine: Engine,
        mapping: UserTableMapping | None = None,
        *,
        validation_query: str = cfg.DEFAULT_VALIDATION_QUERY,
    ) -> None:
        self._engine = engine
        self._mapping = mapping or UserTableMapping()
        self._validation_query = validation_query
        self._canonical = self._mapping.canonical_names()

        quote = engine.dialect.identifier_preparer.quote
        self._table = ".".join(quote(part) for part in self._mapping.table.split("."))
        self._id_col = quote(self._mapping.id_field)
        self._email_col = quote(self._mapping.email_field)
        self._password_col = quote(self._mapping.password_field)

        self._search_columns = {
            "username": self._email_col,  # email is the username
            "email": self._email_col,
            "firstName": quote(self._mapping.first_name_field),
            "first_name": quote(self._mapping.first_name_field),
            "lastName": quote(self._mapping.last_name_field),
            "last_name": quote(self._mapping.last_name_field),
        }

    @classmethod
    def from_url(
        cls,
        url: str,
        mapping: UserTableMapping | None = None,
        *,
        validation_query: str = cfg.DEFAULT_VALIDATION_QUERY,
        **engine_kwargs: Any,
    ) -> ExternalUserGateway:
        engine = create_engine(url, pool_pre_ping=True, **engine_kwargs)
        logger.info("External user store engine created (dialect=%s)", engine.dialect.name)
        return cls(engine, mapping, validation_query=validation_query)

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        self._engine.dispose()

    # -------------------------
    # Queries
    # -------------------------
    def check_connection(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text(self._validation_query))
        except SQLAlchemyError:
            logger.exception("Failed to establish connection to the external user store")
            return False
        return True

    def get_password_hash(self, email: str) -> str | None:
        stmt = text(f"SELECT {self._password_col} FROM {self._table} WHERE {self._email_col} = :email")
        try:
            with self._engine.connect() as conn:
                value = conn.execute(stmt, {"email": email}).scalar()
        except SQLAlchemyError:
            logger.exception("Error retrieving password hash")
            return None
        return str(value) if value is not None else None

    def get_by_id(self, user_id: str) -> ExternalUserRecord | None:
        # Compare as text so UUID keys need no driver-specific cast.
        stmt = text(f"SELECT * FROM {self._table} WHERE CAST({self._id_col} AS VARCHAR) = :id")
        return self._fetch_one(stmt, {"id": user_id}, "Error fetching user by ID")

    def get_by_email(self, email: str) -> ExternalUserRecord | None:
        stmt = text(f"SELECT * FROM {self._table} WHERE {self._email_col} = :email")
        return self._fetch_one(stmt, {"email": email}, "Error fetching user by email")

    def get_by_username(self, username: str) -> ExternalUserRecord | None:
        return self.get_by_email(username)

    def search_by_field(
        self, field_name: str, term: str, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[ExternalUserRecord]:
        column_name = self._search_columns.get(field_name)
        if column_name is None or limit <= 0:
            return []

        stmt = text(
            f"SELECT * FROM {self._table} WHERE {column_name} LIKE :pattern ORDER BY {self._id_col} LIMIT :limit"
        )
        params = {"pattern": f"%{term}%", "limit": limit}
        return self._fetch_many(stmt, params, "Error searching for users")[:limit]

    def list_all(self, offset: int = 0, limit: int | None = None) -> list[ExternalUserRecord]:
        stmt = text(f"SELECT * FROM {self._table} ORDER BY {self._id_col} LIMIT :limit OFFSET :offset")
        params = {
            "limit": UNBOUNDED_LIMIT if limit is None else max(limit, 0),
            "offset": max(offset, 0),
        }
        return self._fetch_many(stmt, params, "Error fetching all users")

    def count(self) -> int:
        stmt = text(f"SELECT COUNT(*) FROM {self._table}")
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(stmt).scalar() or 0)
        except SQLAlchemyError:
            logger.exception("Error counting users")
            return 0

    # -------------------------
    # Helpers
    # -------------------------
    def _fetch_one(self, stmt, params: dict[str, Any], error_message: str) -> ExternalUserRecord | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt, params).mappings().first()
        except SQLAlchemyError:
            logger.exception(error_message)
            return None
        return self._map_user(row) if row is not None else None

    def _fetch_many(self, stmt, params: dict[str, Any], error_message: str) -> list[ExternalUserRecord]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt, params).mappings().all()
        except SQLAlchemyError:
            logger.exception(error_message)
            return []
        return [self._map_user(row) for row in rows]

    def _map_user(self, row: Mapping[str, Any]) -> ExternalUserRecord:
        renamed: dict[str, Any] = {}
        for name, value in row.items():
            key = str(name).lower()
            renamed[self._canonical.get(key, key)] = value
        return ExternalUserRecord.from_row(renamed)
