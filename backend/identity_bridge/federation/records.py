"""
Typed projection of one row of the legacy ``users`` table.

The legacy table has a handful of columns this service relies on (id, email,
names, verification/disabled flags, password digest) and an open set of
business columns. The former are typed fields, the latter live in an ordered,
read-only mapping so new columns flow through without code changes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping

# Standard fields that map directly onto the identity
FIELD_EMAIL = "email"
FIELD_EMAIL_VERIFIED = "email_verified"
FIELD_FIRST_NAME = "first_name"
FIELD_LAST_NAME = "last_name"
FIELD_DISABLED = "disabled"  # inverse of "enabled"

# Additional fields
FIELD_ID = "id"
FIELD_PASSWORD_DIGEST = "password_digest"
FIELD_BUSINESS_NAME = "business_name"
FIELD_BUSINESS_TYPE = "business_type"
FIELD_BUSINESS_USER = "business_user"
FIELD_CONFIRMATION_TOKEN = "confirmation_token"
FIELD_CONFIRMED = "confirmed"
FIELD_CONFIRMED_AT = "confirmed_at"
FIELD_DELETED_AT = "deleted_at"
FIELD_LAST_LOGIN_AT = "last_login_at"
FIELD_LEGACY = "legacy"
FIELD_PAYMENT_ISSUE = "payment_issue"
FIELD_PHONE_NUMBER = "phone_number"
FIELD_PROFILE_PIC = "profile_pic"
FIELD_RESET_PASSWORD_CREATED_AT = "reset_password_created_at"
FIELD_RESET_PASSWORD_TOKEN = "reset_password_token"
FIELD_STRIPE_CUSTOMER_ID = "stripe_customer_id"
FIELD_USER_CODE = "user_code"
FIELD_CREATED_AT = "created_at"
FIELD_UPDATED_AT = "updated_at"
FIELD_ROLE = "role"  # legacy role enum
FIELD_SUBROLE = "subrole"  # legacy subrole enum
FIELD_ROLE_ID = "role_id"

# Organization columns (present when the table is a view joining roles)
FIELD_ORGANIZATION_ROLE = "organization_role"
FIELD_ORGANIZATION_ROLE_ID = "organization_role_id"
FIELD_ORGANIZATION_ID = "organization_id"

# Not backed by columns yet; always absent
FIELD_DRIVER_USER = "driver_user"
FIELD_ORDERS = "orders"
FIELD_CLOSETS = "closets"

_TYPED_FIELDS = (
    FIELD_ID,
    FIELD_EMAIL,
    FIELD_FIRST_NAME,
    FIELD_LAST_NAME,
    FIELD_EMAIL_VERIFIED,
    FIELD_DISABLED,
    FIELD_PASSWORD_DIGEST,
)

_TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def stringify(value: Any) -> str:
    """Render a driver value the way it is stored in the attribute map."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclass(frozen=True)
class ExternalUserRecord:
    id: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool = False
    disabled: bool = False
    password_digest: str | None = field(default=None, repr=False)
    # Every present column as read from the store, including the typed ones.
    raw: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ExternalUserRecord:
        """
        Build a record from a result row mapping.

        Column names are lower-cased and NULL columns dropped, so the record only
        ever holds present, string-valued attributes.
        """
        values: dict[str, str] = {}
        for name, value in row.items():
            if value is None:
                continue
            values[str(name).lower()] = stringify(value)

        return cls(
            id=values.get(FIELD_ID),
            email=values.get(FIELD_EMAIL),
            first_name=values.get(FIELD_FIRST_NAME),
            last_name=values.get(FIELD_LAST_NAME),
            email_verified=parse_bool(values.get(FIELD_EMAIL_VERIFIED)),
            disabled=parse_bool(values.get(FIELD_DISABLED)),
            password_digest=values.get(FIELD_PASSWORD_DIGEST),
            raw=MappingProxyType(values),
        )

    @property
    def username(self) -> str | None:
        # Email is used as username
        return self.email

    @property
    def attributes(self) -> Mapping[str, str]:
        """Every present column, keyed by lower-case column name."""
        return self.raw

    @property
    def extra(self) -> Mapping[str, str]:
        """The open set of columns that have no typed field."""
        return MappingProxyType({k: v for k, v in self.raw.items() if k not in _TYPED_FIELDS})

    def get(self, name: str) -> str | None:
        return self.raw.get(name.lower())
