"""
Read-only identity view over a legacy user record.

The identity platform sees a federated user through a fixed set of standard
fields plus namespaced attributes: every legacy column that is neither a
standard field nor bookkeeping is exposed as ``FED_<COLUMN>``. Role and subrole
codes are translated to labels on the way out.

Federated users cannot be edited through this service; every mutator raises
ReadOnlyIdentityError.
"""
from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from identity_bridge.federation import records as f
from identity_bridge.federation.records import ExternalUserRecord
from identity_bridge.federation.roles import map_role, map_subrole

FEDERATION_ATTRIBUTE_PREFIX = "FED_"
STORAGE_ID_PREFIX = "f"

# Standard identity attribute names (camelCase, as the platform spells them)
USERNAME = "username"
EMAIL = "email"
EMAIL_VERIFIED = "emailVerified"
FIRST_NAME = "firstName"
LAST_NAME = "lastName"
ENABLED = "enabled"

# legacy column -> standard attribute
STANDARD_ATTRIBUTES = {
    f.FIELD_EMAIL: EMAIL,
    f.FIELD_EMAIL_VERIFIED: EMAIL_VERIFIED,
    f.FIELD_FIRST_NAME: FIRST_NAME,
    f.FIELD_LAST_NAME: LAST_NAME,
}

IGNORE_ATTRIBUTES = frozenset(
    {
        # Surfaced through `enabled` / the credential validator
        f.FIELD_DISABLED,
        f.FIELD_PASSWORD_DIGEST,
        # Bookkeeping we don't track
        f.FIELD_CONFIRMATION_TOKEN,
        f.FIELD_LAST_LOGIN_AT,
        f.FIELD_RESET_PASSWORD_TOKEN,
        f.FIELD_RESET_PASSWORD_CREATED_AT,
        f.FIELD_UPDATED_AT,
        # Re-emitted through the label tables
        f.FIELD_ROLE,
        f.FIELD_SUBROLE,
        f.FIELD_ROLE_ID,
    }
)

READ_ONLY_MESSAGE = "User is read-only in this federation provider"


class ReadOnlyIdentityError(Exception):
    """Raised when something tries to modify a federated (read-only) identity."""

    def __init__(self, message: str = READ_ONLY_MESSAGE) -> None:
        super().__init__(message)


def namespaced(key: str) -> str:
    return FEDERATION_ATTRIBUTE_PREFIX + key.upper()


def denamespaced(name: str) -> str | None:
    if not name.startswith(FEDERATION_ATTRIBUTE_PREFIX):
        return None
    return name[len(FEDERATION_ATTRIBUTE_PREFIX):].lower()


def storage_id(provider_id: str, external_id: str) -> str:
    return f"{STORAGE_ID_PREFIX}:{provider_id}:{external_id}"


def external_id_from(user_id: str) -> str:
    """Strip a ``f:<provider>:`` prefix; plain external ids pass through unchanged."""
    parts = user_id.split(":", 2)
    if len(parts) == 3 and parts[0] == STORAGE_ID_PREFIX:
        return parts[2]
    return user_id


ROLE_ATTRIBUTE = namespaced(f.FIELD_ROLE)
SUBROLE_ATTRIBUTE = namespaced(f.FIELD_SUBROLE)


@runtime_checkable
class ReadOnlyIdentity(Protocol):
    """The capabilities a federated identity offers: reads only."""

    @property
    def id(self) -> str: ...

    @property
    def username(self) -> str | None: ...

    @property
    def email(self) -> str | None: ...

    @property
    def enabled(self) -> bool: ...

    def fixed_field(self, name: str) -> str | bool | None: ...

    def attributes(self) -> dict[str, list[str]]: ...

    def attribute(self, name: str) -> list[str]: ...


class FederatedUser:
    """Adapter exposing an ExternalUserRecord as a platform identity."""

    def __init__(self, record: ExternalUserRecord, provider_id: str) -> None:
        self._record = record
        self._provider_id = provider_id

    def __repr__(self) -> str:
        return f"FederatedUser(id={self.id!r}, username={self.username!r})"

    # -------------------------
    # Fixed fields
    # -------------------------
    @property
    def record(self) -> ExternalUserRecord:
        return self._record

    @property
    def id(self) -> str:
        return storage_id(self._provider_id, self._record.id or "")

    @property
    def external_id(self) -> str | None:
        return self._record.id

    @property
    def federation_link(self) -> str:
        return self._provider_id

    @property
    def username(self) -> str | None:
        return self._record.email

    @property
    def email(self) -> str | None:
        return self._record.email

    @property
    def first_name(self) -> str | None:
        return self._record.first_name

    @property
    def last_name(self) -> str | None:
        return self._record.last_name

    @property
    def email_verified(self) -> bool:
        return self._record.email_verified

    @property
    def enabled(self) -> bool:
        return not self._record.disabled

    @property
    def required_actions(self) -> tuple[str, ...]:
        # Federated users never carry pending actions.
        return ()

    def fixed_field(self, name: str) -> str | bool | None:
        getter = _FIXED_FIELDS.get(name)
        if getter is None:
            return None
        return getter(self)

    # -------------------------
    # Attributes
    # -------------------------
    def attributes(self) -> dict[str, list[str]]:
        raw = self._record.attributes
        result: dict[str, list[str]] = {}

        for column, standard in STANDARD_ATTRIBUTES.items():
            value = raw.get(column)
            if value is not None:
                result[standard] = [value]

        result[ROLE_ATTRIBUTE] = [map_role(raw.get(f.FIELD_ROLE))]
        subrole = map_subrole(raw.get(f.FIELD_SUBROLE))
        if subrole is not None:
            result[SUBROLE_ATTRIBUTE] = [subrole]

        for key, value in raw.items():
            if key in STANDARD_ATTRIBUTES or key in IGNORE_ATTRIBUTES:
                continue
            result[namespaced(key)] = [value]

        return result

    def attribute(self, name: str) -> list[str]:
        for column, standard in STANDARD_ATTRIBUTES.items():
            if name == standard:
                value = self._record.get(column)
                return [value] if value is not None else []

        if name == ROLE_ATTRIBUTE:
            return [map_role(self._record.get(f.FIELD_ROLE))]

        if name == SUBROLE_ATTRIBUTE:
            subrole = map_subrole(self._record.get(f.FIELD_SUBROLE))
            return [subrole] if subrole is not None else []

        column = denamespaced(name)
        if column is None or column in IGNORE_ATTRIBUTES or column in STANDARD_ATTRIBUTES:
            return []

        value = self._record.get(column)
        return [value] if value is not None else []

    def first_attribute(self, name: str) -> str | None:
        values = self.attribute(name)
        return values[0] if values else None

    # -------------------------
    # Mutators (read-only)
    # -------------------------
    def set_username(self, username: str) -> None:
        raise ReadOnlyIdentityError()

    def set_email(self, email: str) -> None:
        raise ReadOnlyIdentityError()

    def set_first_name(self, first_name: str) -> None:
        raise ReadOnlyIdentityError()

    def set_last_name(self, last_name: str) -> None:
        raise ReadOnlyIdentityError()

    def set_email_verified(self, verified: bool) -> None:
        raise ReadOnlyIdentityError()

    def set_enabled(self, enabled: bool) -> None:
        raise ReadOnlyIdentityError()

    def set_attribute(self, name: str, values: Iterable[str]) -> None:
        raise ReadOnlyIdentityError()

    def set_single_attribute(self, name: str, value: str) -> None:
        raise ReadOnlyIdentityError()

    def remove_attribute(self, name: str) -> None:
        raise ReadOnlyIdentityError()

    def add_required_action(self, action: str) -> None:
        raise ReadOnlyIdentityError()


_FIXED_FIELDS = {
    USERNAME: lambda u: u.username,
    EMAIL: lambda u: u.email,
    "first_name": lambda u: u.first_name,
    FIRST_NAME: lambda u: u.first_name,
    "last_name": lambda u: u.last_name,
    LAST_NAME: lambda u: u.last_name,
    "email_verified": lambda u: u.email_verified,
    EMAIL_VERIFIED: lambda u: u.email_verified,
    ENABLED: lambda u: u.enabled,
}
