# identity_bridge/federation/provider.py
"""
Inbound identity-lookup contract.

This is the surface the identity platform (and the operator routes) use to find
federated users and to check their passwords. Lookups never raise: a miss or an
unavailable legacy store is simply "no user".
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError

from identity_bridge.core.config import Settings
from identity_bridge.core.security import verify_legacy_password
from identity_bridge.federation.gateway import DEFAULT_SEARCH_LIMIT, ExternalUserGateway, UserTableMapping
from identity_bridge.federation.projection import FederatedUser, ReadOnlyIdentity, external_id_from
from identity_bridge.federation.reconciler import ImportOutcome, ImportReconciler

logger = logging.getLogger(__name__)

PASSWORD_CREDENTIAL = "password"

# Search parameter keys, in precedence order
SEARCH = "search"
SEARCH_USERNAME = "username"
SEARCH_EMAIL = "email"
SEARCH_FIRST_NAME = "first_name"
SEARCH_LAST_NAME = "last_name"

_FIELD_SEARCHES = (
    (SEARCH_USERNAME, "email"),  # usernames are emails
    (SEARCH_EMAIL, "email"),
    (SEARCH_FIRST_NAME, "first_name"),
    (SEARCH_LAST_NAME, "last_name"),
)

_LIST_ALL_TERMS = {"", "*"}


class FederationProvider:
    def __init__(
        self,
        gateway: ExternalUserGateway | None,
        provider_id: str,
        *,
        reconciler: ImportReconciler | None = None,
        import_users: bool = True,
    ) -> None:
        self._gateway = gateway
        self._provider_id = provider_id
        self._reconciler = reconciler
        self._import_users = import_users and reconciler is not None

        if gateway is None:
            logger.error("No external user store configured; federation provider %s is disabled", provider_id)

    @classmethod
    def from_settings(cls, settings: Settings, session_factory=None) -> FederationProvider:
        url = settings.external_database_url
        gateway = None
        if url:
            try:
                gateway = ExternalUserGateway.from_url(
                    url,
                    UserTableMapping.from_settings(settings),
                    validation_query=settings.EXTERNAL_VALIDATION_QUERY,
                )
            except SQLAlchemyError:
                logger.exception(
                    "Invalid external user store URL; federation provider %s is disabled",
                    settings.FEDERATION_PROVIDER_ID,
                )

        reconciler = None
        if session_factory is not None:
            reconciler = ImportReconciler(
                session_factory,
                settings.FEDERATION_PROVIDER_ID,
                settings.DEFAULT_REQUIRED_ACTIONS,
            )

        return cls(
            gateway,
            settings.FEDERATION_PROVIDER_ID,
            reconciler=reconciler,
            import_users=settings.FEDERATION_IMPORT_USERS,
        )

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def enabled(self) -> bool:
        return self._gateway is not None

    @property
    def gateway(self) -> ExternalUserGateway | None:
        return self._gateway

    def close(self) -> None:
        if self._gateway is not None:
            self._gateway.dispose()

    # -------------------------
    # Lookups
    # -------------------------
    def lookup_by_id(self, user_id: str) -> FederatedUser | None:
        if self._gateway is None or not user_id:
            return None
        record = self._gateway.get_by_id(external_id_from(user_id))
        return self._adapt(record)

    def lookup_by_username(self, username: str) -> FederatedUser | None:
        return self.lookup_by_email(username)

    def lookup_by_email(self, email: str) -> FederatedUser | None:
        if self._gateway is None or not email:
            return None
        return self._adapt(self._gateway.get_by_email(email))

    def search(
        self,
        params: Mapping[str, str | None] | str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[FederatedUser]:
        """
        Search the legacy store.

        A specific field term wins over the free-text `search` term; free text is
        matched against email. No term at all (or "*") lists every user.
        """
        if self._gateway is None:
            return []

        if params is None or isinstance(params, str):
            params = {SEARCH: params}

        offset = max(offset or 0, 0)

        for key, field_name in _FIELD_SEARCHES:
            term = params.get(key)
            if term:
                return self._search_field(field_name, term, offset, limit)

        term = (params.get(SEARCH) or "").strip()
        if term in _LIST_ALL_TERMS:
            records = self._gateway.list_all(offset=offset, limit=limit)
            return [FederatedUser(r, self._provider_id) for r in records]

        return self._search_field("email", term, offset, limit)

    def search_by_attribute(self, name: str, value: str) -> list[FederatedUser]:
        return []

    def group_members(self, group: Any, offset: int = 0, limit: int | None = None) -> list[FederatedUser]:
        return []

    def count(self) -> int:
        if self._gateway is None:
            return 0
        return self._gateway.count()

    # -------------------------
    # Credentials
    # -------------------------
    def supports_credential_type(self, credential_type: str) -> bool:
        return credential_type == PASSWORD_CREDENTIAL

    def is_configured_for(self, identity: ReadOnlyIdentity, credential_type: str) -> bool:
        return self.supports_credential_type(credential_type)

    def validate_credential(
        self,
        identity: ReadOnlyIdentity,
        plaintext: str | None,
        credential_type: str = PASSWORD_CREDENTIAL,
    ) -> bool:
        """
        Check a password against the legacy store and import on success.

        The result reflects only the password check; a failed import is logged
        and does not turn a valid login into a rejected one.
        """
        if self._gateway is None or not self.supports_credential_type(credential_type):
            return False

        email = getattr(identity, "email", None)
        if not email:
            return False

        stored_hash = self._gateway.get_password_hash(email)
        if not verify_legacy_password(plaintext, stored_hash):
            return False

        if self._import_users and isinstance(identity, FederatedUser):
            outcome = self._import(identity, plaintext)
            logger.info("Federated login for %s: import %s", email, outcome.status.value)

        return True

    # -------------------------
    # Helpers
    # -------------------------
    def _import(self, identity: FederatedUser, plaintext: str | None) -> ImportOutcome:
        return self._reconciler.reconcile(identity, plaintext)

    def _adapt(self, record) -> FederatedUser | None:
        if record is None:
            return None
        return FederatedUser(record, self._provider_id)

    def _search_field(self, field_name: str, term: str, offset: int, limit: int | None) -> list[FederatedUser]:
        page = DEFAULT_SEARCH_LIMIT if limit is None else max(limit, 0)
        records = self._gateway.search_by_field(field_name, term, offset + page)
        return [FederatedUser(r, self._provider_id) for r in records[offset:offset + page]]
