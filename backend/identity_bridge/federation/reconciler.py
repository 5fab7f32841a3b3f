# identity_bridge/federation/reconciler.py
"""
First-login import of a federated identity into the local identity store.

After a legacy password has been verified, the identity is copied into the
local store exactly once: fixed fields, every FED_* attribute, the federation
link and a password credential hashed with the local scheme. Later logins find
the imported user and write nothing.

Concurrent first logins for the same username race on the UNIQUE username
column; the loser rolls back and reports the winner's row.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from identity_bridge.federation.projection import FEDERATION_ATTRIBUTE_PREFIX, FederatedUser
from identity_bridge.services import local_users

logger = logging.getLogger(__name__)

ORIGIN_ATTRIBUTE = "origin"


class ImportStatus(str, enum.Enum):
    IMPORTED = "imported"
    ALREADY_IMPORTED = "already_imported"
    CONCURRENTLY_IMPORTED = "concurrently_imported"
    LOCAL_CONFLICT = "local_conflict"  # a local-native account owns the username
    FAILED = "failed"


@dataclass(frozen=True)
class ImportOutcome:
    status: ImportStatus
    local_user_id: str | None = None

    @property
    def imported(self) -> bool:
        """True when a linked local user exists after this call."""
        return self.status in (
            ImportStatus.IMPORTED,
            ImportStatus.ALREADY_IMPORTED,
            ImportStatus.CONCURRENTLY_IMPORTED,
        )


class ImportReconciler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        provider_id: str,
        default_required_actions: Iterable[str] = (),
    ) -> None:
        self._session_factory = session_factory
        self._provider_id = provider_id
        self._default_required_actions = tuple(default_required_actions)

    @property
    def provider_id(self) -> str:
        return self._provider_id

    def reconcile(self, identity: FederatedUser, plaintext: str | None) -> ImportOutcome:
        """
        Ensure the local store holds exactly one user linked to `identity`.

        Never raises for store errors; they are logged and reported as FAILED.
        """
        username = identity.username
        if not username:
            logger.warning("Cannot import federated user without a username: %s", identity.id)
            return ImportOutcome(ImportStatus.FAILED)

        db = self._session_factory()
        try:
            existing = local_users.get_user_by_username(db, username)
            if existing is not None:
                return self._classify_existing(existing, ImportStatus.ALREADY_IMPORTED)

            user = local_users.add_user(
                db,
                username,
                default_required_actions=self._default_required_actions,
            )
            self._copy_identity(db, user, identity, plaintext)
            db.commit()

            logger.info("Imported federated user: local_id=%s, username=%s", user.id, username)
            return ImportOutcome(ImportStatus.IMPORTED, user.id)

        except IntegrityError:
            db.rollback()
            existing = local_users.get_user_by_username(db, username)
            if existing is None:
                logger.exception("Import of %s hit a constraint violation with no competing row", username)
                return ImportOutcome(ImportStatus.FAILED)
            logger.info("Federated user %s was imported concurrently", username)
            return self._classify_existing(existing, ImportStatus.CONCURRENTLY_IMPORTED)

        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to import federated user: %s", username)
            return ImportOutcome(ImportStatus.FAILED)

        finally:
            db.close()

    # -------------------------
    # Helpers
    # -------------------------
    def _classify_existing(self, existing, linked_status: ImportStatus) -> ImportOutcome:
        if existing.federation_link == self._provider_id:
            return ImportOutcome(linked_status, existing.id)

        logger.warning(
            "Local account %s already owns username %s; federated import skipped",
            existing.id,
            existing.username,
        )
        return ImportOutcome(ImportStatus.LOCAL_CONFLICT, existing.id)

    def _copy_identity(self, db: Session, user, identity: FederatedUser, plaintext: str | None) -> None:
        user.email = identity.email
        user.first_name = identity.first_name
        user.last_name = identity.last_name
        user.enabled = identity.enabled
        user.email_verified = identity.email_verified
        user.federation_link = self._provider_id

        local_users.clear_required_actions(db, user)

        federated = {
            name: values
            for name, values in identity.attributes().items()
            if name.startswith(FEDERATION_ATTRIBUTE_PREFIX)
        }
        local_users.set_attributes(db, user, federated)
        local_users.set_single_attribute(db, user, ORIGIN_ATTRIBUTE, self._provider_id)

        local_users.store_password_credential(db, user, plaintext or "")
