# identity_bridge/services/local_users.py
"""
Local identity store helpers.

Responsibilities:
- Lookup of local users by id / username
- Creating users the way the identity platform does (default pending actions attached)
- Attribute, required-action and password-credential maintenance

None of these helpers commit; callers own the transaction.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from identity_bridge.core.security import hash_password
from identity_bridge.models.local_user import LocalUser, LocalUserAttribute, LocalUserRequiredAction

logger = logging.getLogger(__name__)

LOCAL_PASSWORD_ALGORITHM = "argon2"


def get_user_by_id(db: Session, user_id: str) -> Optional[LocalUser]:
    """Look up a local user by primary key."""
    return db.get(LocalUser, user_id)


def get_user_by_username(db: Session, username: str) -> Optional[LocalUser]:
    """Look up a local user by username (exact match)."""
    return db.query(LocalUser).filter(LocalUser.username == username).first()


def count_users(db: Session, *, federation_link: str | None = None) -> int:
    query = db.query(func.count(LocalUser.id))
    if federation_link is not None:
        query = query.filter(LocalUser.federation_link == federation_link)
    return int(query.scalar() or 0)


def add_user(
    db: Session,
    username: str,
    *,
    default_required_actions: Iterable[str] = (),
) -> LocalUser:
    """
    Stage a new local user.

    Mirrors the identity platform: new accounts start enabled and receive the
    realm's default required actions. The row is flushed so a duplicate
    username fails here with IntegrityError rather than at commit.
    """
    if not username:
        raise ValueError("username is required")

    user = LocalUser(username=username, enabled=True)
    for action in default_required_actions:
        user.required_action_rows.append(LocalUserRequiredAction(action=action))

    db.add(user)
    db.flush()
    return user


def set_attributes(db: Session, user: LocalUser, attributes: Mapping[str, Sequence[str]]) -> None:
    """
    Replace the values of each named attribute.

    Rows whose value survives are kept as-is; the unit of work inserts before it
    deletes, so re-adding an identical (user, name, value) row would collide.
    """
    for name, values in attributes.items():
        if not values:
            continue
        wanted = list(dict.fromkeys(values))
        kept: set[str] = set()
        for row in [r for r in user.attribute_rows if r.name == name]:
            if row.value in wanted and row.value not in kept:
                kept.add(row.value)
            else:
                user.attribute_rows.remove(row)
        for value in wanted:
            if value not in kept:
                user.attribute_rows.append(LocalUserAttribute(name=name, value=value))


def set_single_attribute(db: Session, user: LocalUser, name: str, value: str) -> None:
    set_attributes(db, user, {name: [value]})


def clear_required_actions(db: Session, user: LocalUser) -> list[str]:
    removed = list(user.required_actions)
    user.required_action_rows = []
    for action in removed:
        logger.debug("Removed required action '%s' for imported user: %s", action, user.username)
    return removed


def store_password_credential(db: Session, user: LocalUser, plaintext: str) -> bool:
    """Hash and attach a password credential. Empty passwords are not stored."""
    if not plaintext:
        return False

    user.password_hash = hash_password(plaintext)
    user.password_algorithm = LOCAL_PASSWORD_ALGORITHM
    user.password_created_at = datetime.now(timezone.utc)
    logger.debug("Stored password credential for user: %s", user.username)
    return True
