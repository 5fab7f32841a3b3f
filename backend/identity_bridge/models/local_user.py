# identity_bridge/models/local_user.py
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from identity_bridge.core.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class LocalUser(Base):
    __tablename__ = "local_users"

    id = Column(String(36), primary_key=True, default=_new_id)

    # Uniqueness here is what makes first-login imports race-safe.
    username = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    enabled = Column(Boolean, nullable=False, default=True, server_default="true")
    email_verified = Column(Boolean, nullable=False, default=False, server_default="false")

    # Id of the federation provider this user mirrors; NULL for local-native accounts.
    federation_link = Column(String(255), nullable=True, index=True)

    password_hash = Column(String(255), nullable=True)
    password_algorithm = Column(String(32), nullable=True)
    password_created_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # ✅ user → attributes
    attribute_rows = relationship(
        "LocalUserAttribute",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # ✅ user → pending required actions
    required_action_rows = relationship(
        "LocalUserRequiredAction",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def required_actions(self) -> list[str]:
        return [row.action for row in self.required_action_rows]

    def attribute_map(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for row in self.attribute_rows:
            out.setdefault(row.name, []).append(row.value)
        return out


class LocalUserAttribute(Base):
    __tablename__ = "local_user_attributes"
    __table_args__ = (UniqueConstraint("user_id", "name", "value", name="uq_local_user_attribute"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("local_users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    value = Column(Text, nullable=True)

    user = relationship("LocalUser", back_populates="attribute_rows")


class LocalUserRequiredAction(Base):
    __tablename__ = "local_user_required_actions"
    __table_args__ = (UniqueConstraint("user_id", "action", name="uq_local_user_required_action"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("local_users.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(64), nullable=False)

    user = relationship("LocalUser", back_populates="required_action_rows")
