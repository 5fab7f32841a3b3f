"""create local identity tables

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "local_users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("federation_link", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("password_algorithm", sa.String(length=32), nullable=True),
        sa.Column("password_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_local_users_username", "local_users", ["username"], unique=True)
    op.create_index("ix_local_users_email", "local_users", ["email"])
    op.create_index("ix_local_users_federation_link", "local_users", ["federation_link"])

    op.create_table(
        "local_user_attributes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("local_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.UniqueConstraint("user_id", "name", "value", name="uq_local_user_attribute"),
    )
    op.create_index("ix_local_user_attributes_user_id", "local_user_attributes", ["user_id"])

    op.create_table(
        "local_user_required_actions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("local_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.UniqueConstraint("user_id", "action", name="uq_local_user_required_action"),
    )
    op.create_index("ix_local_user_required_actions_user_id", "local_user_required_actions", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_local_user_required_actions_user_id", table_name="local_user_required_actions")
    op.drop_table("local_user_required_actions")
    op.drop_index("ix_local_user_attributes_user_id", table_name="local_user_attributes")
    op.drop_table("local_user_attributes")
    op.drop_index("ix_local_users_federation_link", table_name="local_users")
    op.drop_index("ix_local_users_email", table_name="local_users")
    op.drop_index("ix_local_users_username", table_name="local_users")
    op.drop_table("local_users")
