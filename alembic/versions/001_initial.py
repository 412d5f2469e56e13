"""Initial schema: users and items with search indexes

Revision ID: 001
Revises:
Create Date: 2025-02-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("condition", sa.String(20), nullable=False),
        sa.Column("location", sa.String(255), nullable=False, server_default=""),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("available", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("moderation_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_items_owner_id", "items", ["owner_id"], unique=False)
    op.create_index("ix_items_title", "items", ["title"], unique=False)
    op.create_index("ix_items_category", "items", ["category"], unique=False)
    op.create_index("ix_items_condition", "items", ["condition"], unique=False)
    op.create_index(
        "ix_items_available_moderation_created",
        "items",
        ["available", "moderation_status", "created_at"],
        unique=False,
    )
    op.create_index("ix_items_coordinates", "items", ["latitude", "longitude"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_items_coordinates", "items")
    op.drop_index("ix_items_available_moderation_created", "items")
    op.drop_index("ix_items_condition", "items")
    op.drop_index("ix_items_category", "items")
    op.drop_index("ix_items_title", "items")
    op.drop_index("ix_items_owner_id", "items")
    op.drop_table("items")
    op.drop_index("ix_users_email", "users")
    op.drop_table("users")
