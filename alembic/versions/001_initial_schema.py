"""initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, JSONB, UUID

from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LISTING_STATUSES = ("pending", "active", "rejected", "sold", "cancelled", "expired")
NOTIFICATION_TYPES = ("info", "success", "warning", "admin")


def _listing_columns() -> list[sa.Column]:
    return [
        sa.Column("owner_id", UUID(as_uuid=True), nullable=False),
        sa.Column("server", sa.String(64), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default="TRY"),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("discord", sa.String(64), nullable=True),
        sa.Column("image_urls", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column(
            "status",
            ENUM(*LISTING_STATUSES, name="listing_status", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    listing_status = sa.Enum(*LISTING_STATUSES, name="listing_status")
    listing_status.create(op.get_bind(), checkfirst=True)
    notification_type = sa.Enum(*NOTIFICATION_TYPES, name="notification_type")
    notification_type.create(op.get_bind(), checkfirst=True)

    # Live listings
    op.create_table(
        "listings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        *_listing_columns(),
        # Bumped on every write; conditional writes compare on it
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])
    op.create_index("ix_listings_server", "listings", ["server"])
    op.create_index("ix_listings_category", "listings", ["category"])
    op.create_index("ix_listings_status", "listings", ["status"])
    op.create_index("ix_listings_owner_status", "listings", ["owner_id", "status"])
    op.create_index("ix_listings_status_created", "listings", ["status", "created_at"])

    # Append-only snapshots of removed listings
    op.create_table(
        "archived_listings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("original_id", UUID(as_uuid=True), nullable=False),
        *_listing_columns(),
        sa.Column(
            "deleted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("deleted_by", UUID(as_uuid=True), nullable=True),
        sa.UniqueConstraint("original_id", name="uq_archived_listings_original_id"),
    )
    op.create_index("ix_archived_listings_owner_id", "archived_listings", ["owner_id"])

    op.create_table(
        "notifications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "type",
            ENUM(*NOTIFICATION_TYPES, name="notification_type", create_type=False),
            nullable=False,
        ),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("listing_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])

    # Read-only here; owned by the auth service
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="user"),
        sa.Column("avatar_url", sa.String(2048), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )


def downgrade() -> None:
    op.drop_table("users")
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_archived_listings_owner_id", table_name="archived_listings")
    op.drop_table("archived_listings")
    for index in (
        "ix_listings_status_created",
        "ix_listings_owner_status",
        "ix_listings_status",
        "ix_listings_category",
        "ix_listings_server",
        "ix_listings_owner_id",
    ):
        op.drop_index(index, table_name="listings")
    op.drop_table("listings")
    sa.Enum(name="notification_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="listing_status").drop(op.get_bind(), checkfirst=True)
