"""initial schema: users, sessions, properties, bookings, audit

Revision ID: 4a7e2c91b0d3
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4a7e2c91b0d3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create user, account, session, properties, bookings and audit_events tables."""
    # Check if tables already exist (idempotent)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "user" not in existing_tables:
        op.create_table(
            "user",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False, server_default=""),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("role", sa.String(32), nullable=False, server_default="customer"),
            sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("phone_number", sa.String(64), nullable=True),
            sa.Column("property_name", sa.String(255), nullable=True),
            sa.Column("property_website", sa.String(512), nullable=True),
            sa.Column("plan_id", sa.String(64), nullable=True),
            sa.Column("payment_status", sa.String(32), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_user_role", "user", ["role"])

    if "account" not in existing_tables:
        op.create_table(
            "account",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("account_id", sa.String(320), nullable=False),
            sa.Column("provider_id", sa.String(64), nullable=False, server_default="credential"),
            sa.Column("user_id", sa.String(36), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
            sa.Column("password", sa.String(255), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "session" not in existing_tables:
        op.create_table(
            "session",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
            sa.Column("scope", sa.String(16), nullable=False),
            sa.Column("user_id", sa.String(36), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_session_user", "session", ["user_id"])

    if "properties" not in existing_tables:
        op.create_table(
            "properties",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("owner_id", sa.String(36), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("slug", sa.String(255), nullable=False, unique=True),
            sa.Column("location", sa.String(255), nullable=False),
            sa.Column("region", sa.String(128), nullable=False),
            sa.Column("sleeps_min", sa.Integer(), nullable=False),
            sa.Column("sleeps_max", sa.Integer(), nullable=False),
            sa.Column("bedrooms", sa.Integer(), nullable=False),
            sa.Column("bathrooms", sa.Integer(), nullable=False),
            sa.Column("price_from_midweek", sa.Float(), nullable=False),
            sa.Column("price_from_weekend", sa.Float(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("house_rules", sa.Text(), nullable=True),
            sa.Column("check_in_out", sa.String(500), nullable=True),
            sa.Column("ical_url", sa.String(1024), nullable=True),
            sa.Column("hero_image", sa.String(1024), nullable=False),
            sa.Column("hero_video", sa.String(1024), nullable=True),
            sa.Column("floorplan_url", sa.String(1024), nullable=True),
            sa.Column("map_lat", sa.Float(), nullable=True),
            sa.Column("map_lng", sa.Float(), nullable=True),
            sa.Column("owner_contact", sa.String(320), nullable=True),
            sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
            sa.Column("rejection_reason", sa.String(500), nullable=True),
            sa.Column("plan", sa.String(64), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("reviewed_by_user_id", sa.String(36), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_properties_owner", "properties", ["owner_id"])
        op.create_index("idx_properties_status", "properties", ["status"])
        op.create_index("idx_properties_region", "properties", ["region"])
        op.create_index("idx_properties_published", "properties", ["is_published"])

    if "bookings" not in existing_tables:
        op.create_table(
            "bookings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
            sa.Column("property_name", sa.String(200), nullable=False),
            sa.Column("user_id", sa.String(36), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
            sa.Column("guest_name", sa.String(255), nullable=False),
            sa.Column("guest_email", sa.String(320), nullable=False),
            sa.Column("guest_phone", sa.String(64), nullable=True),
            sa.Column("check_in_date", sa.Date(), nullable=False),
            sa.Column("check_out_date", sa.Date(), nullable=False),
            sa.Column("number_of_guests", sa.Integer(), nullable=False),
            sa.Column("total_price", sa.Float(), nullable=False, server_default="0"),
            sa.Column("deposit_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("deposit_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("booking_status", sa.String(16), nullable=False, server_default="pending"),
            sa.Column("special_requests", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_bookings_property", "bookings", ["property_id"])
        op.create_index("idx_bookings_guest_email", "bookings", ["guest_email"])
        op.create_index("idx_bookings_status", "bookings", ["booking_status"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.String(36), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_audit_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index("idx_audit_created_at", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("idx_bookings_status", table_name="bookings")
    op.drop_index("idx_bookings_guest_email", table_name="bookings")
    op.drop_index("idx_bookings_property", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("idx_properties_published", table_name="properties")
    op.drop_index("idx_properties_region", table_name="properties")
    op.drop_index("idx_properties_status", table_name="properties")
    op.drop_index("idx_properties_owner", table_name="properties")
    op.drop_table("properties")
    op.drop_index("idx_session_user", table_name="session")
    op.drop_table("session")
    op.drop_table("account")
    op.drop_table("user")
