"""initial schema: services, resources, bookings, purchases, download_links

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_SLOT = sa.text("status IN ('pending', 'confirmed')")


def upgrade():
    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("duration_min", sa.Integer(), nullable=False),
        sa.Column("available_days", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("time_slots", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("total_bookings", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.Text()),
    )

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("user_id", sa.Text()),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("customer_email", sa.Text(), nullable=False),
        sa.Column("customer_phone", sa.Text()),
        sa.Column("additional_info", sa.Text()),
        sa.Column("requirements", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_order_id", sa.Text()),
        sa.Column("payment_id", sa.Text()),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("meeting_link", sa.Text()),
        sa.Column("confirmed_at", sa.DateTime()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("cancel_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "uq_bookings_active_slot",
        "bookings",
        ["service_id", "scheduled_at"],
        unique=True,
        sqlite_where=ACTIVE_SLOT,
        postgresql_where=ACTIVE_SLOT,
    )
    op.create_index("ix_bookings_scheduled_status", "bookings", ["scheduled_at", "status"])
    op.create_index("ix_bookings_user_created", "bookings", ["user_id", "created_at"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("user_id", sa.Text()),
        sa.Column("customer_name", sa.Text()),
        sa.Column("customer_email", sa.Text(), nullable=False),
        sa.Column("payment_id", sa.Text(), nullable=False, unique=True),
        sa.Column("payment_order_id", sa.Text()),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_downloads", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_purchases_user_created", "purchases", ["user_id", "created_at"])

    op.create_table(
        "download_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "purchase_id",
            sa.Integer(),
            sa.ForeignKey("purchases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime()),
    )
    op.create_index("ix_download_links_purchase_id", "download_links", ["purchase_id"])


def downgrade():
    op.drop_index("ix_download_links_purchase_id", table_name="download_links")
    op.drop_table("download_links")
    op.drop_index("ix_purchases_user_created", table_name="purchases")
    op.drop_table("purchases")
    op.drop_index("ix_bookings_user_created", table_name="bookings")
    op.drop_index("ix_bookings_scheduled_status", table_name="bookings")
    op.drop_index("uq_bookings_active_slot", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("resources")
    op.drop_table("services")
