"""marketplace schema: users, painters, leads, claims, bids, messaging

Revision ID: 1f3c9a2b7d10
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "1f3c9a2b7d10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [sa.Column(n, sa.DateTime, server_default=sa.func.now(), nullable=False) for n in names]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200)),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps("created_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps("created_at"),
        sa.Column("last_seen_at", sa.DateTime, nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("revoked_at", sa.DateTime),
    )
    op.create_index("ix_user_sessions_token_hash", "user_sessions", ["token_hash"], unique=True)
    op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])

    op.create_table(
        "painters",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("postcode", sa.String(10)),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("verification_status", sa.String(20), nullable=False, server_default="unverified"),
        sa.Column("stripe_customer_id", sa.String(255)),
        *_timestamps("created_at"),
    )

    op.create_table(
        "painter_payment_methods",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("painter_id", sa.Integer, sa.ForeignKey("painters.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider_customer_id", sa.String(255), nullable=False),
        sa.Column("provider_payment_method_id", sa.String(255), nullable=False, unique=True),
        sa.Column("payment_method_type", sa.String(50)),
        sa.Column("card_brand", sa.String(50)),
        sa.Column("card_last4", sa.String(4)),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps("created_at", "updated_at"),
    )
    op.create_index("ix_painter_payment_methods_painter_id", "painter_payment_methods", ["painter_id"])

    op.create_table(
        "leads",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id")),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_email", sa.String(320), nullable=False),
        sa.Column("customer_phone", sa.String(50)),
        sa.Column("job_title", sa.String(255), nullable=False),
        sa.Column("job_description", sa.Text),
        sa.Column("location", sa.String(255)),
        sa.Column("postcode", sa.String(10)),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("assigned_painter_id", sa.Integer, sa.ForeignKey("painters.id")),
        sa.Column("lead_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_payments", sa.Integer, nullable=False, server_default="3"),
        sa.Column("payment_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("payment_count >= 0", name="ck_leads_payment_count_positive"),
        sa.CheckConstraint("payment_count <= max_payments", name="ck_leads_payment_cap"),
    )
    op.create_index("ix_leads_customer_id", "leads", ["customer_id"])
    op.create_index("ix_leads_status", "leads", ["status"])

    op.create_table(
        "lead_payments",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("lead_id", sa.Integer, sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("painter_id", sa.Integer, sa.ForeignKey("painters.id"), nullable=False),
        sa.Column("provider_intent_id", sa.String(255), unique=True),
        sa.Column("provider_customer_id", sa.String(255)),
        sa.Column("payment_method_id", sa.String(255)),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="GBP"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_number", sa.Integer),
        sa.Column("failure_reason", sa.String(500)),
        *_timestamps("created_at", "updated_at"),
    )
    op.create_index("ix_lead_payments_lead_id", "lead_payments", ["lead_id"])
    op.create_index("ix_lead_payments_painter_id", "lead_payments", ["painter_id"])
    op.create_index(
        "uq_lead_payments_active_claim",
        "lead_payments",
        ["lead_id", "painter_id"],
        unique=True,
        sqlite_where=sa.text("payment_status != 'failed'"),
        postgresql_where=sa.text("payment_status != 'failed'"),
    )

    op.create_table(
        "lead_access",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("lead_id", sa.Integer, sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("painter_id", sa.Integer, sa.ForeignKey("painters.id"), nullable=False),
        sa.Column("payment_id", sa.Integer, sa.ForeignKey("lead_payments.id")),
        sa.Column("source", sa.String(20), nullable=False, server_default="payment"),
        *_timestamps("granted_at"),
        sa.UniqueConstraint("lead_id", "painter_id", name="uq_lead_access"),
    )
    op.create_index("ix_lead_access_lead_id", "lead_access", ["lead_id"])
    op.create_index("ix_lead_access_painter_id", "lead_access", ["painter_id"])

    op.create_table(
        "bids",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("lead_id", sa.Integer, sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("painter_id", sa.Integer, sa.ForeignKey("painters.id"), nullable=False),
        sa.Column("bid_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("timeline", sa.String(255), nullable=False),
        sa.Column("materials_included", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("warranty_months", sa.Integer, nullable=False, server_default="0"),
        sa.Column("warranty_details", sa.Text),
        sa.Column("project_approach", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        *_timestamps("submitted_at", "updated_at"),
    )
    op.create_index("ix_bids_lead_id", "bids", ["lead_id"])
    op.create_index("ix_bids_painter_id", "bids", ["painter_id"])
    op.create_index("ix_bids_status", "bids", ["status"])
    op.create_index(
        "uq_bids_active_per_painter",
        "bids",
        ["lead_id", "painter_id"],
        unique=True,
        sqlite_where=sa.text("status != 'withdrawn'"),
        postgresql_where=sa.text("status != 'withdrawn'"),
    )

    op.create_table(
        "payment_config",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("config_key", sa.String(100), nullable=False, unique=True),
        sa.Column("config_value", sa.Text, nullable=False),
        sa.Column("description", sa.String(500)),
        *_timestamps("updated_at"),
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("lead_id", sa.Integer, sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("painter_id", sa.Integer, sa.ForeignKey("painters.id"), nullable=False),
        *_timestamps("created_at"),
        sa.Column("last_message_at", sa.DateTime),
        sa.UniqueConstraint("lead_id", "customer_id", "painter_id", name="uq_conversation_parties"),
    )
    op.create_index("ix_conversations_lead_id", "conversations", ["lead_id"])
    op.create_index("ix_conversations_customer_id", "conversations", ["customer_id"])
    op.create_index("ix_conversations_painter_id", "conversations", ["painter_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer,
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("read_at", sa.DateTime),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])


def downgrade():
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("payment_config")
    op.drop_index("uq_bids_active_per_painter", table_name="bids")
    op.drop_table("bids")
    op.drop_table("lead_access")
    op.drop_index("uq_lead_payments_active_claim", table_name="lead_payments")
    op.drop_table("lead_payments")
    op.drop_table("leads")
    op.drop_table("painter_payment_methods")
    op.drop_table("painters")
    op.drop_table("user_sessions")
    op.drop_table("users")
