from __future__ import annotations

"""init schema"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("user_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("session_token", sa.String(length=64)),
        sa.Column("last_login", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_accounts_role"),
    )
    op.create_index("idx_accounts_last_login", "accounts", ["last_login"])

    op.create_table(
        "notifications",
        sa.Column("notification_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("sender_id", sa.Integer, sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_id", sa.Integer, sa.ForeignKey("accounts.user_id", ondelete="CASCADE")),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.text("FALSE")),
    )
    op.create_index("idx_notifications_recipient", "notifications", ["recipient_id", "created_at"])
    op.create_index("idx_notifications_created", "notifications", ["created_at"])

    op.create_table(
        "login_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("accounts.user_id", ondelete="SET NULL")),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("ip_address", sa.String(length=45)),
        sa.Column("user_agent", sa.Text),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("failure_reason", sa.String(length=100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )
    op.create_index("idx_login_logs_user_created", "login_logs", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_table("login_logs")
    op.drop_table("notifications")
    op.drop_table("accounts")
