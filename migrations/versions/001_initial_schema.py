"""Initial schema: users, rides and settlements.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=True),
        sa.Column("mobile", sa.String(20), unique=True, nullable=True),
        sa.Column("national_code", sa.String(20), nullable=True),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column("password", sa.String(255), nullable=True),
        sa.Column("salt", sa.String(64), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="rider"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rate", sa.Float, nullable=False, server_default="10"),
        sa.Column("activation_code", sa.String(10), nullable=True),
        sa.Column("account_number", sa.String(64), nullable=True),
        sa.Column("driver_state", sa.String(32), nullable=True),
        sa.Column("app_id", sa.String(255), nullable=True),
        sa.Column("location", sa.JSON, nullable=True),
        sa.Column("last_state", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # ── settlements ───────────────────────────────────────────────────
    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    # user_id / driver_id / settlement_id carry no FK: rides outlive users.
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=True),
        sa.Column("driver_id", sa.Integer, nullable=True),
        sa.Column("src", sa.JSON, nullable=True),
        sa.Column("des", sa.JSON, nullable=True),
        sa.Column("loc", sa.JSON, nullable=True),
        sa.Column("distance", sa.Float, nullable=True),
        sa.Column(
            "date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Float, nullable=True),
        sa.Column("cost", sa.Float, nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("rate", sa.Float, nullable=False, server_default="10"),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("is_settled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("settlement_id", sa.Integer, nullable=True),
        sa.Column("subscribers", sa.JSON, nullable=True),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_user", "rides", ["user_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_settled", "rides", ["is_settled"])


def downgrade() -> None:
    op.drop_table("rides")
    op.drop_table("settlements")
    op.drop_table("users")
