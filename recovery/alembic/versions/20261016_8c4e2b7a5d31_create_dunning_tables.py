"""create dunning configuration, campaign, attempt and email template tables

Revision ID: 8c4e2b7a5d31
Revises: 3f1a9c2d7b10
Create Date: 2026-10-16 09:30:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "8c4e2b7a5d31"
down_revision = "3f1a9c2d7b10"
branch_labels = None
depends_on = None

OPEN_STATUS_CLAUSE = "status IN ('active', 'paused')"


def upgrade() -> None:
    op.create_table(
        "dunning_configurations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("workspace_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("max_retry_attempts", sa.Integer(), nullable=False),
        sa.Column("retry_interval_days", sa.JSON(), nullable=False),
        sa.Column("attempt_actions", sa.JSON(), nullable=False),
        sa.Column("final_action", sa.String(length=50), nullable=False),
        sa.Column("final_action_config", sa.JSON(), nullable=False),
        sa.Column("send_pre_dunning_reminder", sa.Boolean(), nullable=False),
        sa.Column("pre_dunning_days", sa.Integer(), nullable=False),
        sa.Column("allow_customer_retry", sa.Boolean(), nullable=False),
        sa.Column("grace_period_hours", sa.Integer(), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_dunning_configurations_workspace_id"), "dunning_configurations", ["workspace_id"]
    )
    op.create_index(
        "uq_dunning_configurations_default_per_workspace",
        "dunning_configurations",
        ["workspace_id"],
        unique=True,
        sqlite_where=sa.text("is_default = 1 AND deleted_at IS NULL"),
        postgresql_where=sa.text("is_default AND deleted_at IS NULL"),
    )

    op.create_table(
        "dunning_campaigns",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("workspace_id", sa.String(length=36), nullable=False),
        sa.Column("configuration_id", sa.String(length=36), nullable=False),
        sa.Column("subscription_id", sa.String(length=36), nullable=True),
        sa.Column("payment_id", sa.String(length=36), nullable=True),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_attempt", sa.Integer(), nullable=False),
        sa.Column("max_retry_attempts", sa.Integer(), nullable=False),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recovered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recovered_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("final_action_taken", sa.String(length=50), nullable=True),
        sa.Column("final_action_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_failure_reason", sa.Text(), nullable=True),
        sa.Column("original_amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("strategy", sa.String(length=30), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.CheckConstraint(
            "(subscription_id IS NOT NULL AND payment_id IS NULL)"
            " OR (subscription_id IS NULL AND payment_id IS NOT NULL)",
            name="chk_dunning_campaigns_target",
        ),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["configuration_id"], ["dunning_configurations.id"], ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_dunning_campaigns_workspace_id"), "dunning_campaigns", ["workspace_id"])
    op.create_index(
        op.f("ix_dunning_campaigns_configuration_id"), "dunning_campaigns", ["configuration_id"]
    )
    op.create_index(op.f("ix_dunning_campaigns_customer_id"), "dunning_campaigns", ["customer_id"])
    op.create_index(
        "ix_dunning_campaigns_status_next_retry_at",
        "dunning_campaigns",
        ["status", "next_retry_at"],
    )
    op.create_index(
        "uq_dunning_campaigns_open_subscription",
        "dunning_campaigns",
        ["subscription_id"],
        unique=True,
        sqlite_where=sa.text(OPEN_STATUS_CLAUSE),
        postgresql_where=sa.text(OPEN_STATUS_CLAUSE),
    )
    op.create_index(
        "uq_dunning_campaigns_open_payment",
        "dunning_campaigns",
        ["payment_id"],
        unique=True,
        sqlite_where=sa.text(OPEN_STATUS_CLAUSE),
        postgresql_where=sa.text(OPEN_STATUS_CLAUSE),
    )

    op.create_table(
        "dunning_attempts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("campaign_id", sa.String(length=36), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("attempt_type", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_error", sa.Text(), nullable=True),
        sa.Column("transaction_reference", sa.String(length=255), nullable=True),
        sa.Column("communication_sent", sa.Boolean(), nullable=False),
        sa.Column("communication_error", sa.Text(), nullable=True),
        sa.Column("email_template_id", sa.String(length=36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["campaign_id"], ["dunning_campaigns.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("campaign_id", "attempt_number", name="uq_dunning_attempts_number"),
    )
    op.create_index(op.f("ix_dunning_attempts_campaign_id"), "dunning_attempts", ["campaign_id"])

    op.create_table(
        "dunning_email_templates",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("workspace_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("template_type", sa.String(length=50), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("body_html", sa.Text(), nullable=False),
        sa.Column("body_text", sa.Text(), nullable=True),
        sa.Column("available_variables", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_dunning_email_templates_workspace_id"), "dunning_email_templates", ["workspace_id"]
    )
    op.create_index(
        op.f("ix_dunning_email_templates_template_type"),
        "dunning_email_templates",
        ["template_type"],
    )


def downgrade() -> None:
    op.drop_table("dunning_email_templates")
    op.drop_table("dunning_attempts")
    op.drop_index("uq_dunning_campaigns_open_payment", table_name="dunning_campaigns")
    op.drop_index("uq_dunning_campaigns_open_subscription", table_name="dunning_campaigns")
    op.drop_table("dunning_campaigns")
    op.drop_index(
        "uq_dunning_configurations_default_per_workspace", table_name="dunning_configurations"
    )
    op.drop_table("dunning_configurations")
