"""create pipeline automation tables

Revision ID: 3c9a1e7d5b42
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from pipeline_automation.core.constants import (
    ACTION_TYPE_CHECK_CLAUSE,
    EXECUTION_STATUS_CHECK_CLAUSE,
    TRIGGER_TYPE_CHECK_CLAUSE,
)

# revision identifiers, used by Alembic.
revision: str = "3c9a1e7d5b42"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # CRM surface the executors act on
    op.create_table(
        "deal_stages",
        _uuid_pk("stage_id"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pipeline_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "order_position", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.UniqueConstraint(
            "pipeline_id", "order_position", name="uq_stage_pipeline_position"
        ),
    )
    op.create_table(
        "deals",
        _uuid_pk("deal_id"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "stage_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("deal_stages.stage_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("next_step", sa.Text()),
        sa.Column("notes", sa.Text()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_table(
        "tasks",
        _uuid_pk("task_id"),
        sa.Column(
            "deal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("deals.deal_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "source",
            sa.String(50),
            nullable=False,
            server_default="pipeline_automation",
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "priority IN ('high', 'medium', 'low')", name="ck_task_priority"
        ),
        sa.CheckConstraint("status IN ('pending', 'completed')", name="ck_task_status"),
    )
    op.create_table(
        "notifications",
        _uuid_pk("notification_id"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "deal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("deals.deal_id", ondelete="CASCADE"),
        ),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        _timestamp("created_at"),
    )

    # Rules and their append-only execution log
    op.create_table(
        "pipeline_automation_rules",
        _uuid_pk("rule_id"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column("trigger_type", sa.String(50), nullable=False),
        sa.Column("call_type_filter", postgresql.ARRAY(sa.String())),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column(
            "action_config",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "min_confidence", sa.Float(), nullable=False, server_default=sa.text("0.7")
        ),
        sa.Column(
            "cooldown_hours", sa.Integer(), nullable=False, server_default=sa.text("24")
        ),
        sa.Column("created_by", postgresql.UUID(as_uuid=True)),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(TRIGGER_TYPE_CHECK_CLAUSE, name="ck_rule_trigger_type"),
        sa.CheckConstraint(ACTION_TYPE_CHECK_CLAUSE, name="ck_rule_action_type"),
        sa.CheckConstraint(
            "min_confidence BETWEEN 0 AND 1", name="ck_rule_min_confidence_range"
        ),
        sa.CheckConstraint("cooldown_hours >= 0", name="ck_rule_cooldown_nonneg"),
    )
    op.create_index(
        "idx_automation_rules_org_active",
        "pipeline_automation_rules",
        ["org_id", "is_active"],
    )

    op.create_table(
        "pipeline_automation_log",
        _uuid_pk("log_id"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("pipeline_automation_rules.rule_id", ondelete="SET NULL"),
        ),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True)),
        sa.Column("deal_id", postgresql.UUID(as_uuid=True)),
        sa.Column("trigger_type", sa.String(50), nullable=False),
        sa.Column("trigger_signal", postgresql.JSONB()),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("action_result", postgresql.JSONB()),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text()),
        _timestamp("created_at"),
        sa.CheckConstraint(EXECUTION_STATUS_CHECK_CLAUSE, name="ck_log_status"),
    )
    # cooldown lookups: latest success per (rule, deal)
    op.create_index(
        "idx_automation_log_cooldown",
        "pipeline_automation_log",
        ["rule_id", "deal_id", "status", "created_at"],
    )
    op.create_index(
        "idx_automation_log_org_created",
        "pipeline_automation_log",
        ["org_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_automation_log_org_created", table_name="pipeline_automation_log")
    op.drop_index("idx_automation_log_cooldown", table_name="pipeline_automation_log")
    op.drop_table("pipeline_automation_log")
    op.drop_index(
        "idx_automation_rules_org_active", table_name="pipeline_automation_rules"
    )
    op.drop_table("pipeline_automation_rules")
    op.drop_table("notifications")
    op.drop_table("tasks")
    op.drop_table("deals")
    op.drop_table("deal_stages")
