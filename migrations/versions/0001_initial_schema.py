"""initial_schema

Create projects, people, the five tracked-item tables, entity_actions and
entity_logs.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _tracked_columns(number_field):
    """Columns shared by every tracked-item table."""
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column(number_field, sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(number_field),
    ]


def _person_fk(column):
    return sa.ForeignKeyConstraint([column], ["people.id"], ondelete="SET NULL")


def _closure_columns():
    return [
        sa.Column("closure_pending", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("closure_requested_by", sa.Integer(), nullable=True),
        sa.Column("closure_requested_date", sa.Date(), nullable=True),
        sa.Column("closure_justification", sa.Text(), nullable=True),
        sa.Column("closure_approved_by", sa.Integer(), nullable=True),
        sa.Column("closure_comments", sa.Text(), nullable=True),
        _person_fk("closure_requested_by"),
        _person_fk("closure_approved_by"),
    ]


def _index_tracked(table):
    op.create_index(f"ix_{table}_project_id", table, ["project_id"])
    op.create_index(f"ix_{table}_status", table, ["status"])


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_code", sa.String(length=50), nullable=False),
            sa.Column("project_name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="Planning"),
            sa.Column("project_manager", sa.String(length=100), nullable=True),
            sa.Column("client_name", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_code"),
        )
        op.create_index("ix_projects_status", "projects", ["status"])

    if "people" not in existing_tables:
        op.create_table(
            "people",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=50), nullable=False),
            sa.Column("full_name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=100), nullable=True),
            sa.Column("department", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )

    if "issues" not in existing_tables:
        op.create_table(
            "issues",
            *_tracked_columns("issue_number"),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("raised_by", sa.Integer(), nullable=True),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("raised_date", sa.Date(), nullable=False),
            sa.Column("target_resolution_date", sa.Date(), nullable=True),
            sa.Column("actual_resolution_date", sa.Date(), nullable=True),
            sa.Column("impact", sa.Text(), nullable=True),
            _person_fk("raised_by"),
            _person_fk("assigned_to"),
        )
        _index_tracked("issues")

    if "risks" not in existing_tables:
        op.create_table(
            "risks",
            *_tracked_columns("risk_number"),
            sa.Column("probability", sa.String(length=20), nullable=True),
            sa.Column("impact", sa.String(length=20), nullable=True),
            sa.Column("risk_score", sa.Integer(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("identified_by", sa.Integer(), nullable=True),
            sa.Column("owner", sa.Integer(), nullable=True),
            sa.Column("identified_date", sa.Date(), nullable=False),
            sa.Column("review_date", sa.Date(), nullable=True),
            sa.Column("mitigation_strategy", sa.Text(), nullable=True),
            sa.Column("contingency_plan", sa.Text(), nullable=True),
            *_closure_columns(),
            sa.Column("closure_date", sa.Date(), nullable=True),
            _person_fk("identified_by"),
            _person_fk("owner"),
        )
        _index_tracked("risks")
        op.create_index("ix_risks_closure_pending", "risks", ["closure_pending"])

    if "changes" not in existing_tables:
        op.create_table(
            "changes",
            *_tracked_columns("change_number"),
            sa.Column("change_type", sa.String(length=30), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("requested_by", sa.Integer(), nullable=True),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("rejected_by", sa.Integer(), nullable=True),
            sa.Column("request_date", sa.Date(), nullable=False),
            sa.Column("approval_date", sa.Date(), nullable=True),
            sa.Column("rejection_date", sa.Date(), nullable=True),
            sa.Column("implementation_date", sa.Date(), nullable=True),
            sa.Column("closure_date", sa.Date(), nullable=True),
            sa.Column("cost_impact", sa.Numeric(15, 2), nullable=True),
            sa.Column("schedule_impact_days", sa.Integer(), nullable=True),
            sa.Column("justification", sa.Text(), nullable=True),
            sa.Column("impact_assessment", sa.Text(), nullable=True),
            sa.Column("approval_justification", sa.Text(), nullable=True),
            sa.Column("approval_comments", sa.Text(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("implementation_summary", sa.Text(), nullable=True),
            *_closure_columns(),
            _person_fk("requested_by"),
            _person_fk("approved_by"),
            _person_fk("rejected_by"),
        )
        _index_tracked("changes")
        op.create_index("ix_changes_closure_pending", "changes", ["closure_pending"])

    if "escalations" not in existing_tables:
        op.create_table(
            "escalations",
            *_tracked_columns("escalation_number"),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("escalation_type", sa.String(length=100), nullable=True),
            sa.Column("raised_by", sa.Integer(), nullable=True),
            sa.Column("escalated_to", sa.Integer(), nullable=True),
            sa.Column("raised_date", sa.Date(), nullable=False),
            sa.Column("target_response_date", sa.Date(), nullable=True),
            sa.Column("actual_response_date", sa.Date(), nullable=True),
            sa.Column("resolution_summary", sa.Text(), nullable=True),
            _person_fk("raised_by"),
            _person_fk("escalated_to"),
        )
        _index_tracked("escalations")

    if "faults" not in existing_tables:
        op.create_table(
            "faults",
            *_tracked_columns("fault_number"),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("fault_type", sa.String(length=100), nullable=True),
            sa.Column("reported_by", sa.Integer(), nullable=True),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("reported_date", sa.Date(), nullable=False),
            sa.Column("target_fix_date", sa.Date(), nullable=True),
            sa.Column("actual_fix_date", sa.Date(), nullable=True),
            sa.Column("root_cause", sa.Text(), nullable=True),
            sa.Column("resolution", sa.Text(), nullable=True),
            _person_fk("reported_by"),
            _person_fk("assigned_to"),
        )
        _index_tracked("faults")

    if "entity_actions" not in existing_tables:
        op.create_table(
            "entity_actions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=False),
            sa.Column("action_description", sa.Text(), nullable=False),
            sa.Column("action_type", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_date", sa.Date(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("completed_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            _person_fk("assigned_to"),
            _person_fk("created_by"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_entity_action_parent", "entity_actions", ["entity_type", "parent_id"])
        op.create_index("ix_entity_actions_status", "entity_actions", ["status"])
        op.create_index("ix_entity_actions_assigned_to", "entity_actions", ["assigned_to"])

    if "entity_logs" not in existing_tables:
        op.create_table(
            "entity_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=False),
            sa.Column("log_type", sa.String(length=30), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("previous_status", sa.String(length=30), nullable=True),
            sa.Column("new_status", sa.String(length=30), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("logged_by", sa.Integer(), nullable=True),
            sa.Column("log_date", sa.DateTime(timezone=True), nullable=False),
            _person_fk("logged_by"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_entity_log_parent", "entity_logs", ["entity_type", "parent_id"])
        op.create_index("idx_entity_log_date", "entity_logs", ["log_date"])
        op.create_index("ix_entity_logs_logged_by", "entity_logs", ["logged_by"])


def downgrade():
    for table in (
        "entity_logs", "entity_actions", "faults", "escalations",
        "changes", "risks", "issues", "people", "projects",
    ):
        op.drop_table(table)
