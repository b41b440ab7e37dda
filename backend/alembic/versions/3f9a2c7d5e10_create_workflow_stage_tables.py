"""create workflow_stages, projects, stage_transitions

Revision ID: 3f9a2c7d5e10
Revises:
Create Date: 2026-10-12 09:14:22.618304

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a2c7d5e10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    # Create workflow_stages table
    op.create_table(
        "workflow_stages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("color", sa.String(length=50), nullable=True),
        sa.Column("stage_order", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("estimated_duration_days", sa.Integer(), nullable=True),
        sa.Column("sub_stages_count", sa.Integer(), nullable=False),
        sa.Column("exit_criteria", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("responsible_roles", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "stage_order", name="uq_organization_stage_order"),
    )
    op.create_index(
        op.f("ix_workflow_stages_organization_id"), "workflow_stages", ["organization_id"], unique=False
    )

    # Create projects table
    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_number", sa.String(length=50), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("tags", postgresql.ARRAY(sa.String(length=100)), nullable=False),
        sa.Column("priority_level", sa.String(length=20), nullable=True),
        sa.Column("estimated_value", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("engineering_reviewer_id", sa.String(length=255), nullable=True),
        sa.Column("qa_reviewer_id", sa.String(length=255), nullable=True),
        sa.Column("production_reviewer_id", sa.String(length=255), nullable=True),
        sa.Column("current_stage_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("stage_entered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["current_stage_id"],
            ["workflow_stages.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_number"),
    )
    op.create_index(op.f("ix_projects_organization_id"), "projects", ["organization_id"], unique=False)
    op.create_index(op.f("ix_projects_current_stage_id"), "projects", ["current_stage_id"], unique=False)

    # Create stage_transitions table (append-only)
    op.create_table(
        "stage_transitions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("correlation_id", sa.String(length=100), nullable=True),
        sa.Column("from_stage_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("to_stage_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("from_stage_name", sa.String(length=255), nullable=True),
        sa.Column("to_stage_name", sa.String(length=255), nullable=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("bypass_required", sa.Boolean(), nullable=False),
        sa.Column("bypass_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["project_id"],
            ["projects.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_stage_transitions_organization_id"), "stage_transitions", ["organization_id"], unique=False
    )
    op.create_index(op.f("ix_stage_transitions_project_id"), "stage_transitions", ["project_id"], unique=False)
    op.create_index(
        op.f("ix_stage_transitions_correlation_id"), "stage_transitions", ["correlation_id"], unique=False
    )
    op.create_index(op.f("ix_stage_transitions_created_at"), "stage_transitions", ["created_at"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_stage_transitions_created_at"), table_name="stage_transitions")
    op.drop_index(op.f("ix_stage_transitions_correlation_id"), table_name="stage_transitions")
    op.drop_index(op.f("ix_stage_transitions_project_id"), table_name="stage_transitions")
    op.drop_index(op.f("ix_stage_transitions_organization_id"), table_name="stage_transitions")
    op.drop_table("stage_transitions")
    op.drop_index(op.f("ix_projects_current_stage_id"), table_name="projects")
    op.drop_index(op.f("ix_projects_organization_id"), table_name="projects")
    op.drop_table("projects")
    op.drop_index(op.f("ix_workflow_stages_organization_id"), table_name="workflow_stages")
    op.drop_table("workflow_stages")
