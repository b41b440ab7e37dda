"""add stage entry gates to workflow_stages

Revision ID: 8b41d6e2a9c3
Revises: 3f9a2c7d5e10
Create Date: 2026-10-18 10:42:51.207719

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b41d6e2a9c3"
down_revision: str | Sequence[str] | None = "3f9a2c7d5e10"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add approval and document requirement columns to workflow_stages."""
    op.add_column(
        "workflow_stages",
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.add_column(
        "workflow_stages",
        sa.Column(
            "approval_roles",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
    )
    op.add_column(
        "workflow_stages",
        sa.Column(
            "required_document_types",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
    )


def downgrade() -> None:
    """Remove approval and document requirement columns from workflow_stages."""
    op.drop_column("workflow_stages", "required_document_types")
    op.drop_column("workflow_stages", "approval_roles")
    op.drop_column("workflow_stages", "requires_approval")
