"""WorkflowStageRow model: organization-scoped pipeline stages."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID

from factory_pulse.db.base import Base


class WorkflowStageRow(Base):
    __tablename__ = "workflow_stages"
    __table_args__ = (UniqueConstraint("organization_id", "stage_order", name="uq_organization_stage_order"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    color = Column(String(50), nullable=True)
    stage_order = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    estimated_duration_days = Column(Integer, nullable=True)
    sub_stages_count = Column(Integer, nullable=False, default=0)

    # Exit criteria: ["criterion text 1", "criterion text 2"]; empty falls back to defaults by slug
    exit_criteria = Column(JSONB, nullable=False, default=list)
    responsible_roles = Column(JSONB, nullable=False, default=list)

    # Stage entry gates: approved review per role, and document types that must be attached
    requires_approval = Column(Boolean, nullable=False, default=False)
    approval_roles = Column(JSONB, nullable=False, default=list)
    required_document_types = Column(JSONB, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
