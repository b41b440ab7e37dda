"""Project model: RFQs/orders moving through workflow stages."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

from factory_pulse.db.base import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    project_number = Column(String(50), nullable=True, unique=True)  # P-25082001 format

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    tags = Column(ARRAY(String(100)), nullable=False, default=list)
    priority_level = Column(String(20), nullable=True)
    estimated_value = Column(Numeric(14, 2), nullable=True)
    due_date = Column(Date, nullable=True)

    customer_id = Column(UUID(as_uuid=True), nullable=True)
    contact_id = Column(UUID(as_uuid=True), nullable=True)
    engineering_reviewer_id = Column(String(255), nullable=True)
    qa_reviewer_id = Column(String(255), nullable=True)
    production_reviewer_id = Column(String(255), nullable=True)

    # Written only by the stage transition service
    current_stage_id = Column(UUID(as_uuid=True), ForeignKey("workflow_stages.id"), nullable=True, index=True)
    stage_entered_at = Column(DateTime(timezone=True), nullable=True)

    # {"has_purchase_order": bool, "has_bom": bool, "work_order_released": bool, ...}
    project_metadata = Column("metadata", JSONB, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
