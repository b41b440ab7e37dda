"""StageTransition model: append-only stage transition audit log."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID

from factory_pulse.db.base import Base


class StageTransition(Base):
    __tablename__ = "stage_transitions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    correlation_id = Column(String(100), nullable=True, index=True)

    from_stage_id = Column(UUID(as_uuid=True), nullable=True)  # null for a project's first transition
    to_stage_id = Column(UUID(as_uuid=True), nullable=False)
    from_stage_name = Column(String(255), nullable=True)
    to_stage_name = Column(String(255), nullable=True)

    user_id = Column(String(255), nullable=False)
    reason = Column(Text, nullable=False)
    bypass_required = Column(Boolean, nullable=False, default=False)
    bypass_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), index=True)
    # NO updated_at -- records are immutable (append-only)
