"""Project snapshot consumed by prerequisite rules.

Callers hand the rule engine a fully populated snapshot; rules never fetch.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import StrEnum

PROJECT_SNAPSHOT_VERSION = 1


class ProjectPriority(StrEnum):
    """Priority levels used by intake and resource allocation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class ProjectMetadata:
    """Typed replacement for the free-form metadata bag read by stage rules."""

    has_purchase_order: bool = False
    has_bom: bool = False
    work_order_released: bool = False
    supplier_quotes_received: int = 0
    supplier_quotes_requested: int = 0
    # Types of documents attached to the project, e.g. "rfq", "po", "shipping_doc"
    document_types: tuple[str, ...] = ()
    # review_type of every approved review on the project
    approved_review_types: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict | None) -> "ProjectMetadata":
        """Build from a stored JSON object, ignoring keys rules don't use."""
        data = data or {}
        return cls(
            has_purchase_order=bool(data.get("has_purchase_order", False)),
            has_bom=bool(data.get("has_bom", False)),
            work_order_released=bool(data.get("work_order_released", False)),
            supplier_quotes_received=int(data.get("supplier_quotes_received", 0) or 0),
            supplier_quotes_requested=int(data.get("supplier_quotes_requested", 0) or 0),
            document_types=tuple(str(t) for t in data.get("document_types") or ()),
            approved_review_types=tuple(str(t) for t in data.get("approved_review_types") or ()),
        )


@dataclass(frozen=True)
class ProjectSnapshot:
    """Immutable view of a project at validation time."""

    id: str
    organization_id: str
    title: str
    current_stage_id: str | None = None
    stage_entered_at: datetime | None = None
    project_number: str | None = None
    priority: ProjectPriority | None = None
    estimated_value: float | None = None
    engineering_reviewer_id: str | None = None
    qa_reviewer_id: str | None = None
    production_reviewer_id: str | None = None
    description: str = ""
    notes: str = ""
    tags: tuple[str, ...] = ()
    customer_id: str | None = None
    contact_id: str | None = None
    due_date: date | None = None
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)
    schema_version: int = PROJECT_SNAPSHOT_VERSION

    def at_stage(self, stage_id: str, entered_at: datetime) -> "ProjectSnapshot":
        """Copy of this snapshot moved to another stage."""
        return replace(self, current_stage_id=stage_id, stage_entered_at=entered_at)
