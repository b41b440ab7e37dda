"""Stage transition Pydantic schemas for API requests and responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from factory_pulse.domain.prerequisites import CheckCategory, CheckStatus


class WorkflowStageResponse(BaseModel):
    """One workflow stage as shown in the pipeline."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    stage_order: int
    description: str = ""
    color: str | None = None
    estimated_duration_days: int | None = None
    sub_stages_count: int = 0
    exit_criteria: list[str] = []
    responsible_roles: list[str] = []
    requires_approval: bool = False
    approval_roles: list[str] = []
    required_document_types: list[str] = []


class StageListResponse(BaseModel):
    organization_id: str
    stages: list[WorkflowStageResponse]


class PrerequisiteCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    name: str
    description: str
    status: CheckStatus
    required: bool
    category: CheckCategory
    details: str | None = None


class PrerequisiteResultResponse(BaseModel):
    """Evaluated prerequisites plus the convenience views used by the UI."""

    model_config = ConfigDict(from_attributes=True)

    required_passed: bool
    all_passed: bool
    checks: list[PrerequisiteCheckResponse]
    exit_criteria: list[str] = []
    blockers: list[str] = []
    errors: list[str] = []
    warnings: list[str] = []


class StructuralCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    reason: str = ""
    requires_approval: bool = False


class ValidateTransitionResponse(BaseModel):
    project_id: str
    from_stage_id: str | None
    to_stage_id: str
    structural: StructuralCheckResponse
    prerequisites: PrerequisiteResultResponse


class RecommendationsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    can_proceed: bool
    recommendations: list[str] = []
    blockers: list[str] = []
    warnings: list[str] = []


class TransitionRequest(BaseModel):
    """Request to move a project to another stage."""

    target_stage_id: str
    reason: str | None = Field(default=None, max_length=2000)
    bypass_validation: bool = False
    bypass_reason: str | None = Field(default=None, max_length=2000)


class StageTransitionRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    from_stage_id: str | None
    to_stage_id: str
    from_stage_name: str | None = None
    to_stage_name: str | None = None
    user_id: str
    reason: str
    action: str
    bypass_required: bool
    bypass_reason: str | None = None
    correlation_id: str | None = None
    created_at: datetime


class TransitionResponse(BaseModel):
    committed: bool
    history_recorded: bool
    project_id: str
    to_stage_id: str
    record: StageTransitionRecordResponse | None = None


class StageHistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    record_id: str
    stage_id: str
    stage_name: str
    entered_at: datetime
    entered_by: str
    reason: str
    bypass_required: bool = False
    bypass_reason: str | None = None
    exited_at: datetime | None = None
    duration_minutes: int | None = None


class StageHistoryResponse(BaseModel):
    project_id: str
    entries: list[StageHistoryEntryResponse]


class RecentTransitionsResponse(BaseModel):
    organization_id: str
    transitions: list[StageTransitionRecordResponse]


class TransitionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_transitions: int
    bypass_transitions: int
    stage_transition_counts: dict[str, int] = {}
    bypass_reasons: list[str] = []
