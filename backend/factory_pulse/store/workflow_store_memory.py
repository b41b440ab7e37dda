"""InMemoryWorkflowStore: dict-backed WorkflowStore for tests and local runs.

Behaves like the SQL store: conditional stage updates, append-only records,
and PersistenceError for unknown projects.
"""

from datetime import datetime

from factory_pulse.core.exceptions import PersistenceError, StaleTransitionError
from factory_pulse.domain.history import StageTransitionRecord
from factory_pulse.domain.projects import ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage


class InMemoryWorkflowStore:
    """Dict-backed WorkflowStore implementation."""

    def __init__(
        self,
        stages: list[WorkflowStage] | None = None,
        projects: list[ProjectSnapshot] | None = None,
    ):
        self.stages: dict[str, WorkflowStage] = {s.id: s for s in stages or []}
        self.projects: dict[str, ProjectSnapshot] = {p.id: p for p in projects or []}
        self.transitions: list[StageTransitionRecord] = []

    def add_stage(self, stage: WorkflowStage) -> WorkflowStage:
        self.stages[stage.id] = stage
        return stage

    def add_project(self, project: ProjectSnapshot) -> ProjectSnapshot:
        self.projects[project.id] = project
        return project

    async def get_project(self, project_id: str) -> ProjectSnapshot | None:
        return self.projects.get(project_id)

    async def list_workflow_stages(self, organization_id: str, active_only: bool = True) -> list[WorkflowStage]:
        stages = [
            s for s in self.stages.values()
            if s.organization_id == organization_id and (s.is_active or not active_only)
        ]
        return sorted(stages, key=lambda s: s.stage_order)

    async def get_workflow_stage(self, stage_id: str) -> WorkflowStage | None:
        return self.stages.get(stage_id)

    async def count_workflow_stages(self) -> int:
        return sum(1 for s in self.stages.values() if s.is_active)

    async def update_project_stage(
        self,
        project_id: str,
        to_stage_id: str,
        expected_stage_id: str | None,
        entered_at: datetime,
    ) -> None:
        project = self.projects.get(project_id)
        if project is None:
            raise PersistenceError(f"Project '{project_id}' not found")
        if project.current_stage_id != expected_stage_id:
            raise StaleTransitionError(project_id, expected_stage_id)
        self.projects[project_id] = project.at_stage(to_stage_id, entered_at)

    async def insert_stage_transition(self, record: StageTransitionRecord) -> StageTransitionRecord:
        if record.project_id not in self.projects:
            raise PersistenceError(f"Project '{record.project_id}' not found")
        self.transitions.append(record)
        return record

    async def list_stage_transitions(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[StageTransitionRecord]:
        records = [
            r for r in self.transitions
            if (organization_id is None or r.organization_id == organization_id)
            and (project_id is None or r.project_id == project_id)
            and (date_from is None or r.created_at >= date_from)
            and (date_to is None or r.created_at <= date_to)
        ]
        records.sort(key=lambda r: r.created_at, reverse=newest_first)
        return records[:limit] if limit is not None else records
