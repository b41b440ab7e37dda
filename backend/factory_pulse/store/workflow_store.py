"""WorkflowStore Protocol: the persistence boundary of the stage transition core.

The core needs exactly these operations from the relational store:
- get_project: read a project snapshot by id
- list_workflow_stages: read an organization's stages (active only by default)
- get_workflow_stage: read one stage by id
- count_workflow_stages: number of active stages across organizations (readiness)
- update_project_stage: conditional single-row update of the current stage
- insert_stage_transition: append one audit record
- list_stage_transitions: filtered, ordered reads of the audit log

Implementations raise PersistenceError when the store rejects a read or write.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from factory_pulse.domain.history import StageTransitionRecord
from factory_pulse.domain.projects import ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage


@runtime_checkable
class WorkflowStore(Protocol):
    """Protocol for all store access made by the stage transition core."""

    async def get_project(self, project_id: str) -> ProjectSnapshot | None:
        ...

    async def list_workflow_stages(self, organization_id: str, active_only: bool = True) -> list[WorkflowStage]:
        """Return the organization's stages ordered ascending by stage_order."""
        ...

    async def get_workflow_stage(self, stage_id: str) -> WorkflowStage | None:
        ...

    async def count_workflow_stages(self) -> int:
        ...

    async def update_project_stage(
        self,
        project_id: str,
        to_stage_id: str,
        expected_stage_id: str | None,
        entered_at: datetime,
    ) -> None:
        """Move a project to another stage if it is still at expected_stage_id.

        Sets stage_entered_at together with current_stage_id.

        Raises:
            StaleTransitionError: the project is no longer at expected_stage_id
            PersistenceError: the store rejected the write
        """
        ...

    async def insert_stage_transition(self, record: StageTransitionRecord) -> StageTransitionRecord:
        ...

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
        ...
