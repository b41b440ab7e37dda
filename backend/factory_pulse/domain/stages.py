"""Workflow stage value objects and structural transition validation.

Pure domain logic with no external dependencies.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class WorkflowStage:
    """One station in an organization's project pipeline.

    ``stage_order`` defines pipeline position; it is unique within an organization.
    """

    id: str
    organization_id: str
    name: str
    slug: str
    stage_order: int
    description: str = ""
    is_active: bool = True
    estimated_duration_days: int | None = None
    color: str | None = None
    sub_stages_count: int = 0
    exit_criteria: tuple[str, ...] = ()
    responsible_roles: tuple[str, ...] = ()
    requires_approval: bool = False
    approval_roles: tuple[str, ...] = ()
    required_document_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class StageTransitionCheck:
    """Result of a structural transition check."""

    is_valid: bool
    reason: str = ""
    requires_approval: bool = False


def sort_stages(stages: list[WorkflowStage]) -> list[WorkflowStage]:
    """Return active stages ordered ascending by stage_order.

    Raises:
        ValueError: if two active stages share a stage_order
    """
    active = sorted((s for s in stages if s.is_active), key=lambda s: s.stage_order)
    for previous, current in zip(active, active[1:]):
        if previous.stage_order == current.stage_order:
            raise ValueError(
                f"Stages '{previous.name}' and '{current.name}' share stage_order {current.stage_order}"
            )
    return active


def next_stage(stages: list[WorkflowStage], stage: WorkflowStage) -> WorkflowStage | None:
    """Stage with the next-higher order in the same organization, or None if terminal."""
    later = [
        s for s in stages
        if s.organization_id == stage.organization_id and s.stage_order > stage.stage_order
    ]
    return min(later, key=lambda s: s.stage_order) if later else None


def previous_stage(stages: list[WorkflowStage], stage: WorkflowStage) -> WorkflowStage | None:
    """Stage with the next-lower order in the same organization, or None if initial."""
    earlier = [
        s for s in stages
        if s.organization_id == stage.organization_id and s.stage_order < stage.stage_order
    ]
    return max(earlier, key=lambda s: s.stage_order) if earlier else None


def stage_distance(stages: list[WorkflowStage], from_stage: WorkflowStage | None, to_stage: WorkflowStage) -> int:
    """Number of pipeline positions between two stages (negative when moving backwards).

    A missing source counts as the position before the initial stage. A retired
    source keeps its place in the pipeline by stage_order.
    """
    positions = sort_stages(stages)
    if from_stage is not None and from_stage.id not in {s.id for s in positions}:
        positions = sorted([*positions, from_stage], key=lambda s: s.stage_order)
    ordered = [s.id for s in positions]
    to_index = ordered.index(to_stage.id)
    from_index = ordered.index(from_stage.id) if from_stage is not None else -1
    return to_index - from_index


def validate_stage_transition(
    stages: list[WorkflowStage],
    from_stage: WorkflowStage | None,
    to_stage: WorkflowStage | None,
) -> StageTransitionCheck:
    """Validate whether a move between two stages is structurally possible.

    Pure function -- no side effects, no DB access.

    Rules:
        - Target must exist
        - Source and target must belong to the same organization
        - Same-stage transitions are rejected
        - Forward by exactly one stage is valid
        - Skips and backward moves are valid but require approval; the
          prerequisite checker surfaces them as warnings
        - A missing source (new project) may enter any stage of its organization
        - A retired (inactive) source may still be left; the target must be active
    """
    if to_stage is None:
        return StageTransitionCheck(False, "Invalid stage ID provided")

    if from_stage is not None and from_stage.organization_id != to_stage.organization_id:
        return StageTransitionCheck(False, "Stages belong to different organizations")

    if from_stage is not None and from_stage.id == to_stage.id:
        return StageTransitionCheck(False, "Already at this stage")

    org_stages = [s for s in stages if s.organization_id == to_stage.organization_id and s.is_active]
    if to_stage.id not in {s.id for s in org_stages}:
        return StageTransitionCheck(False, "Target stage is not active in this workflow")

    distance = stage_distance(org_stages, from_stage, to_stage)

    if distance > 1:
        return StageTransitionCheck(
            True, f"Skipping {distance - 1} stage(s) requires manager approval", requires_approval=True
        )
    if distance < 0:
        return StageTransitionCheck(
            True, "Moving backwards in workflow requires manager approval", requires_approval=True
        )
    return StageTransitionCheck(True)
