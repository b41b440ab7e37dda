"""PrerequisiteChecker: resolves stages and runs the prerequisite rule engine."""

import structlog

from factory_pulse.core.exceptions import ConfigurationError
from factory_pulse.domain.prerequisites import PrerequisiteResult, evaluate_prerequisites
from factory_pulse.domain.projects import ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage
from factory_pulse.services.stage_registry import StageRegistry

logger = structlog.get_logger(__name__)


class PrerequisiteChecker:
    """Evaluates the rules for moving a project to a target stage.

    Rule evaluation itself is pure; this class only supplies the stage lookups.
    """

    def __init__(self, registry: StageRegistry):
        self.registry = registry

    async def resolve_source_stage(
        self, project: ProjectSnapshot, current_stage: WorkflowStage | None = None
    ) -> WorkflowStage | None:
        """Stage the project is leaving; None for a project that has not entered any stage.

        Raises:
            ConfigurationError: current_stage_id is set but does not resolve in the project's organization
        """
        if current_stage is not None:
            return current_stage
        if project.current_stage_id is None:
            return None

        stage = await self.registry.get_workflow_stage_by_id(project.current_stage_id, project.organization_id)
        if stage is None:
            raise ConfigurationError(
                f"Current stage '{project.current_stage_id}' of project '{project.id}' could not be resolved"
            )
        return stage

    async def check_prerequisites(
        self,
        project: ProjectSnapshot,
        target_stage: WorkflowStage,
        current_stage: WorkflowStage | None = None,
    ) -> PrerequisiteResult:
        """Run exit, entry and workflow rules for project -> target_stage.

        Raises:
            ConfigurationError: unresolvable current stage, or no stages configured
        """
        source_stage = await self.resolve_source_stage(project, current_stage)
        stages = await self.registry.get_workflow_stages(target_stage.organization_id)
        result = evaluate_prerequisites(project, target_stage, source_stage, stages)

        logger.debug(
            "prerequisites_checked",
            project_id=project.id,
            from_stage_id=source_stage.id if source_stage else None,
            to_stage_id=target_stage.id,
            required_passed=result.required_passed,
            check_count=len(result.checks),
        )
        return result
