"""StageTransitionService: the single write path for a project's current stage.

This is the integration point where the pure prerequisite rules meet the
workflow store. A transition attempt moves through:

    idle -> validating -> {blocked | ready} -> transitioning -> {committed | failed}

One service instance tracks one attempt at a time; create one per request.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

import structlog

from factory_pulse.core.config import get_settings
from factory_pulse.core.exceptions import (
    AuthenticationError,
    BypassNotPermittedError,
    ConfigurationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from factory_pulse.domain.actors import Actor
from factory_pulse.domain.history import StageTransitionRecord
from factory_pulse.domain.prerequisites import CheckStatus, PrerequisiteResult
from factory_pulse.domain.projects import ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage, validate_stage_transition
from factory_pulse.services.prerequisite_checker import PrerequisiteChecker
from factory_pulse.services.stage_events import StageEventHub, StageTransitionEvent
from factory_pulse.services.stage_history import StageHistoryRecorder
from factory_pulse.services.stage_registry import StageRegistry
from factory_pulse.store.workflow_store import WorkflowStore

logger = structlog.get_logger(__name__)

PersistUpdate = Callable[[str], Awaitable[None]]


class TransitionPhase(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    READY = "ready"
    TRANSITIONING = "transitioning"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class TransitionState:
    """Observable state of the current transition attempt."""

    phase: TransitionPhase = TransitionPhase.IDLE
    validation_result: PrerequisiteResult | None = None
    error: Exception | None = None

    @property
    def is_validating(self) -> bool:
        return self.phase == TransitionPhase.VALIDATING

    @property
    def is_transitioning(self) -> bool:
        return self.phase == TransitionPhase.TRANSITIONING


@dataclass(frozen=True)
class TransitionOptions:
    bypass_validation: bool = False
    bypass_reason: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class TransitionOutcome:
    """Tagged result of an execute call.

    committed=True with history_recorded=False is the degraded path: the
    stage changed but the audit record could not be written.
    """

    committed: bool
    history_recorded: bool = False
    record: StageTransitionRecord | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class TransitionRecommendations:
    can_proceed: bool
    recommendations: list[str] = field(default_factory=list)
    blockers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class StageTransitionService:
    """Validates and executes stage transitions.

    AuthenticationError and ConfigurationError are raised to the caller.
    Validation, bypass-policy and persistence failures are reported through
    the outcome and kept in ``state.error``.
    """

    def __init__(
        self,
        registry: StageRegistry,
        checker: PrerequisiteChecker,
        recorder: StageHistoryRecorder,
        store: WorkflowStore | None = None,
        event_hub: StageEventHub | None = None,
        bypass_roles: list[str] | None = None,
    ):
        """Initialize with dependency injection.

        Args:
            registry: Stage lookups
            checker: Prerequisite rule engine
            recorder: Audit log writer
            store: Needed only by transition_project
            event_hub: Receives committed transitions when given
            bypass_roles: Roles allowed to bypass validation (defaults to settings)
        """
        self.registry = registry
        self.checker = checker
        self.recorder = recorder
        self.store = store
        self.event_hub = event_hub
        self.bypass_roles = set(bypass_roles if bypass_roles is not None else get_settings().bypass_roles)
        self.state = TransitionState()

    def reset(self) -> None:
        """Return to idle, clearing the last validation result and error."""
        self.state = TransitionState()

    def can_bypass(self, actor: Actor) -> bool:
        return actor.role is not None and actor.role in self.bypass_roles

    async def validate_transition(
        self,
        project: ProjectSnapshot,
        target_stage: WorkflowStage,
        current_stage: WorkflowStage | None = None,
    ) -> PrerequisiteResult:
        """Check prerequisites for project -> target_stage.

        Fail-closed: anything other than a ConfigurationError yields a result
        with a single failed required "System Error" check.
        """
        self.state.phase = TransitionPhase.VALIDATING
        self.state.error = None

        try:
            result = await self.checker.check_prerequisites(project, target_stage, current_stage)
        except ConfigurationError as exc:
            self.state.phase = TransitionPhase.FAILED
            self.state.error = exc
            raise
        except Exception as exc:
            logger.error(
                "prerequisite_check_failed",
                project_id=project.id,
                to_stage_id=target_stage.id,
                error=str(exc),
                exc_info=True,
            )
            result = PrerequisiteResult.system_error(str(exc))

        self.state.validation_result = result
        self.state.phase = TransitionPhase.READY if result.required_passed else TransitionPhase.BLOCKED
        return result

    async def execute_transition(
        self,
        project: ProjectSnapshot,
        target_stage: WorkflowStage,
        persist_update: PersistUpdate,
        actor: Actor | None,
        options: TransitionOptions | None = None,
    ) -> bool:
        """Execute a transition; True only when the persistence update succeeded."""
        outcome = await self.execute_transition_detailed(project, target_stage, persist_update, actor, options)
        return outcome.committed

    async def execute_transition_detailed(
        self,
        project: ProjectSnapshot,
        target_stage: WorkflowStage,
        persist_update: PersistUpdate,
        actor: Actor | None,
        options: TransitionOptions | None = None,
    ) -> TransitionOutcome:
        """Execute a transition and report what happened.

        Order: authenticate, check bypass policy, validate (unless bypassing),
        record history, then call persist_update(target_stage.id). The
        persistence call is shielded from caller cancellation.

        Raises:
            AuthenticationError: no actor
            ConfigurationError: stage configuration is missing or inconsistent
        """
        options = options or TransitionOptions()
        if actor is None or not actor.user_id:
            self.state.phase = TransitionPhase.FAILED
            self.state.error = AuthenticationError("Authentication required to change a project's stage")
            raise self.state.error

        log = logger.bind(
            project_id=project.id,
            from_stage_id=project.current_stage_id,
            to_stage_id=target_stage.id,
            user_id=actor.user_id,
            bypass=options.bypass_validation,
        )

        try:
            source_stage = await self._prepare(project, target_stage, actor, options)
        except ConfigurationError as exc:
            self.state.phase = TransitionPhase.FAILED
            self.state.error = exc
            raise
        except ValidationError as exc:
            if self.state.phase != TransitionPhase.BLOCKED:
                self.state.phase = TransitionPhase.FAILED
            self.state.error = exc
            log.info("stage_transition_refused", reason=str(exc))
            return TransitionOutcome(committed=False, error=exc)
        except BypassNotPermittedError as exc:
            self.state.phase = TransitionPhase.FAILED
            self.state.error = exc
            log.warning("stage_transition_bypass_refused", role=actor.role)
            return TransitionOutcome(committed=False, error=exc)
        except PersistenceError as exc:
            self.state.phase = TransitionPhase.FAILED
            self.state.error = exc
            log.error("stage_transition_prepare_failed", error=str(exc))
            return TransitionOutcome(committed=False, error=exc)

        self.state.phase = TransitionPhase.TRANSITIONING
        record = await self._record(project, source_stage, target_stage, actor, options, log)

        try:
            await asyncio.shield(persist_update(target_stage.id))
        except Exception as exc:
            error = exc if isinstance(exc, PersistenceError) else PersistenceError(f"Failed to update project stage: {exc}")
            self.state.phase = TransitionPhase.FAILED
            self.state.error = error
            log.error("stage_transition_persist_failed", error=str(exc), history_recorded=record is not None)
            return TransitionOutcome(committed=False, history_recorded=record is not None, record=record, error=error)

        self.state.phase = TransitionPhase.COMMITTED
        log.info("stage_transition_committed", history_recorded=record is not None)

        if self.event_hub is not None:
            await self.event_hub.publish(
                StageTransitionEvent(
                    organization_id=project.organization_id,
                    project_id=project.id,
                    from_stage_id=project.current_stage_id,
                    to_stage_id=target_stage.id,
                    to_stage_name=target_stage.name,
                    actor_id=actor.user_id,
                    bypass_required=options.bypass_validation,
                    occurred_at=record.created_at if record else datetime.now(UTC),
                    record_id=record.id if record else None,
                )
            )

        return TransitionOutcome(committed=True, history_recorded=record is not None, record=record)

    async def _prepare(
        self,
        project: ProjectSnapshot,
        target_stage: WorkflowStage,
        actor: Actor,
        options: TransitionOptions,
    ) -> WorkflowStage | None:
        """Run every check that must pass before anything is written; returns the source stage."""
        if options.bypass_validation:
            if not (options.bypass_reason and options.bypass_reason.strip()):
                raise ValidationError("A bypass reason is required when bypassing validation")
            if not self.can_bypass(actor):
                raise BypassNotPermittedError(actor.user_id, actor.role)

        if target_stage.organization_id != project.organization_id:
            raise ValidationError("Stages belong to different organizations")

        source_stage = await self.checker.resolve_source_stage(project)
        stages = await self.registry.get_workflow_stages(target_stage.organization_id)
        structural = validate_stage_transition(stages, source_stage, target_stage)
        if not structural.is_valid:
            raise ValidationError(structural.reason)

        if not options.bypass_validation:
            result = await self.validate_transition(project, target_stage, source_stage)
            if not result.required_passed:
                raise ValidationError(
                    f"Cannot move to {target_stage.name}: {', '.join(result.blockers)}", result
                )
        return source_stage

    async def _record(
        self,
        project: ProjectSnapshot,
        source_stage: WorkflowStage | None,
        target_stage: WorkflowStage,
        actor: Actor,
        options: TransitionOptions,
        log,
    ) -> StageTransitionRecord | None:
        """Write the audit record; a store failure is logged and the transition continues."""
        default_reason = "Manager bypass" if options.bypass_validation else "Normal transition"
        try:
            return await self.recorder.record_stage_transition(
                organization_id=project.organization_id,
                project_id=project.id,
                from_stage_id=project.current_stage_id,
                to_stage_id=target_stage.id,
                user_id=actor.user_id,
                reason=options.reason or default_reason,
                bypass_required=options.bypass_validation,
                bypass_reason=options.bypass_reason if options.bypass_validation else None,
                from_stage_name=source_stage.name if source_stage else None,
                to_stage_name=target_stage.name,
            )
        except PersistenceError as exc:
            log.warning("stage_history_record_failed", error=str(exc))
            return None

    async def can_transition_to_stage(self, project: ProjectSnapshot, target_stage: WorkflowStage) -> bool:
        """Structural and rule validity as one boolean; any error counts as False."""
        if target_stage.organization_id != project.organization_id:
            return False
        try:
            structural = await self.registry.validate_stage_transition(
                project.current_stage_id, target_stage.id, project.organization_id
            )
            if not structural.is_valid:
                return False
            result = await self.checker.check_prerequisites(project, target_stage)
        except Exception as exc:
            logger.warning(
                "can_transition_check_failed", project_id=project.id, to_stage_id=target_stage.id, error=str(exc)
            )
            return False
        return result.required_passed

    async def get_transition_recommendations(
        self, project: ProjectSnapshot, target_stage: WorkflowStage
    ) -> TransitionRecommendations:
        """Split the checks into blockers, recommendations and warnings as display sentences."""
        try:
            result = await self.checker.check_prerequisites(project, target_stage)
        except Exception as exc:
            logger.warning(
                "transition_recommendations_failed", project_id=project.id, to_stage_id=target_stage.id, error=str(exc)
            )
            return TransitionRecommendations(can_proceed=False, blockers=["Error checking transition requirements"])

        recommendations: list[str] = []
        blockers: list[str] = []
        warnings: list[str] = []
        for check in result.checks:
            if check.status == CheckStatus.FAILED and check.required:
                blockers.append(f"Complete {check.name}: {check.message}")
            elif check.status == CheckStatus.FAILED:
                recommendations.append(f"Consider completing {check.name}: {check.message}")
            elif check.status == CheckStatus.WARNING:
                warnings.append(f"{check.name}: {check.message}")

        return TransitionRecommendations(
            can_proceed=result.required_passed,
            recommendations=recommendations,
            blockers=blockers,
            warnings=warnings,
        )

    async def load_project(self, organization_id: str, project_id: str) -> ProjectSnapshot:
        """Read a project from the store, scoped to an organization.

        Raises:
            NotFoundError: unknown project, or one owned by another organization
        """
        if self.store is None:
            raise RuntimeError("StageTransitionService was created without a store")
        project = await self.store.get_project(project_id)
        if project is None or project.organization_id != organization_id:
            raise NotFoundError(f"Project '{project_id}' not found")
        return project

    async def load_stage(self, organization_id: str, stage_id: str) -> WorkflowStage:
        stage = await self.registry.get_workflow_stage_by_id(stage_id, organization_id)
        if stage is None:
            raise NotFoundError(f"Stage '{stage_id}' not found")
        return stage

    async def transition_project(
        self,
        organization_id: str,
        project_id: str,
        target_stage_id: str,
        actor: Actor | None,
        options: TransitionOptions | None = None,
    ) -> TransitionOutcome:
        """Load a project and move it with a conditional store update.

        The update only applies if the project is still at the stage the
        validation saw; otherwise the outcome carries a StaleTransitionError.

        Raises:
            NotFoundError: unknown project or target stage
            AuthenticationError: no actor
            ConfigurationError: stage configuration is missing or inconsistent
        """
        project = await self.load_project(organization_id, project_id)
        target_stage = await self.load_stage(organization_id, target_stage_id)
        expected_stage_id = project.current_stage_id

        async def persist_update(stage_id: str) -> None:
            await self.store.update_project_stage(project.id, stage_id, expected_stage_id, datetime.now(UTC))

        return await self.execute_transition_detailed(project, target_stage, persist_update, actor, options)
