"""StageRegistry: organization-scoped workflow stages with a TTL cache.

Read path only. Administrative stage edits must be followed by refresh().
"""

import time
from collections.abc import Callable

import structlog

from factory_pulse.core.config import get_settings
from factory_pulse.core.exceptions import ConfigurationError
from factory_pulse.domain import stages as stage_rules
from factory_pulse.domain.stages import StageTransitionCheck, WorkflowStage
from factory_pulse.store.workflow_store import WorkflowStore

logger = structlog.get_logger(__name__)


class StageRegistry:
    """Loads, caches and resolves workflow stages per organization."""

    def __init__(
        self,
        store: WorkflowStore,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize with dependency injection.

        Args:
            store: WorkflowStore used for stage reads
            ttl_seconds: Cache lifetime per organization (defaults to settings)
            clock: Monotonic time source, injectable for tests
        """
        self.store = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_settings().stage_cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, list[WorkflowStage]]] = {}

    def refresh(self, organization_id: str | None = None) -> None:
        """Drop cached stages for one organization, or for all when none is given."""
        if organization_id is None:
            self._cache.clear()
        else:
            self._cache.pop(organization_id, None)
        logger.info("stage_cache_invalidated", organization_id=organization_id)

    def _cached(self, organization_id: str) -> list[WorkflowStage] | None:
        entry = self._cache.get(organization_id)
        if entry is None:
            return None
        loaded_at, stages = entry
        if self._clock() - loaded_at >= self.ttl_seconds:
            del self._cache[organization_id]
            return None
        return stages

    async def get_workflow_stages(self, organization_id: str, force_refresh: bool = False) -> list[WorkflowStage]:
        """Active stages of an organization, ascending by stage_order.

        Raises:
            ConfigurationError: the organization has no active stages, or two share an order
        """
        if not force_refresh:
            cached = self._cached(organization_id)
            if cached is not None:
                return list(cached)

        rows = await self.store.list_workflow_stages(organization_id, active_only=True)
        try:
            stages = stage_rules.sort_stages(rows)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        if not stages:
            raise ConfigurationError(f"No workflow stages configured for organization '{organization_id}'")

        self._cache[organization_id] = (self._clock(), stages)
        logger.debug("stage_cache_loaded", organization_id=organization_id, stage_count=len(stages))
        return list(stages)

    async def _find_stage(self, stage_id: str) -> WorkflowStage | None:
        """Look a stage up in unexpired cache entries, then in the store."""
        for organization_id in list(self._cache):
            stage = next((s for s in self._cached(organization_id) or () if s.id == stage_id), None)
            if stage is not None:
                return stage
        return await self.store.get_workflow_stage(stage_id)

    async def get_workflow_stage_by_id(self, stage_id: str | None, organization_id: str) -> WorkflowStage | None:
        """Resolve a stage reference; None when unknown or owned by another organization."""
        if not stage_id:
            return None

        stage = await self._find_stage(stage_id)
        if stage is not None and stage.organization_id != organization_id:
            logger.warning(
                "cross_organization_stage_lookup",
                stage_id=stage_id,
                organization_id=organization_id,
            )
            return None
        return stage

    async def get_workflow_stage_by_slug(self, organization_id: str, slug: str) -> WorkflowStage | None:
        stages = await self.get_workflow_stages(organization_id)
        return next((s for s in stages if s.slug == slug), None)

    async def get_next_stage(self, stage: WorkflowStage) -> WorkflowStage | None:
        stages = await self.get_workflow_stages(stage.organization_id)
        return stage_rules.next_stage(stages, stage)

    async def get_previous_stage(self, stage: WorkflowStage) -> WorkflowStage | None:
        stages = await self.get_workflow_stages(stage.organization_id)
        return stage_rules.previous_stage(stages, stage)

    async def validate_stage_transition(
        self, from_stage_id: str | None, to_stage_id: str | None, organization_id: str
    ) -> StageTransitionCheck:
        """Structural check between two stage references within one organization.

        Skips and backward moves are valid but flagged as needing approval.
        """
        to_stage = await self._find_stage(to_stage_id) if to_stage_id else None
        if to_stage is None:
            return StageTransitionCheck(False, "Invalid stage ID provided")

        from_stage = None
        if from_stage_id:
            from_stage = await self._find_stage(from_stage_id)
            if from_stage is None:
                return StageTransitionCheck(False, "Invalid stage ID provided")

        if any(s.organization_id != organization_id for s in (to_stage, from_stage) if s is not None):
            logger.warning(
                "cross_organization_stage_transition",
                from_stage_id=from_stage_id,
                to_stage_id=to_stage_id,
                organization_id=organization_id,
            )
            return StageTransitionCheck(False, "Stages belong to different organizations")

        stages = await self.get_workflow_stages(organization_id)
        return stage_rules.validate_stage_transition(stages, from_stage, to_stage)
