"""Stage transition API routes."""

import asyncio
import json
import time
from datetime import datetime
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from factory_pulse.core.auth import require_actor
from factory_pulse.db.base import get_session_factory
from factory_pulse.domain.actors import Actor
from factory_pulse.schemas.stage_transitions import (
    PrerequisiteResultResponse,
    RecentTransitionsResponse,
    RecommendationsResponse,
    StageHistoryEntryResponse,
    StageHistoryResponse,
    StageListResponse,
    StageTransitionRecordResponse,
    StructuralCheckResponse,
    TransitionRequest,
    TransitionResponse,
    TransitionStatsResponse,
    ValidateTransitionResponse,
    WorkflowStageResponse,
)
from factory_pulse.services.prerequisite_checker import PrerequisiteChecker
from factory_pulse.services.stage_events import StageEventHub, StageTransitionEvent
from factory_pulse.services.stage_history import StageHistoryRecorder
from factory_pulse.services.stage_registry import StageRegistry
from factory_pulse.services.stage_transition import StageTransitionService, TransitionOptions
from factory_pulse.store.workflow_store import WorkflowStore
from factory_pulse.store.workflow_store_sql import SqlWorkflowStore

router = APIRouter()

_EVENTS_HEARTBEAT_INTERVAL = 15.0


def get_workflow_store() -> WorkflowStore:
    """Dependency that provides the WorkflowStore.

    Override this dependency in tests via app.dependency_overrides.
    """
    return SqlWorkflowStore(get_session_factory())


@lru_cache
def _shared_registry() -> StageRegistry:
    return StageRegistry(SqlWorkflowStore(get_session_factory()))


def get_stage_registry() -> StageRegistry:
    """Process-wide registry so the stage cache survives across requests."""
    return _shared_registry()


def get_event_hub(request: Request) -> StageEventHub | None:
    return getattr(request.app.state, "stage_events", None)


def get_history_recorder(store: WorkflowStore = Depends(get_workflow_store)) -> StageHistoryRecorder:
    return StageHistoryRecorder(store)


def get_transition_service(
    store: WorkflowStore = Depends(get_workflow_store),
    registry: StageRegistry = Depends(get_stage_registry),
    recorder: StageHistoryRecorder = Depends(get_history_recorder),
    event_hub: StageEventHub | None = Depends(get_event_hub),
) -> StageTransitionService:
    """One service per request; each tracks a single transition attempt."""
    return StageTransitionService(
        registry=registry,
        checker=PrerequisiteChecker(registry),
        recorder=recorder,
        store=store,
        event_hub=event_hub,
    )


@router.get("/stages", response_model=StageListResponse)
async def list_stages(
    actor: Actor = Depends(require_actor),
    registry: StageRegistry = Depends(get_stage_registry),
):
    """Active workflow stages of the caller's organization, in pipeline order.

    Raises:
        ConfigurationError(422): Organization has no stages configured
    """
    stages = await registry.get_workflow_stages(actor.organization_id)
    return StageListResponse(
        organization_id=actor.organization_id,
        stages=[WorkflowStageResponse.model_validate(s) for s in stages],
    )


@router.get("/projects/{project_id}/transitions/validate", response_model=ValidateTransitionResponse)
async def validate_transition(
    project_id: str,
    target_stage_id: str = Query(...),
    actor: Actor = Depends(require_actor),
    service: StageTransitionService = Depends(get_transition_service),
):
    """Structural check plus prerequisite evaluation, without side effects.

    Raises:
        NotFoundError(404): Project or stage not found in the caller's organization
        ConfigurationError(422): Project's current stage cannot be resolved
    """
    project = await service.load_project(actor.organization_id, project_id)
    target_stage = await service.load_stage(actor.organization_id, target_stage_id)

    structural = await service.registry.validate_stage_transition(
        project.current_stage_id, target_stage.id, actor.organization_id
    )
    result = await service.validate_transition(project, target_stage)

    return ValidateTransitionResponse(
        project_id=project.id,
        from_stage_id=project.current_stage_id,
        to_stage_id=target_stage.id,
        structural=StructuralCheckResponse.model_validate(structural),
        prerequisites=PrerequisiteResultResponse.model_validate(result),
    )


@router.get("/projects/{project_id}/transitions/recommendations", response_model=RecommendationsResponse)
async def transition_recommendations(
    project_id: str,
    target_stage_id: str = Query(...),
    actor: Actor = Depends(require_actor),
    service: StageTransitionService = Depends(get_transition_service),
):
    """Blockers, recommendations and warnings for moving to target_stage_id."""
    project = await service.load_project(actor.organization_id, project_id)
    target_stage = await service.load_stage(actor.organization_id, target_stage_id)
    recommendations = await service.get_transition_recommendations(project, target_stage)
    return RecommendationsResponse.model_validate(recommendations)


@router.post("/projects/{project_id}/transitions", response_model=TransitionResponse)
async def execute_transition(
    project_id: str,
    request: TransitionRequest,
    actor: Actor = Depends(require_actor),
    service: StageTransitionService = Depends(get_transition_service),
):
    """Move a project to another stage.

    Raises:
        ValidationError(409): Required prerequisites unmet or invalid move
        BypassNotPermittedError(403): Actor's role may not bypass validation
        StaleTransitionError(409): Project moved since it was validated
        PersistenceError(503): Store rejected the update
    """
    options = TransitionOptions(
        bypass_validation=request.bypass_validation,
        bypass_reason=request.bypass_reason,
        reason=request.reason,
    )
    outcome = await service.transition_project(
        actor.organization_id, project_id, request.target_stage_id, actor, options
    )
    if not outcome.committed:
        raise outcome.error

    return TransitionResponse(
        committed=True,
        history_recorded=outcome.history_recorded,
        project_id=project_id,
        to_stage_id=request.target_stage_id,
        record=StageTransitionRecordResponse.model_validate(outcome.record) if outcome.record else None,
    )


@router.get("/projects/{project_id}/stage-history", response_model=StageHistoryResponse)
async def stage_history(
    project_id: str,
    actor: Actor = Depends(require_actor),
    service: StageTransitionService = Depends(get_transition_service),
    recorder: StageHistoryRecorder = Depends(get_history_recorder),
):
    """Chronological stage stays for a project."""
    project = await service.load_project(actor.organization_id, project_id)
    entries = await recorder.get_project_stage_history(project.id)
    return StageHistoryResponse(
        project_id=project.id,
        entries=[StageHistoryEntryResponse.model_validate(e) for e in entries],
    )


@router.get("/transitions/recent", response_model=RecentTransitionsResponse)
async def recent_transitions(
    limit: int = Query(default=10, ge=1, le=100),
    actor: Actor = Depends(require_actor),
    recorder: StageHistoryRecorder = Depends(get_history_recorder),
):
    records = await recorder.get_recent_transitions(actor.organization_id, limit=limit)
    return RecentTransitionsResponse(
        organization_id=actor.organization_id,
        transitions=[StageTransitionRecordResponse.model_validate(r) for r in records],
    )


@router.get("/transitions/stats", response_model=TransitionStatsResponse)
async def transition_stats(
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    actor: Actor = Depends(require_actor),
    recorder: StageHistoryRecorder = Depends(get_history_recorder),
):
    stats = await recorder.get_transition_stats(actor.organization_id, date_from=date_from, date_to=date_to)
    return TransitionStatsResponse.model_validate(stats)


@router.get("/transitions/stream")
async def stream_stage_transitions(
    request: Request,
    actor: Actor = Depends(require_actor),
    event_hub: StageEventHub | None = Depends(get_event_hub),
):
    """Stream committed stage transitions of the caller's organization via SSE.

    The hub is activated for the actor while the stream is open, and the
    subscription only sees the actor's organization. Sends a heartbeat every
    15 seconds so idle proxies keep the connection.

    Raises:
        HTTPException(503): Event hub not running
    """
    if event_hub is None:
        raise HTTPException(status_code=503, detail="Stage events are not available")

    queue: asyncio.Queue[StageTransitionEvent] = asyncio.Queue()

    async def event_generator():
        event_hub.activate(actor)
        handle = event_hub.subscribe(queue.put_nowait, organization_id=actor.organization_id)
        last_heartbeat = time.monotonic()

        try:
            yield "event: ready\ndata: {}\n\n"
            while True:
                if await request.is_disconnected():
                    return

                now = time.monotonic()
                if now - last_heartbeat >= _EVENTS_HEARTBEAT_INTERVAL:
                    yield "event: heartbeat\ndata: {}\n\n"
                    last_heartbeat = now

                try:
                    event = await asyncio.wait_for(queue.get(), timeout=1.0)
                except TimeoutError:
                    continue

                yield f"event: stage_transition\ndata: {json.dumps(event.to_payload())}\n\n"
                last_heartbeat = time.monotonic()
        finally:
            event_hub.unsubscribe(handle)
            event_hub.deactivate(actor)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
