"""Liveness and readiness checks for the load balancer."""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from factory_pulse.api.routes.stage_transitions import get_workflow_store
from factory_pulse.core.exceptions import PersistenceError
from factory_pulse.store.workflow_store import WorkflowStore

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "factory-pulse"


def _draining(request: Request) -> bool:
    return getattr(request.app.state, "shutting_down", False)


@router.get("/health")
async def health_check(request: Request):
    """Liveness: 503 once SIGTERM arrived so traffic drains before shutdown."""
    if _draining(request):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(request: Request, store: WorkflowStore = Depends(get_workflow_store)):
    """Readiness: the workflow store answers and at least one active stage is configured.

    Transitions cannot be validated without stages, so an empty workflow table
    reports degraded just like an unreachable database.
    """
    checks = {"workflow_store": False, "workflow_stages": False}
    stage_count = 0

    if not _draining(request):
        try:
            stage_count = await store.count_workflow_stages()
            checks["workflow_store"] = True
            checks["workflow_stages"] = stage_count > 0
        except PersistenceError as exc:
            logger.error("readiness_store_unavailable", error=str(exc))

    ready = all(checks.values())
    if checks["workflow_store"] and not checks["workflow_stages"]:
        logger.warning("readiness_no_workflow_stages")

    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "degraded",
            "service": SERVICE_NAME,
            "checks": checks,
            "stage_count": stage_count,
        },
    )
