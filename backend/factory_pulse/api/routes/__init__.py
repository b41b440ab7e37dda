from fastapi import APIRouter

from factory_pulse.api.routes import health, stage_transitions

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(stage_transitions.router, tags=["stage-transitions"])
