"""Re-export all models so Base.metadata sees them."""

from factory_pulse.db.models.project import Project
from factory_pulse.db.models.stage_transition import StageTransition
from factory_pulse.db.models.workflow_stage import WorkflowStageRow

__all__ = [
    "Project",
    "StageTransition",
    "WorkflowStageRow",
]
