"""Shared test fixtures for all test groups."""

import pytest

from factory_pulse.domain.actors import Actor
from factory_pulse.domain.projects import ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage
from factory_pulse.services.prerequisite_checker import PrerequisiteChecker
from factory_pulse.services.stage_history import StageHistoryRecorder
from factory_pulse.services.stage_registry import StageRegistry
from factory_pulse.services.stage_transition import StageTransitionService
from factory_pulse.store.workflow_store_memory import InMemoryWorkflowStore

ORG_ID = "org-acme"
OTHER_ORG_ID = "org-globex"


def make_stage(stage_id: str, slug: str, order: int, organization_id: str = ORG_ID, **kwargs) -> WorkflowStage:
    name = kwargs.pop("name", slug.replace("_", " ").title())
    return WorkflowStage(
        id=stage_id, organization_id=organization_id, name=name, slug=slug, stage_order=order, **kwargs
    )


@pytest.fixture
def inquiry():
    return make_stage("stage-inquiry", "inquiry_received", 1, name="Inquiry")


@pytest.fixture
def review():
    return make_stage("stage-review", "technical_review", 2, name="Review")


@pytest.fixture
def quoted():
    return make_stage("stage-quoted", "quoted", 3, name="Quoted")


@pytest.fixture
def foreign_stage():
    """A stage owned by another organization."""
    return make_stage("stage-globex-review", "technical_review", 2, organization_id=OTHER_ORG_ID, name="Review")


@pytest.fixture
def stages(inquiry, review, quoted):
    return [inquiry, review, quoted]


@pytest.fixture
def project_factory():
    def _make(current_stage_id: str | None = None, **kwargs) -> ProjectSnapshot:
        return ProjectSnapshot(
            id=kwargs.pop("id", "project-1"),
            organization_id=kwargs.pop("organization_id", ORG_ID),
            title=kwargs.pop("title", "Bracket machining RFQ"),
            current_stage_id=current_stage_id,
            **kwargs,
        )

    return _make


@pytest.fixture
def store(stages, foreign_stage):
    return InMemoryWorkflowStore(stages=[*stages, foreign_stage])


@pytest.fixture
def registry(store):
    return StageRegistry(store, ttl_seconds=300)


@pytest.fixture
def checker(registry):
    return PrerequisiteChecker(registry)


@pytest.fixture
def recorder(store):
    return StageHistoryRecorder(store)


@pytest.fixture
def service(registry, checker, recorder, store):
    return StageTransitionService(
        registry=registry,
        checker=checker,
        recorder=recorder,
        store=store,
        bypass_roles=["admin", "management"],
    )


@pytest.fixture
def engineer():
    return Actor(user_id="user-engineer", role="engineer", organization_id=ORG_ID)


@pytest.fixture
def manager():
    return Actor(user_id="user-manager", role="management", organization_id=ORG_ID)
