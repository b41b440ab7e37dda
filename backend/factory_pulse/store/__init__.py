"""Persistence collaborators for the stage transition core."""

from factory_pulse.store.workflow_store import WorkflowStore
from factory_pulse.store.workflow_store_memory import InMemoryWorkflowStore
from factory_pulse.store.workflow_store_sql import SqlWorkflowStore

__all__ = ["InMemoryWorkflowStore", "SqlWorkflowStore", "WorkflowStore"]
