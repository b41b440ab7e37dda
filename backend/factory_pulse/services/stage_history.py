"""StageHistoryRecorder: append-only stage transition audit log.

Writes one StageTransitionRecord per executed transition and serves the
read views built from those records (per-project history, recent activity,
aggregate stats).
"""

import uuid
from datetime import UTC, datetime

import structlog

from factory_pulse.core.exceptions import PersistenceError
from factory_pulse.domain.history import (
    StageHistoryEntry,
    StageTransitionRecord,
    TransitionStats,
    build_stage_history,
    summarize_transitions,
)
from factory_pulse.middleware.correlation import get_correlation_id
from factory_pulse.store.workflow_store import WorkflowStore

logger = structlog.get_logger(__name__)


class StageHistoryRecorder:
    """Writer and reader for stage transition records.

    Calls are not deduplicated: one call means one record.
    """

    def __init__(self, store: WorkflowStore):
        self.store = store

    async def record_stage_transition(
        self,
        *,
        organization_id: str,
        project_id: str,
        to_stage_id: str,
        user_id: str,
        reason: str,
        from_stage_id: str | None = None,
        bypass_required: bool = False,
        bypass_reason: str | None = None,
        from_stage_name: str | None = None,
        to_stage_name: str | None = None,
    ) -> StageTransitionRecord:
        """Append one transition record.

        Raises:
            ValueError: bypass_required without a bypass_reason
            PersistenceError: the store rejected the insert
        """
        if bypass_required and not bypass_reason:
            raise ValueError("bypass_reason is required when bypass_required is set")

        record = StageTransitionRecord(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            project_id=project_id,
            from_stage_id=from_stage_id,
            to_stage_id=to_stage_id,
            user_id=user_id,
            reason=reason,
            created_at=datetime.now(UTC),
            bypass_required=bypass_required,
            bypass_reason=bypass_reason,
            from_stage_name=from_stage_name,
            to_stage_name=to_stage_name,
            correlation_id=get_correlation_id(),
        )

        try:
            saved = await self.store.insert_stage_transition(record)
        except PersistenceError:
            logger.error("stage_transition_record_failed", project_id=project_id, to_stage_id=to_stage_id)
            raise

        logger.info(
            "stage_transition_recorded",
            record_id=saved.id,
            project_id=project_id,
            from_stage_id=from_stage_id,
            to_stage_id=to_stage_id,
            action=saved.action,
        )
        return saved

    async def get_project_stage_history(self, project_id: str) -> list[StageHistoryEntry]:
        """Chronological stage stays for one project."""
        records = await self.store.list_stage_transitions(project_id=project_id)
        return build_stage_history(records)

    async def get_recent_transitions(self, organization_id: str, limit: int = 10) -> list[StageTransitionRecord]:
        """Newest transitions across an organization."""
        return await self.store.list_stage_transitions(
            organization_id=organization_id, limit=limit, newest_first=True
        )

    async def get_transition_stats(
        self,
        organization_id: str,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> TransitionStats:
        records = await self.store.list_stage_transitions(
            organization_id=organization_id, date_from=date_from, date_to=date_to
        )
        return summarize_transitions(records)
