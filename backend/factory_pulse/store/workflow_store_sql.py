"""SqlWorkflowStore: WorkflowStore backed by PostgreSQL through SQLAlchemy async sessions."""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from factory_pulse.core.exceptions import PersistenceError, StaleTransitionError
from factory_pulse.db.models.project import Project
from factory_pulse.db.models.stage_transition import StageTransition
from factory_pulse.db.models.workflow_stage import WorkflowStageRow
from factory_pulse.domain.history import StageTransitionRecord
from factory_pulse.domain.projects import ProjectMetadata, ProjectPriority, ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage

logger = structlog.get_logger(__name__)


def _as_uuid(value: str | None) -> uuid.UUID | None:
    """Parse a string id; malformed ids are treated as missing."""
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _as_str(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


def stage_from_row(row: WorkflowStageRow) -> WorkflowStage:
    return WorkflowStage(
        id=str(row.id),
        organization_id=str(row.organization_id),
        name=row.name,
        slug=row.slug,
        stage_order=row.stage_order,
        description=row.description or "",
        is_active=row.is_active,
        estimated_duration_days=row.estimated_duration_days,
        color=row.color,
        sub_stages_count=row.sub_stages_count or 0,
        exit_criteria=tuple(row.exit_criteria or ()),
        responsible_roles=tuple(row.responsible_roles or ()),
        requires_approval=bool(row.requires_approval),
        approval_roles=tuple(row.approval_roles or ()),
        required_document_types=tuple(row.required_document_types or ()),
    )


def project_from_row(row: Project) -> ProjectSnapshot:
    priority = ProjectPriority(row.priority_level) if row.priority_level else None
    return ProjectSnapshot(
        id=str(row.id),
        organization_id=str(row.organization_id),
        title=row.title,
        current_stage_id=_as_str(row.current_stage_id),
        stage_entered_at=row.stage_entered_at,
        project_number=row.project_number,
        priority=priority,
        estimated_value=float(row.estimated_value) if row.estimated_value is not None else None,
        engineering_reviewer_id=row.engineering_reviewer_id,
        qa_reviewer_id=row.qa_reviewer_id,
        production_reviewer_id=row.production_reviewer_id,
        description=row.description or "",
        notes=row.notes or "",
        tags=tuple(row.tags or ()),
        customer_id=_as_str(row.customer_id),
        contact_id=_as_str(row.contact_id),
        due_date=row.due_date,
        metadata=ProjectMetadata.from_dict(row.project_metadata),
    )


def record_from_row(row: StageTransition) -> StageTransitionRecord:
    return StageTransitionRecord(
        id=str(row.id),
        organization_id=str(row.organization_id),
        project_id=str(row.project_id),
        from_stage_id=_as_str(row.from_stage_id),
        to_stage_id=str(row.to_stage_id),
        user_id=row.user_id,
        reason=row.reason,
        created_at=row.created_at,
        bypass_required=row.bypass_required,
        bypass_reason=row.bypass_reason,
        from_stage_name=row.from_stage_name,
        to_stage_name=row.to_stage_name,
        correlation_id=row.correlation_id,
    )


class SqlWorkflowStore:
    """WorkflowStore over the workflow_stages, projects and stage_transitions tables.

    Each operation opens its own session. SQLAlchemy errors surface as PersistenceError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize with dependency injection.

        Args:
            session_factory: SQLAlchemy async session factory
        """
        self.session_factory = session_factory

    async def get_project(self, project_id: str) -> ProjectSnapshot | None:
        project_uuid = _as_uuid(project_id)
        if project_uuid is None:
            return None
        try:
            async with self.session_factory() as session:
                row = await session.get(Project, project_uuid)
                return project_from_row(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load project '{project_id}'") from exc

    async def list_workflow_stages(self, organization_id: str, active_only: bool = True) -> list[WorkflowStage]:
        org_uuid = _as_uuid(organization_id)
        if org_uuid is None:
            return []
        stmt = select(WorkflowStageRow).where(WorkflowStageRow.organization_id == org_uuid)
        if active_only:
            stmt = stmt.where(WorkflowStageRow.is_active.is_(True))
        stmt = stmt.order_by(WorkflowStageRow.stage_order.asc())
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [stage_from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load workflow stages for organization '{organization_id}'") from exc

    async def get_workflow_stage(self, stage_id: str) -> WorkflowStage | None:
        stage_uuid = _as_uuid(stage_id)
        if stage_uuid is None:
            return None
        try:
            async with self.session_factory() as session:
                row = await session.get(WorkflowStageRow, stage_uuid)
                return stage_from_row(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load workflow stage '{stage_id}'") from exc

    async def count_workflow_stages(self) -> int:
        stmt = select(func.count()).select_from(WorkflowStageRow).where(WorkflowStageRow.is_active.is_(True))
        try:
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to count workflow stages") from exc

    async def update_project_stage(
        self,
        project_id: str,
        to_stage_id: str,
        expected_stage_id: str | None,
        entered_at: datetime,
    ) -> None:
        """Conditional update: zero matched rows means another writer moved the project first."""
        project_uuid = _as_uuid(project_id)
        to_uuid = _as_uuid(to_stage_id)
        if project_uuid is None or to_uuid is None:
            raise PersistenceError(f"Invalid project or stage id: '{project_id}', '{to_stage_id}'")

        stmt = (
            update(Project)
            .where(
                Project.id == project_uuid,
                Project.current_stage_id.is_not_distinct_from(_as_uuid(expected_stage_id)),
            )
            .values(current_stage_id=to_uuid, stage_entered_at=entered_at, updated_at=entered_at)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update stage of project '{project_id}'") from exc

        if result.rowcount == 0:
            logger.warning(
                "stale_stage_update",
                project_id=project_id,
                expected_stage_id=expected_stage_id,
                to_stage_id=to_stage_id,
            )
            raise StaleTransitionError(project_id, expected_stage_id)

    async def insert_stage_transition(self, record: StageTransitionRecord) -> StageTransitionRecord:
        row = StageTransition(
            id=_as_uuid(record.id) or uuid.uuid4(),
            organization_id=_as_uuid(record.organization_id),
            project_id=_as_uuid(record.project_id),
            correlation_id=record.correlation_id,
            from_stage_id=_as_uuid(record.from_stage_id),
            to_stage_id=_as_uuid(record.to_stage_id),
            from_stage_name=record.from_stage_name,
            to_stage_name=record.to_stage_name,
            user_id=record.user_id,
            reason=record.reason,
            bypass_required=record.bypass_required,
            bypass_reason=record.bypass_reason,
            created_at=record.created_at,
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return record_from_row(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to record transition for project '{record.project_id}'") from exc

    async def list_stage_transitions(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[StageTransitionRecord]:
        stmt = select(StageTransition)
        if organization_id is not None:
            stmt = stmt.where(StageTransition.organization_id == _as_uuid(organization_id))
        if project_id is not None:
            stmt = stmt.where(StageTransition.project_id == _as_uuid(project_id))
        if date_from is not None:
            stmt = stmt.where(StageTransition.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(StageTransition.created_at <= date_to)
        order = StageTransition.created_at.desc() if newest_first else StageTransition.created_at.asc()
        stmt = stmt.order_by(order)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [record_from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load stage transitions") from exc
