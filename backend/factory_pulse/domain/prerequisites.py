"""Prerequisite rules for stage transitions.

Pure domain functions. Every rule is a named predicate over a ProjectSnapshot,
declared per stage slug in a fixed order so results render in a stable,
policy-meaningful sequence.

Kinds of check:
- assignment/flag checks: passed or failed
- progress proxies (non-empty text, an estimate being set): warning or failed,
  never passed -- presence of text is not proof the work is done
- document and approval checks: passed, or failed when the stage requires
  them; recommended documents that are missing are a warning
- workflow checks (retired source, skips, backward moves): warning only
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from factory_pulse.domain.projects import ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage, stage_distance


class CheckStatus(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"


class CheckCategory(StrEnum):
    STAGE_EXIT = "stage_exit"
    STAGE_ENTRY = "stage_entry"
    PROJECT_DATA = "project_data"
    DOCUMENTS = "documents"
    APPROVALS = "approvals"
    WORKFLOW = "workflow"
    SYSTEM = "system"


@dataclass(frozen=True)
class PrerequisiteCheck:
    """One evaluated rule. Computed on every validation, never stored."""

    key: str
    name: str
    description: str
    status: CheckStatus
    required: bool
    category: CheckCategory
    details: str | None = None

    @property
    def message(self) -> str:
        return self.details or self.description


@dataclass(frozen=True)
class PrerequisiteResult:
    """All checks for one transition attempt."""

    checks: tuple[PrerequisiteCheck, ...]
    required_passed: bool
    exit_criteria: tuple[str, ...] = ()

    @classmethod
    def from_checks(
        cls, checks: Sequence[PrerequisiteCheck], exit_criteria: Sequence[str] = ()
    ) -> "PrerequisiteResult":
        required_passed = all(c.status == CheckStatus.PASSED for c in checks if c.required)
        return cls(checks=tuple(checks), required_passed=required_passed, exit_criteria=tuple(exit_criteria))

    @classmethod
    def system_error(cls, details: str) -> "PrerequisiteResult":
        """Fail-closed result used when checks could not be evaluated."""
        check = PrerequisiteCheck(
            key="system_error",
            name="System Error",
            description="Failed to check prerequisites",
            status=CheckStatus.FAILED,
            required=True,
            category=CheckCategory.SYSTEM,
            details=details,
        )
        return cls(checks=(check,), required_passed=False)

    @property
    def all_passed(self) -> bool:
        return all(c.status == CheckStatus.PASSED for c in self.checks)

    @property
    def blockers(self) -> list[str]:
        """Names of required checks that did not pass."""
        return [c.name for c in self.checks if c.required and c.status != CheckStatus.PASSED]

    @property
    def errors(self) -> list[str]:
        return [f"{c.name}: {c.message}" for c in self.checks if c.required and c.status != CheckStatus.PASSED]

    @property
    def warnings(self) -> list[str]:
        return [f"{c.name}: {c.message}" for c in self.checks if c.status == CheckStatus.WARNING]


@dataclass(frozen=True)
class RuleOutcome:
    status: CheckStatus
    details: str | None = None


PASSED = RuleOutcome(CheckStatus.PASSED)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def project_title_present(project: ProjectSnapshot) -> RuleOutcome:
    if project.title and project.title.strip():
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Project title is required")


def customer_assigned(project: ProjectSnapshot) -> RuleOutcome:
    if project.customer_id:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Customer should be assigned to the project")


def priority_set(project: ProjectSnapshot) -> RuleOutcome:
    if project.priority:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Setting priority helps with resource allocation")


def engineering_review_completed(project: ProjectSnapshot) -> RuleOutcome:
    if project.engineering_reviewer_id:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "An engineering reviewer must be assigned before leaving technical review")


def qa_review_completed(project: ProjectSnapshot) -> RuleOutcome:
    if project.qa_reviewer_id:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Assign a QA reviewer to define inspection requirements")


def production_review_completed(project: ProjectSnapshot) -> RuleOutcome:
    if project.production_reviewer_id:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Assign a production reviewer to evaluate the process")


def description_in_progress(project: ProjectSnapshot) -> RuleOutcome:
    """Progress proxy: a written description suggests, but does not prove, readiness."""
    if project.description and project.description.strip():
        return RuleOutcome(CheckStatus.WARNING, "Description is present; confirm requirements are complete")
    return RuleOutcome(CheckStatus.FAILED, "A detailed project description helps with technical review")


def bom_completed(project: ProjectSnapshot) -> RuleOutcome:
    if project.metadata.has_bom:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Upload a bill of materials for supplier quoting")


def rfqs_sent(project: ProjectSnapshot) -> RuleOutcome:
    if project.metadata.supplier_quotes_requested > 0:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "No supplier RFQs have been sent")


def supplier_quotes_received(project: ProjectSnapshot) -> RuleOutcome:
    requested = project.metadata.supplier_quotes_requested
    received = project.metadata.supplier_quotes_received
    if requested > 0 and received >= requested:
        return PASSED
    if received > 0:
        return RuleOutcome(
            CheckStatus.WARNING, f"Not all supplier quotes received ({received}/{requested} received)"
        )
    return RuleOutcome(CheckStatus.FAILED, "At least one supplier quote should be available")


def costing_in_progress(project: ProjectSnapshot) -> RuleOutcome:
    """Progress proxy: an estimate on file means costing has started, not that it is final."""
    if project.estimated_value and project.estimated_value > 0:
        return RuleOutcome(CheckStatus.WARNING, "Estimated value is set; confirm internal costing is finalized")
    return RuleOutcome(CheckStatus.FAILED, "Project value should be set before quoting")


def purchase_order_received(project: ProjectSnapshot) -> RuleOutcome:
    if project.metadata.has_purchase_order:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Customer purchase order must be received")


def due_date_set(project: ProjectSnapshot) -> RuleOutcome:
    if project.due_date:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Due date helps with production scheduling")


def work_order_released(project: ProjectSnapshot) -> RuleOutcome:
    if project.metadata.work_order_released:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Release the production work order")


def quality_reviewer_assigned(project: ProjectSnapshot) -> RuleOutcome:
    if project.qa_reviewer_id:
        return PASSED
    return RuleOutcome(CheckStatus.FAILED, "Product should pass quality checks before shipping")


def has_document(project: ProjectSnapshot, document_type: str) -> bool:
    """A document matches on its type, or on a type that contains the wanted one."""
    wanted = document_type.lower()
    return any(t.lower() == wanted or wanted in t.lower() for t in project.metadata.document_types)


def has_approval(project: ProjectSnapshot, role: str) -> bool:
    wanted = role.lower()
    return any(t.lower() == wanted or wanted in t.lower() for t in project.metadata.approved_review_types)


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrerequisiteRule:
    key: str
    name: str
    description: str
    predicate: Callable[[ProjectSnapshot], RuleOutcome]
    category: CheckCategory
    required: bool = False

    def evaluate(self, project: ProjectSnapshot) -> PrerequisiteCheck:
        outcome = self.predicate(project)
        return PrerequisiteCheck(
            key=self.key,
            name=self.name,
            description=self.description,
            status=outcome.status,
            required=self.required,
            category=self.category,
            details=outcome.details,
        )


def _exit(key, name, description, predicate, required=False) -> PrerequisiteRule:
    return PrerequisiteRule(key, name, description, predicate, CheckCategory.STAGE_EXIT, required)


def _entry(key, name, description, predicate, required=False) -> PrerequisiteRule:
    return PrerequisiteRule(key, name, description, predicate, CheckCategory.STAGE_ENTRY, required)


# Gates evaluated when LEAVING a stage, keyed by stage slug
EXIT_RULES: dict[str, tuple[PrerequisiteRule, ...]] = {
    "inquiry_received": (
        _exit("customer_info", "Customer Information", "Customer is assigned to project", customer_assigned),
        _exit("project_priority", "Project Priority", "Project priority is set", priority_set),
    ),
    "technical_review": (
        _exit(
            "engineering_review",
            "Engineering review completed",
            "Engineering reviewer signed off on the project",
            engineering_review_completed,
            required=True,
        ),
        _exit("qa_review", "QA inspection requirements defined", "QA reviewer is assigned", qa_review_completed),
        _exit(
            "production_review",
            "Production process evaluation completed",
            "Production reviewer is assigned",
            production_review_completed,
        ),
    ),
    "supplier_rfq_sent": (
        _exit("bom_breakdown", "BOM breakdown completed", "Bill of materials is available", bom_completed),
        _exit("rfqs_sent", "RFQs sent to suppliers", "Suppliers have been asked to quote", rfqs_sent),
    ),
    "quoted": (
        _exit(
            "supplier_quotes",
            "All supplier quotes received",
            "Supplier quotes have been received",
            supplier_quotes_received,
        ),
        _exit("internal_costing", "Internal costing finalized", "Project value is estimated", costing_in_progress),
    ),
    "order_confirmed": (
        _exit(
            "customer_po",
            "Customer PO received",
            "Customer purchase order is on file",
            purchase_order_received,
            required=True,
        ),
    ),
    "procurement_planning": (
        _exit("production_schedule", "Production schedule confirmed", "Project due date is set", due_date_set),
    ),
    "in_production": (
        _exit("work_order", "Work order released", "Production work order is released", work_order_released),
    ),
}

# Checks evaluated when ENTERING a stage, keyed by stage slug
ENTRY_RULES: dict[str, tuple[PrerequisiteRule, ...]] = {
    "technical_review": (
        _entry(
            "technical_readiness",
            "Technical Readiness",
            "Project requirements are documented",
            description_in_progress,
        ),
    ),
    "shipped_closed": (
        _entry(
            "quality_approval",
            "Quality Approval",
            "Production is finished and quality approved",
            quality_reviewer_assigned,
        ),
    ),
}

# Checks evaluated for every target stage, ahead of the stage's own entry rules
PROJECT_DATA_RULES: tuple[PrerequisiteRule, ...] = (
    PrerequisiteRule(
        "project_title",
        "Project Title",
        "Project has a valid title",
        project_title_present,
        CheckCategory.PROJECT_DATA,
        required=True,
    ),
)


@dataclass(frozen=True)
class DocumentRequirement:
    document_type: str
    name: str
    description: str


# Supporting documents expected when ENTERING a stage. They are recommendations
# unless the stage lists the type in required_document_types.
DOCUMENT_REQUIREMENTS: dict[str, tuple[DocumentRequirement, ...]] = {
    "technical_review": (
        DocumentRequirement("rfq", "RFQ Document", "Customer RFQ or specification document"),
        DocumentRequirement("drawing", "Technical Drawings", "CAD drawings or technical specifications"),
    ),
    "supplier_rfq_sent": (
        DocumentRequirement("bom", "Bill of Materials", "Detailed BOM for supplier quoting"),
        DocumentRequirement("specification", "Technical Specifications", "Detailed technical requirements"),
    ),
    "quoted": (
        DocumentRequirement("quote", "Customer Quote", "Generated customer quote document"),
        DocumentRequirement("supplier_quote", "Supplier Quotes", "Received supplier quotations"),
    ),
    "order_confirmed": (
        DocumentRequirement("po", "Purchase Order", "Customer purchase order"),
        DocumentRequirement("contract", "Contract/Agreement", "Signed contract or agreement"),
    ),
    "in_production": (
        DocumentRequirement("work_order", "Work Order", "Production work order"),
        DocumentRequirement("quality_plan", "Quality Plan", "Quality control and inspection plan"),
    ),
    "shipped_closed": (
        DocumentRequirement("shipping_doc", "Shipping Documents", "Shipping and delivery documentation"),
        DocumentRequirement("delivery_confirmation", "Delivery Confirmation", "Proof of delivery"),
    ),
}


def document_requirements_for(stage: WorkflowStage) -> list[tuple[DocumentRequirement, bool]]:
    """Document requirements of a stage paired with whether each one is required.

    Configured types without a default entry are appended after the defaults.
    """
    required_types = {t.lower() for t in stage.required_document_types}
    defaults = DOCUMENT_REQUIREMENTS.get(stage.slug, ())
    known = {r.document_type for r in defaults}
    pairs = [(r, r.document_type in required_types) for r in defaults]
    for document_type in stage.required_document_types:
        if document_type.lower() in known:
            continue
        label = document_type.replace("_", " ").title()
        pairs.append((DocumentRequirement(document_type.lower(), label, f"{label} document"), True))
        known.add(document_type.lower())
    return pairs


def document_checks(project: ProjectSnapshot, target_stage: WorkflowStage) -> list[PrerequisiteCheck]:
    checks = []
    for requirement, required in document_requirements_for(target_stage):
        if has_document(project, requirement.document_type):
            status, details = CheckStatus.PASSED, None
        else:
            status = CheckStatus.FAILED if required else CheckStatus.WARNING
            details = f"{requirement.name} is {'required' if required else 'recommended'} for this stage"
        checks.append(
            PrerequisiteCheck(
                key=f"document_{requirement.document_type}",
                name=requirement.name,
                description=requirement.description,
                status=status,
                required=required,
                category=CheckCategory.DOCUMENTS,
                details=details,
            )
        )
    return checks


def approval_checks(project: ProjectSnapshot, target_stage: WorkflowStage) -> list[PrerequisiteCheck]:
    """One required check per approval role of a stage that requires approval."""
    if not (target_stage.requires_approval and target_stage.approval_roles):
        return []
    checks = []
    for role in target_stage.approval_roles:
        approved = has_approval(project, role)
        checks.append(
            PrerequisiteCheck(
                key=f"approval_{role}",
                name=f"{role.replace('_', ' ').title()} Approval",
                description=f"Approval from {role} role",
                status=CheckStatus.PASSED if approved else CheckStatus.FAILED,
                required=True,
                category=CheckCategory.APPROVALS,
                details=None if approved else f"{role} approval is required for this stage",
            )
        )
    return checks


DEFAULT_EXIT_CRITERIA: dict[str, tuple[str, ...]] = {
    "technical_review": (
        "Engineering review completed",
        "QA inspection requirements defined",
        "Production process evaluation completed",
    ),
    "supplier_rfq_sent": (
        "BOM breakdown completed",
        "Suppliers selected",
        "RFQs sent to all suppliers",
    ),
    "quoted": (
        "All supplier quotes received",
        "Internal costing finalized",
        "Quote document generated",
    ),
    "order_confirmed": (
        "Customer PO received",
        "Internal sales order created",
    ),
    "procurement_planning": (
        "Purchase orders finalized",
        "Production schedule confirmed",
        "Raw materials inventory confirmed",
    ),
    "in_production": (
        "Work order released",
        "Manufacturing started",
    ),
    "shipped_closed": (
        "Product shipped",
        "Proof of delivery received",
        "Customer feedback collected",
    ),
}


def exit_criteria_for(stage: WorkflowStage | None) -> tuple[str, ...]:
    """Human-readable exit criteria for a stage; configured text wins over defaults."""
    if stage is None:
        return ()
    if stage.exit_criteria:
        return tuple(stage.exit_criteria)
    return DEFAULT_EXIT_CRITERIA.get(stage.slug, ())


def workflow_checks(
    stages: Sequence[WorkflowStage],
    source_stage: WorkflowStage | None,
    target_stage: WorkflowStage,
) -> list[PrerequisiteCheck]:
    """Warnings for leaving a retired stage, skipped stages and backward moves."""
    ordered = [s for s in stages if s.organization_id == target_stage.organization_id]
    if target_stage.id not in {s.id for s in ordered}:
        return []
    if source_stage is not None and source_stage.organization_id != target_stage.organization_id:
        return []

    checks = []
    if source_stage is not None and source_stage.id not in {s.id for s in ordered if s.is_active}:
        checks.append(
            PrerequisiteCheck(
                key="retired_stage",
                name="Retired Stage",
                description="The current stage is no longer part of the active workflow",
                status=CheckStatus.WARNING,
                required=False,
                category=CheckCategory.WORKFLOW,
                details=f"{source_stage.name} has been retired; confirm the project's position in the workflow",
            )
        )

    distance = stage_distance(ordered, source_stage, target_stage)
    if distance > 1:
        return checks + [
            PrerequisiteCheck(
                key="stage_skip_validation",
                name="Stage Skip Validation",
                description="Skipping stages requires manager approval",
                status=CheckStatus.WARNING,
                required=False,
                category=CheckCategory.WORKFLOW,
                details=f"Skipping {distance - 1} stage(s) may require manager approval",
            )
        ]
    if distance < 0:
        return checks + [
            PrerequisiteCheck(
                key="backward_move",
                name="Backward Move",
                description="Moving backwards in the workflow requires manager approval",
                status=CheckStatus.WARNING,
                required=False,
                category=CheckCategory.WORKFLOW,
                details=f"Returning to {target_stage.name} reopens completed work",
            )
        ]
    return checks


def evaluate_prerequisites(
    project: ProjectSnapshot,
    target_stage: WorkflowStage,
    source_stage: WorkflowStage | None,
    stages: Sequence[WorkflowStage] = (),
) -> PrerequisiteResult:
    """Evaluate every rule for a transition from source_stage to target_stage.

    Pure function -- no side effects, no DB access.

    Order: exit rules of the source stage; entry rules of the target stage
    (project data, documents, approvals, then the stage's own rules); then
    workflow warnings. Exit gates only apply to forward moves.
    """
    checks: list[PrerequisiteCheck] = []

    if source_stage is not None and target_stage.stage_order > source_stage.stage_order:
        checks.extend(rule.evaluate(project) for rule in EXIT_RULES.get(source_stage.slug, ()))

    checks.extend(rule.evaluate(project) for rule in PROJECT_DATA_RULES)
    checks.extend(document_checks(project, target_stage))
    checks.extend(approval_checks(project, target_stage))
    checks.extend(rule.evaluate(project) for rule in ENTRY_RULES.get(target_stage.slug, ()))

    if stages:
        checks.extend(workflow_checks(stages, source_stage, target_stage))

    return PrerequisiteResult.from_checks(checks, exit_criteria_for(source_stage))
