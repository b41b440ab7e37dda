"""Tests for prerequisite predicates, rule tables and result aggregation."""

from dataclasses import replace
from datetime import date

import pytest

from factory_pulse.domain.prerequisites import (
    DEFAULT_EXIT_CRITERIA,
    CheckCategory,
    CheckStatus,
    PrerequisiteCheck,
    PrerequisiteResult,
    approval_checks,
    costing_in_progress,
    description_in_progress,
    document_checks,
    engineering_review_completed,
    evaluate_prerequisites,
    exit_criteria_for,
    purchase_order_received,
    supplier_quotes_received,
    workflow_checks,
)
from factory_pulse.domain.projects import ProjectMetadata, ProjectPriority, ProjectSnapshot
from factory_pulse.domain.stages import WorkflowStage

pytestmark = pytest.mark.unit

SLUGS = [
    "inquiry_received",
    "technical_review",
    "supplier_rfq_sent",
    "quoted",
    "order_confirmed",
    "procurement_planning",
    "in_production",
    "shipped_closed",
]


@pytest.fixture
def pipeline():
    return {
        slug: WorkflowStage(
            id=f"stage-{slug}", organization_id="org-1", name=slug.replace("_", " ").title(), slug=slug, stage_order=i
        )
        for i, slug in enumerate(SLUGS, start=1)
    }


def _project(**kwargs) -> ProjectSnapshot:
    return ProjectSnapshot(**{"id": "p-1", "organization_id": "org-1", "title": "Housing", **kwargs})


class TestPredicates:
    def test_engineering_review_requires_reviewer(self):
        assert engineering_review_completed(_project()).status == CheckStatus.FAILED
        assert engineering_review_completed(_project(engineering_reviewer_id="u-1")).status == CheckStatus.PASSED

    def test_description_is_a_progress_proxy_never_passed(self):
        """Text on file is not proof of completeness, so the best outcome is a warning."""
        assert description_in_progress(_project(description="Anodized 6061 housing")).status == CheckStatus.WARNING
        assert description_in_progress(_project(description="   ")).status == CheckStatus.FAILED

    def test_estimate_is_a_progress_proxy_never_passed(self):
        assert costing_in_progress(_project(estimated_value=12500.0)).status == CheckStatus.WARNING
        assert costing_in_progress(_project(estimated_value=0)).status == CheckStatus.FAILED
        assert costing_in_progress(_project()).status == CheckStatus.FAILED

    def test_purchase_order_flag(self):
        assert purchase_order_received(_project()).status == CheckStatus.FAILED
        flagged = _project(metadata=ProjectMetadata(has_purchase_order=True))
        assert purchase_order_received(flagged).status == CheckStatus.PASSED

    @pytest.mark.parametrize(
        ("requested", "received", "expected"),
        [
            (0, 0, CheckStatus.FAILED),
            (3, 0, CheckStatus.FAILED),
            (3, 1, CheckStatus.WARNING),
            (3, 3, CheckStatus.PASSED),
        ],
    )
    def test_supplier_quotes(self, requested, received, expected):
        metadata = ProjectMetadata(supplier_quotes_requested=requested, supplier_quotes_received=received)
        assert supplier_quotes_received(_project(metadata=metadata)).status == expected

    def test_partial_quotes_report_counts(self):
        metadata = ProjectMetadata(supplier_quotes_requested=4, supplier_quotes_received=1)
        assert "(1/4 received)" in supplier_quotes_received(_project(metadata=metadata)).details


class TestMetadataFromDict:
    def test_ignores_unknown_keys_and_nulls(self):
        metadata = ProjectMetadata.from_dict({"has_bom": True, "supplier_quotes_received": None, "color": "red"})
        assert metadata.has_bom is True
        assert metadata.supplier_quotes_received == 0

    def test_none_gives_defaults(self):
        assert ProjectMetadata.from_dict(None) == ProjectMetadata()

    def test_documents_and_approvals(self):
        metadata = ProjectMetadata.from_dict({"document_types": ["rfq", "drawing"], "approved_review_types": None})
        assert metadata.document_types == ("rfq", "drawing")
        assert metadata.approved_review_types == ()


class TestEvaluatePrerequisites:
    def test_entering_review_does_not_require_engineering_reviewer(self, pipeline):
        result = evaluate_prerequisites(
            _project(), pipeline["technical_review"], pipeline["inquiry_received"]
        )
        assert result.required_passed is True
        assert "Engineering review completed" not in [c.name for c in result.checks]

    def test_leaving_review_requires_engineering_reviewer(self, pipeline):
        result = evaluate_prerequisites(_project(), pipeline["supplier_rfq_sent"], pipeline["technical_review"])
        assert result.required_passed is False
        assert result.blockers == ["Engineering review completed"]

    def test_leaving_order_confirmed_requires_po(self, pipeline):
        result = evaluate_prerequisites(
            _project(), pipeline["procurement_planning"], pipeline["order_confirmed"]
        )
        assert result.required_passed is False
        assert result.blockers == ["Customer PO received"]

    def test_checks_keep_declaration_order(self, pipeline):
        result = evaluate_prerequisites(_project(), pipeline["supplier_rfq_sent"], pipeline["technical_review"])
        assert [c.key for c in result.checks] == [
            "engineering_review",
            "qa_review",
            "production_review",
            "project_title",
            "document_bom",
            "document_specification",
        ]

    def test_exit_then_entry_then_workflow(self, pipeline):
        result = evaluate_prerequisites(
            _project(),
            pipeline["technical_review"],
            pipeline["inquiry_received"],
            list(pipeline.values()),
        )
        assert [c.category for c in result.checks] == [
            CheckCategory.STAGE_EXIT,
            CheckCategory.STAGE_EXIT,
            CheckCategory.PROJECT_DATA,
            CheckCategory.DOCUMENTS,
            CheckCategory.DOCUMENTS,
            CheckCategory.STAGE_ENTRY,
        ]

    def test_backward_move_skips_exit_gates(self, pipeline):
        result = evaluate_prerequisites(
            _project(), pipeline["inquiry_received"], pipeline["technical_review"], list(pipeline.values())
        )
        assert result.required_passed is True
        assert [c.key for c in result.checks] == ["project_title", "backward_move"]
        assert result.checks[-1].status == CheckStatus.WARNING

    def test_skip_surfaces_warning(self, pipeline):
        project = _project(customer_id="c-1", priority=ProjectPriority.HIGH)
        result = evaluate_prerequisites(
            project, pipeline["quoted"], pipeline["inquiry_received"], list(pipeline.values())
        )
        skip = [c for c in result.checks if c.key == "stage_skip_validation"]
        assert len(skip) == 1
        assert skip[0].required is False
        assert "Skipping 2 stage(s)" in skip[0].details

    def test_new_project_only_needs_a_title(self, pipeline):
        result = evaluate_prerequisites(_project(), pipeline["inquiry_received"], None)
        assert [c.key for c in result.checks] == ["project_title"]
        assert result.required_passed is True

    def test_exit_criteria_of_source_stage_returned(self, pipeline):
        result = evaluate_prerequisites(_project(), pipeline["supplier_rfq_sent"], pipeline["technical_review"])
        assert result.exit_criteria == DEFAULT_EXIT_CRITERIA["technical_review"]

    def test_repeat_evaluation_is_identical(self, pipeline):
        project = _project(description="Draft")
        first = evaluate_prerequisites(project, pipeline["technical_review"], pipeline["inquiry_received"])
        second = evaluate_prerequisites(project, pipeline["technical_review"], pipeline["inquiry_received"])
        assert first.required_passed == second.required_passed
        assert [c.status for c in first.checks] == [c.status for c in second.checks]

    def test_fully_prepared_project_passes_every_check(self, pipeline):
        project = _project(
            metadata=ProjectMetadata(has_purchase_order=True),
            due_date=date(2026, 12, 1),
        )
        result = evaluate_prerequisites(
            project, pipeline["procurement_planning"], pipeline["order_confirmed"], list(pipeline.values())
        )
        assert result.all_passed is True


class TestExitCriteria:
    def test_configured_criteria_win(self, pipeline):
        stage = WorkflowStage(
            id="s", organization_id="org-1", name="Quoted", slug="quoted", stage_order=4,
            exit_criteria=("Quote approved by sales lead",),
        )
        assert exit_criteria_for(stage) == ("Quote approved by sales lead",)

    def test_defaults_by_slug(self, pipeline):
        assert exit_criteria_for(pipeline["order_confirmed"]) == (
            "Customer PO received",
            "Internal sales order created",
        )

    def test_unknown_slug_and_missing_stage(self):
        stage = WorkflowStage(id="s", organization_id="org-1", name="Custom", slug="custom", stage_order=1)
        assert exit_criteria_for(stage) == ()
        assert exit_criteria_for(None) == ()


class TestProjectTitle:
    def test_blank_title_blocks_every_transition(self, pipeline):
        result = evaluate_prerequisites(_project(title="   "), pipeline["technical_review"], pipeline["inquiry_received"])
        assert result.required_passed is False
        assert result.blockers == ["Project Title"]

    def test_title_check_is_project_data(self, pipeline):
        result = evaluate_prerequisites(_project(), pipeline["inquiry_received"], None)
        check = result.checks[0]
        assert check.category == CheckCategory.PROJECT_DATA
        assert check.required is True
        assert check.status == CheckStatus.PASSED


class TestDocumentChecks:
    def _by_key(self, checks):
        return {c.key: c for c in checks}

    def test_missing_recommended_documents_warn(self, pipeline):
        checks = self._by_key(document_checks(_project(), pipeline["technical_review"]))
        assert set(checks) == {"document_rfq", "document_drawing"}
        assert checks["document_rfq"].status == CheckStatus.WARNING
        assert checks["document_rfq"].required is False
        assert checks["document_rfq"].details == "RFQ Document is recommended for this stage"

    def test_document_type_matches_by_containment(self, pipeline):
        project = _project(metadata=ProjectMetadata(document_types=("customer_rfq_rev2",)))
        checks = self._by_key(document_checks(project, pipeline["technical_review"]))
        assert checks["document_rfq"].status == CheckStatus.PASSED
        assert checks["document_drawing"].status == CheckStatus.WARNING

    def test_stage_can_require_a_document(self, pipeline):
        review = replace(pipeline["technical_review"], required_document_types=("rfq",))
        result = evaluate_prerequisites(_project(), review, pipeline["inquiry_received"])
        assert result.required_passed is False
        assert result.blockers == ["RFQ Document"]

        with_rfq = _project(metadata=ProjectMetadata(document_types=("rfq",)))
        assert evaluate_prerequisites(with_rfq, review, pipeline["inquiry_received"]).required_passed is True

    def test_configured_type_without_default_entry(self, pipeline):
        inquiry = replace(pipeline["inquiry_received"], required_document_types=("nda",))
        checks = document_checks(_project(), inquiry)
        assert [(c.key, c.status, c.required) for c in checks] == [("document_nda", CheckStatus.FAILED, True)]

    def test_stage_without_documents(self, pipeline):
        assert document_checks(_project(), pipeline["procurement_planning"]) == []


class TestApprovalChecks:
    def test_one_required_check_per_role(self, pipeline):
        quoted = replace(pipeline["quoted"], requires_approval=True, approval_roles=("engineering", "quality"))
        project = _project(metadata=ProjectMetadata(approved_review_types=("engineering_review",)))

        checks = approval_checks(project, quoted)

        assert [(c.key, c.status) for c in checks] == [
            ("approval_engineering", CheckStatus.PASSED),
            ("approval_quality", CheckStatus.FAILED),
        ]
        assert all(c.required and c.category == CheckCategory.APPROVALS for c in checks)
        assert checks[1].details == "quality approval is required for this stage"

    def test_missing_approval_blocks_entry(self, pipeline):
        quoted = replace(pipeline["quoted"], requires_approval=True, approval_roles=("management",))
        result = evaluate_prerequisites(_project(), quoted, None)
        assert result.required_passed is False
        assert result.blockers == ["Management Approval"]

    def test_roles_ignored_unless_approval_required(self, pipeline):
        quoted = replace(pipeline["quoted"], approval_roles=("management",))
        assert approval_checks(_project(), quoted) == []


class TestWorkflowChecks:
    def test_forward_by_one_has_no_warnings(self, pipeline):
        stages = list(pipeline.values())
        assert workflow_checks(stages, pipeline["quoted"], pipeline["order_confirmed"]) == []

    def test_leaving_retired_stage_warns(self, pipeline):
        legacy = WorkflowStage(
            id="stage-legacy", organization_id="org-1", name="Legacy Review", slug="legacy", stage_order=2, is_active=False
        )
        checks = workflow_checks(list(pipeline.values()), legacy, pipeline["supplier_rfq_sent"])
        assert [c.key for c in checks] == ["retired_stage"]
        assert checks[0].status == CheckStatus.WARNING
        assert "Legacy Review has been retired" in checks[0].details

    def test_stage_outside_list_is_ignored(self, pipeline):
        stranger = WorkflowStage(id="x", organization_id="org-1", name="X", slug="x", stage_order=99)
        assert workflow_checks(list(pipeline.values()), pipeline["quoted"], stranger) == []


class TestPrerequisiteResult:
    def _check(self, status, required, name="Check"):
        return PrerequisiteCheck(
            key=name.lower(), name=name, description="desc", status=status, required=required,
            category=CheckCategory.STAGE_EXIT, details=None,
        )

    def test_required_passed_ignores_optional_failures(self):
        result = PrerequisiteResult.from_checks(
            [self._check(CheckStatus.PASSED, True), self._check(CheckStatus.FAILED, False)]
        )
        assert result.required_passed is True
        assert result.all_passed is False

    def test_required_warning_does_not_pass(self):
        result = PrerequisiteResult.from_checks([self._check(CheckStatus.WARNING, True)])
        assert result.required_passed is False

    def test_views(self):
        result = PrerequisiteResult.from_checks(
            [
                self._check(CheckStatus.FAILED, True, name="Gate"),
                self._check(CheckStatus.WARNING, False, name="Hint"),
            ]
        )
        assert result.blockers == ["Gate"]
        assert result.errors == ["Gate: desc"]
        assert result.warnings == ["Hint: desc"]

    def test_system_error_is_fail_closed(self):
        result = PrerequisiteResult.system_error("database unavailable")
        assert result.required_passed is False
        assert len(result.checks) == 1
        check = result.checks[0]
        assert check.name == "System Error"
        assert check.required is True
        assert check.status == CheckStatus.FAILED
        assert check.details == "database unavailable"
