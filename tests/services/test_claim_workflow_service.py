"""
Tests for ClaimWorkflowService.

Covers the full lifecycle through the service surface: submission with
attachments, edits, coordinator and manager decisions, authorization
order, terminal immutability, detail/download access and role-scoped
listings.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from claims_kernel.domain.claim import ClaimStatus
from claims_kernel.domain.identity import Actor, Role
from claims_kernel.domain.transitions import ManagerOutcome
from claims_kernel.exceptions import (
    ClaimNotFoundError,
    DocumentNotFoundError,
    ForbiddenError,
    IllegalTransitionError,
    ValidationError,
)
from claims_kernel.models.audit_event import AuditAction
from claims_kernel.services.claim_store import SqlClaimStore
from claims_kernel.services.claim_workflow_service import (
    ClaimWorkflowService,
    display_file_name,
)
from tests.factories import TEST_MAX_ATTACHMENT_BYTES, make_payload, make_upload


def stored_files(storage) -> list:
    return sorted(p.name for p in storage.root.iterdir())


class TestSubmitClaim:
    """Submission creates a Pending claim owned by the caller."""

    def test_submit_creates_pending_claim(self, workflow, lecturer, staff_id, payload):
        claim = workflow.submit_claim(lecturer, payload)

        assert claim.status is ClaimStatus.PENDING
        assert claim.lecturer_id == staff_id(lecturer, Role.LECTURER)
        assert claim.hours_worked == payload.hours_worked
        assert claim.hourly_rate == payload.hourly_rate
        assert claim.description == payload.description
        assert claim.version == 1
        assert claim.documents == ()

    def test_submit_sets_created_date_from_clock(
        self, workflow, lecturer, payload, deterministic_clock,
    ):
        claim = workflow.submit_claim(lecturer, payload)
        assert claim.created_date == deterministic_clock.now()

    def test_submit_with_attachment_round_trip(
        self, workflow, lecturer, payload, storage,
    ):
        upload = make_upload()
        claim = workflow.submit_claim(lecturer, payload, [upload])

        assert len(claim.documents) == 1
        document = claim.documents[0]
        assert document.claim_id == claim.claim_id
        assert document.file_name == "timesheet.pdf"
        assert document.content_type == "application/pdf"
        assert document.file_size == upload.size
        assert document.storage_name != "timesheet.pdf"
        assert document.storage_name.endswith(".pdf")
        assert storage.exists(document.storage_name)

        downloaded = workflow.get_document(lecturer, document.document_id)
        assert downloaded.content == upload.content
        assert downloaded.document == document

    def test_attachments_keep_submission_order(self, workflow, lecturer, payload):
        names = ["z-timesheet.pdf", "m-contract.pdf", "a-receipt.pdf", "k-notes.pdf"]
        claim = workflow.submit_claim(
            lecturer, payload, [make_upload(file_name=n) for n in names],
        )

        assert [d.file_name for d in claim.documents] == names
        assert [d.position for d in claim.documents] == [0, 1, 2, 3]
        assert len({d.uploaded_date for d in claim.documents}) == 1

    def test_zero_length_attachment_skipped(
        self, workflow, lecturer, payload, storage, captured_logs,
    ):
        claim = workflow.submit_claim(
            lecturer, payload,
            [make_upload(file_name="empty.pdf", content=b""), make_upload()],
        )

        assert [d.file_name for d in claim.documents] == ["timesheet.pdf"]
        assert len(stored_files(storage)) == 1
        skipped = [
            r for r in captured_logs() if r["message"] == "attachment_skipped_empty"
        ]
        assert skipped and skipped[0]["file_name"] == "empty.pdf"

    def test_oversize_attachment_rejects_whole_submission(
        self, workflow, lecturer, payload, storage, store, staff_id,
    ):
        oversize = make_upload(
            file_name="scan.pdf", content=b"x" * (TEST_MAX_ATTACHMENT_BYTES + 1),
        )

        with pytest.raises(ValidationError) as exc_info:
            workflow.submit_claim(lecturer, payload, [make_upload(), oversize])

        assert "attachments" in exc_info.value.field_errors
        assert stored_files(storage) == []
        assert store.list_claims_by_lecturer(staff_id(lecturer, Role.LECTURER)) == []

    def test_attachment_at_limit_accepted(self, workflow, lecturer, payload):
        upload = make_upload(content=b"x" * TEST_MAX_ATTACHMENT_BYTES)
        claim = workflow.submit_claim(lecturer, payload, [upload])
        assert claim.documents[0].file_size == TEST_MAX_ATTACHMENT_BYTES

    def test_client_path_stripped_from_display_name(self, workflow, lecturer, payload):
        claim = workflow.submit_claim(
            lecturer, payload,
            [make_upload(file_name="C:\\Users\\me\\..\\hours.pdf")],
        )
        assert claim.documents[0].file_name == "hours.pdf"

    def test_failed_persist_removes_stored_files(
        self, session, storage, deterministic_clock, lecturer, payload, captured_logs,
    ):
        class FailingStore(SqlClaimStore):
            def add_document(self, claim_id, document):
                raise RuntimeError("metadata insert failed")

        workflow = ClaimWorkflowService(
            session, storage, clock=deterministic_clock, store=FailingStore(session),
        )

        with pytest.raises(RuntimeError):
            workflow.submit_claim(lecturer, payload, [make_upload(), make_upload()])

        assert stored_files(storage) == []
        compensated = [
            r for r in captured_logs()
            if r["message"] == "claim_submission_compensated"
        ]
        assert compensated and compensated[0]["removed_documents"] == 2

    def test_non_lecturer_cannot_submit(self, workflow, coordinator, payload):
        with pytest.raises(ForbiddenError):
            workflow.submit_claim(coordinator, payload)

    def test_lecturer_without_staff_record_cannot_submit(
        self, workflow, make_actor, payload, storage,
    ):
        actor = make_actor(Role.LECTURER, with_staff=False)
        with pytest.raises(ForbiddenError):
            workflow.submit_claim(actor, payload, [make_upload()])
        assert stored_files(storage) == []

    def test_submission_audited(self, workflow, auditor_service, lecturer, payload):
        claim = workflow.submit_claim(lecturer, payload, [make_upload()])

        trace = auditor_service.get_claim_trace(claim.claim_id)
        assert trace.actions == (AuditAction.CLAIM_SUBMITTED,)
        document_trace = auditor_service.get_trace(
            auditor_service.DOCUMENT, claim.documents[0].document_id,
        )
        assert document_trace.actions == (AuditAction.DOCUMENT_ATTACHED,)


class TestCoordinatorDecide:

    def test_approve_moves_to_manager(
        self, workflow, coordinator, claim_in_status, staff_id, deterministic_clock,
    ):
        claim = claim_in_status(ClaimStatus.PENDING)

        decided = workflow.coordinator_decide(
            coordinator, claim.claim_id, True, "Hours verified",
        )

        assert decided.status is ClaimStatus.APPROVED_BY_COORDINATOR
        assert decided.approved_by_coordinator_id == staff_id(
            coordinator, Role.PROGRAMME_COORDINATOR,
        )
        assert decided.coordinator_notes == "Hours verified"
        assert decided.coordinator_approval_date == deterministic_clock.now()
        assert decided.version == claim.version + 1

    def test_reject_is_terminal(self, workflow, coordinator, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        rejected = workflow.coordinator_decide(coordinator, claim.claim_id, False, "No")

        assert rejected.status is ClaimStatus.REJECTED
        with pytest.raises(IllegalTransitionError) as exc_info:
            workflow.coordinator_decide(coordinator, claim.claim_id, True)
        assert exc_info.value.allowed_actions == ()

    def test_unknown_claim(self, workflow, coordinator):
        with pytest.raises(ClaimNotFoundError):
            workflow.coordinator_decide(coordinator, uuid4(), True)

    def test_lecturer_forbidden_before_lookup(self, workflow, lecturer):
        # Unknown id still reports Forbidden: the role gate runs first.
        with pytest.raises(ForbiddenError):
            workflow.coordinator_decide(lecturer, uuid4(), True)

    def test_coordinator_without_staff_record_forbidden(
        self, workflow, make_actor, claim_in_status,
    ):
        claim = claim_in_status(ClaimStatus.PENDING)
        actor = make_actor(Role.PROGRAMME_COORDINATOR, with_staff=False)
        with pytest.raises(ForbiddenError):
            workflow.coordinator_decide(actor, claim.claim_id, True)

    def test_overlong_notes_rejected(self, workflow, coordinator, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        with pytest.raises(ValidationError):
            workflow.coordinator_decide(coordinator, claim.claim_id, True, "n" * 2001)

    def test_decision_on_coordinator_approved_claim_illegal(
        self, workflow, coordinator, claim_in_status,
    ):
        claim = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        with pytest.raises(IllegalTransitionError) as exc_info:
            workflow.coordinator_decide(coordinator, claim.claim_id, True)
        assert exc_info.value.current_status == "approved_by_coordinator"
        assert exc_info.value.allowed_actions == ("manager_decide",)


class TestManagerDecide:

    def test_manager_before_coordinator_is_illegal(
        self, workflow, manager, claim_in_status, store,
    ):
        claim = claim_in_status(ClaimStatus.PENDING)

        with pytest.raises(IllegalTransitionError) as exc_info:
            workflow.manager_decide(manager, claim.claim_id, ManagerOutcome.APPROVE)

        assert exc_info.value.current_status == "pending"
        assert store.get_claim(claim.claim_id).status is ClaimStatus.PENDING

    @pytest.mark.parametrize("outcome,expected", [
        (ManagerOutcome.APPROVE, ClaimStatus.FULLY_APPROVED),
        (ManagerOutcome.RETURN, ClaimStatus.RETURNED_TO_COORDINATOR),
        (ManagerOutcome.REJECT, ClaimStatus.REJECTED_BY_MANAGER),
    ])
    def test_outcomes(
        self, workflow, manager, claim_in_status, staff_id, outcome, expected,
    ):
        claim = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)

        decided = workflow.manager_decide(manager, claim.claim_id, outcome, "Noted")

        assert decided.status is expected
        assert decided.approved_by_manager_id == staff_id(
            manager, Role.ACADEMIC_MANAGER,
        )
        assert decided.manager_notes == "Noted"
        assert decided.coordinator_notes == "Hours verified"

    def test_outcome_accepted_as_string(self, workflow, manager, claim_in_status):
        claim = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        decided = workflow.manager_decide(manager, claim.claim_id, "return")
        assert decided.status is ClaimStatus.RETURNED_TO_COORDINATOR

    def test_unknown_outcome_rejected(self, workflow, manager, claim_in_status, store):
        claim = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        with pytest.raises(ValidationError):
            workflow.manager_decide(manager, claim.claim_id, "escalate")
        assert store.get_claim(claim.claim_id).version == claim.version

    def test_coordinator_cannot_take_manager_decision(
        self, workflow, coordinator, claim_in_status,
    ):
        claim = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        with pytest.raises(ForbiddenError):
            workflow.manager_decide(coordinator, claim.claim_id, ManagerOutcome.APPROVE)

    def test_fully_approved_is_terminal(
        self, workflow, manager, coordinator, lecturer, claim_in_status,
        auditor_service,
    ):
        claim = claim_in_status(ClaimStatus.FULLY_APPROVED)
        events_before = len(auditor_service.get_claim_trace(claim.claim_id).entries)

        with pytest.raises(IllegalTransitionError):
            workflow.manager_decide(manager, claim.claim_id, ManagerOutcome.REJECT)
        with pytest.raises(IllegalTransitionError):
            workflow.coordinator_decide(coordinator, claim.claim_id, False)
        with pytest.raises(IllegalTransitionError):
            workflow.edit_claim(lecturer, claim.claim_id, make_payload())

        trace = auditor_service.get_claim_trace(claim.claim_id)
        assert len(trace.entries) == events_before
        assert workflow.get_claim(manager, claim.claim_id).version == claim.version


class TestEditClaim:

    def test_edit_pending_claim(
        self, workflow, lecturer, claim_in_status, deterministic_clock,
    ):
        claim = claim_in_status(ClaimStatus.PENDING)
        deterministic_clock.advance(300)

        edited = workflow.edit_claim(
            lecturer, claim.claim_id,
            make_payload(hours_worked=Decimal("12"), description="Corrected"),
        )

        assert edited.status is ClaimStatus.PENDING
        assert edited.hours_worked == Decimal("12")
        assert edited.description == "Corrected"
        assert edited.created_date == deterministic_clock.now()

    def test_return_edit_cycle(
        self, workflow, lecturer, coordinator, manager, claim_in_status,
        auditor_service,
    ):
        claim = claim_in_status(ClaimStatus.RETURNED_TO_COORDINATOR)
        assert claim.manager_notes == "Manager return"

        edited = workflow.edit_claim(
            lecturer, claim.claim_id, make_payload(hours_worked=Decimal("6")),
        )
        assert edited.status is ClaimStatus.PENDING
        assert edited.manager_notes is None
        assert edited.approved_by_manager_id == claim.approved_by_manager_id

        approved = workflow.coordinator_decide(
            coordinator, claim.claim_id, True, "Rechecked",
        )
        final = workflow.manager_decide(
            manager, approved.claim_id, ManagerOutcome.APPROVE, "Fine now",
        )
        assert final.status is ClaimStatus.FULLY_APPROVED

        trace = auditor_service.get_claim_trace(claim.claim_id)
        assert trace.actions == (
            AuditAction.CLAIM_SUBMITTED,
            AuditAction.CLAIM_COORDINATOR_APPROVED,
            AuditAction.CLAIM_MANAGER_RETURNED,
            AuditAction.CLAIM_EDITED,
            AuditAction.CLAIM_COORDINATOR_APPROVED,
            AuditAction.CLAIM_MANAGER_APPROVED,
        )
        edit_entry = trace.entries[3]
        assert edit_entry.payload["cleared_manager_notes"] == "Manager return"
        assert edit_entry.payload["hours_worked"] == "6"

    def test_coordinator_may_decide_returned_claim_directly(
        self, workflow, coordinator, claim_in_status,
    ):
        claim = claim_in_status(ClaimStatus.RETURNED_TO_COORDINATOR)
        decided = workflow.coordinator_decide(coordinator, claim.claim_id, False)
        assert decided.status is ClaimStatus.REJECTED

    def test_other_lecturer_forbidden(self, workflow, other_lecturer, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        with pytest.raises(ForbiddenError):
            workflow.edit_claim(other_lecturer, claim.claim_id, make_payload())

    def test_coordinator_cannot_edit(self, workflow, coordinator, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        with pytest.raises(ForbiddenError):
            workflow.edit_claim(coordinator, claim.claim_id, make_payload())

    def test_edit_unknown_claim(self, workflow, lecturer):
        with pytest.raises(ClaimNotFoundError):
            workflow.edit_claim(lecturer, uuid4(), make_payload())

    def test_edit_after_coordinator_approval_illegal(
        self, workflow, lecturer, claim_in_status,
    ):
        claim = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        with pytest.raises(IllegalTransitionError):
            workflow.edit_claim(lecturer, claim.claim_id, make_payload())


class TestClaimDetail:

    def test_owner_can_view(self, workflow, lecturer, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        assert workflow.get_claim(lecturer, claim.claim_id) == claim

    @pytest.mark.parametrize("reviewer", ["coordinator", "manager"])
    def test_reviewers_can_view_any_claim(self, workflow, claim_in_status, request, reviewer):
        claim = claim_in_status(ClaimStatus.FULLY_APPROVED)
        actor = request.getfixturevalue(reviewer)
        assert workflow.get_claim(actor, claim.claim_id).status is ClaimStatus.FULLY_APPROVED

    def test_other_lecturer_forbidden(self, workflow, other_lecturer, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        with pytest.raises(ForbiddenError):
            workflow.get_claim(other_lecturer, claim.claim_id)

    def test_actor_without_roles_forbidden(self, workflow, claim_in_status):
        claim = claim_in_status(ClaimStatus.PENDING)
        with pytest.raises(ForbiddenError):
            workflow.get_claim(Actor(user_id=uuid4()), claim.claim_id)

    def test_unknown_claim(self, workflow, coordinator):
        with pytest.raises(ClaimNotFoundError):
            workflow.get_claim(coordinator, uuid4())


class TestGetDocument:

    @pytest.fixture
    def document(self, workflow, lecturer, payload):
        claim = workflow.submit_claim(lecturer, payload, [make_upload()])
        return claim.documents[0]

    def test_reviewer_can_download(self, workflow, coordinator, document):
        content = workflow.get_document(coordinator, document.document_id)
        assert content.content == b"%PDF-1.4 timesheet"

    def test_other_lecturer_forbidden(self, workflow, other_lecturer, document):
        with pytest.raises(ForbiddenError):
            workflow.get_document(other_lecturer, document.document_id)

    def test_unknown_document(self, workflow, lecturer):
        with pytest.raises(DocumentNotFoundError):
            workflow.get_document(lecturer, uuid4())

    def test_missing_content(self, workflow, lecturer, storage, document):
        storage.delete(document.storage_name)
        with pytest.raises(DocumentNotFoundError):
            workflow.get_document(lecturer, document.document_id)


class TestListings:

    def test_dashboard_shows_five_most_recent(
        self, workflow, lecturer, deterministic_clock,
    ):
        submitted = []
        for i in range(7):
            submitted.append(workflow.submit_claim(
                lecturer, make_payload(description=f"Week {i}"),
            ))
            deterministic_clock.advance(3600)

        dashboard = workflow.dashboard_claims(lecturer)
        assert [c.description for c in dashboard] == [
            "Week 6", "Week 5", "Week 4", "Week 3", "Week 2",
        ]
        assert len(workflow.list_claims(lecturer)) == 7

    def test_lecturer_sees_only_own_claims(
        self, workflow, lecturer, other_lecturer, claim_in_status,
    ):
        own = claim_in_status(ClaimStatus.PENDING)
        claim_in_status(ClaimStatus.PENDING, owner=other_lecturer)

        assert [c.claim_id for c in workflow.list_claims(lecturer)] == [own.claim_id]

    def test_coordinator_queue(self, workflow, coordinator, claim_in_status):
        pending = claim_in_status(ClaimStatus.PENDING)
        returned = claim_in_status(ClaimStatus.RETURNED_TO_COORDINATOR)
        claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        claim_in_status(ClaimStatus.REJECTED)

        ids = [c.claim_id for c in workflow.list_claims(coordinator)]
        assert ids == [returned.claim_id, pending.claim_id]

    def test_manager_queue(self, workflow, manager, claim_in_status):
        claim_in_status(ClaimStatus.PENDING)
        approved = claim_in_status(ClaimStatus.APPROVED_BY_COORDINATOR)
        claim_in_status(ClaimStatus.FULLY_APPROVED)

        assert [c.claim_id for c in workflow.list_claims(manager)] == [approved.claim_id]

    def test_multi_role_uses_lecturer_listing(
        self, workflow, make_actor, claim_in_status,
    ):
        dual = make_actor(Role.LECTURER, Role.PROGRAMME_COORDINATOR)
        claim_in_status(ClaimStatus.PENDING)
        assert workflow.list_claims(dual) == []

    def test_admin_gets_empty_listing(self, workflow, make_actor, claim_in_status):
        claim_in_status(ClaimStatus.PENDING)
        assert workflow.list_claims(make_actor(Role.ADMIN)) == []
        assert workflow.dashboard_claims(Actor(user_id=uuid4())) == []

    def test_lecturer_without_staff_record_forbidden(self, workflow, make_actor):
        with pytest.raises(ForbiddenError):
            workflow.list_claims(make_actor(Role.LECTURER, with_staff=False))


class TestDisplayFileName:

    @pytest.mark.parametrize("raw,expected", [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "passwd"),
        ("C:\\temp\\hours.xlsx", "hours.xlsx"),
        ("", "attachment"),
        (None, "attachment"),
    ])
    def test_display_file_name(self, raw, expected):
        assert display_file_name(raw) == expected
