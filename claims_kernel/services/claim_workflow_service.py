"""
ClaimWorkflowService -- the action surface of the claims kernel.

Responsibility:
    For every workflow operation: gate on the caller's role, load the
    claim, check ownership, run the transition engine, persist the new
    snapshot and append an audit event.  Also serves role-scoped listings,
    claim detail and document download.

Architecture position:
    Kernel > Services -- imperative shell.  Depends on the ``ClaimStore``
    protocol, ``LocalDocumentStorage``, ``AuditorService`` and an injected
    ``Clock``.  The pure decision logic lives in
    ``claims_kernel.domain.transitions``.

Invariants enforced:
    - The actor is always an explicit argument; nothing is read from
      ambient request state.
    - Role checks run before the claim is loaded, so a caller without the
      role learns nothing about it.  Ownership is checked after loading.
    - Each successful call flushes exactly one claim change and its audit
      event.  Failures raise before anything is flushed, or leave the
      session for the caller's rollback.
    - Attachment content is written before the submission is flushed and
      removed again if the flush fails.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ForbiddenError: missing role, missing staff record, or not the owner.
    - ClaimNotFoundError / DocumentNotFoundError: unknown id.
    - ValidationError: bad payload, notes, outcome or oversize attachment.
    - IllegalTransitionError: the claim's status does not permit the action.
    - ConflictError: another transaction changed the claim first.

Audit relevance:
    Every state change goes through AuditorService in the same flush.
    Structured log events: claim_submitted, claim_transitioned,
    attachment_skipped_empty, claim_submission_compensated.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from claims_kernel.domain.claim import (
    AttachmentUpload,
    Claim,
    ClaimPayload,
    Document,
)
from claims_kernel.domain.clock import Clock, SystemClock
from claims_kernel.domain.identity import REVIEWER_ROLES, Actor, Role, StaffRecord
from claims_kernel.domain.transitions import (
    CoordinatorDecision,
    LecturerEdit,
    ManagerDecision,
    ManagerOutcome,
    TransitionAction,
    attempt_transition,
)
from claims_kernel.exceptions import ForbiddenError
from claims_kernel.logging_config import LogContext, get_logger
from claims_kernel.selectors.claim_selector import ClaimSelector
from claims_kernel.services.auditor_service import AuditorService
from claims_kernel.services.claim_store import ClaimStore, SqlClaimStore
from claims_kernel.services.document_storage import LocalDocumentStorage

logger = get_logger("services.claim_workflow")

DEFAULT_DASHBOARD_LIMIT = 5

_FILE_NAME_MAX_LENGTH = 255


@dataclass(frozen=True)
class DocumentContent:
    """A downloaded attachment: its metadata and bytes."""

    document: Document
    content: bytes


def display_file_name(file_name: str) -> str:
    """Base name of an uploaded file, for display only."""
    name = Path((file_name or "").replace("\\", "/")).name
    return name[:_FILE_NAME_MAX_LENGTH] or "attachment"


class ClaimWorkflowService:
    """
    Claim workflow operations.

    Non-goals:
        - Does NOT call ``session.commit()`` -- wrap calls in
          ``session_scope()``.
        - Does NOT authenticate; callers resolve the ``Actor`` from their
          ``IdentityProvider``.
    """

    def __init__(
        self,
        session: Session,
        storage: LocalDocumentStorage,
        clock: Clock | None = None,
        store: ClaimStore | None = None,
        auditor: AuditorService | None = None,
        dashboard_limit: int = DEFAULT_DASHBOARD_LIMIT,
    ):
        self._session = session
        self._storage = storage
        self._clock = clock or SystemClock()
        self._store = store or SqlClaimStore(session)
        self._auditor = auditor or AuditorService(session, self._clock)
        self._selector = ClaimSelector(session)
        self._dashboard_limit = dashboard_limit

    # ------------------------------------------------------------------
    # Authorization helpers
    # ------------------------------------------------------------------

    def _require_staff(self, actor: Actor, role: Role, action: str) -> StaffRecord:
        """The caller's staff record for ``role``, or ForbiddenError."""
        if not actor.has_role(role):
            raise ForbiddenError(action)
        staff = self._store.get_staff(role, actor.user_id)
        if staff is None:
            logger.warning(
                "staff_record_missing",
                extra={"user_id": str(actor.user_id), "role": role.value},
            )
            raise ForbiddenError(action)
        return staff

    def _require_viewer(self, actor: Actor, action: str) -> None:
        if not (actor.has_role(Role.LECTURER) or actor.is_reviewer):
            raise ForbiddenError(action)

    def _authorize_view(self, actor: Actor, claim: Claim, action: str) -> None:
        """Reviewers may view any claim; lecturers only their own."""
        if actor.roles & REVIEWER_ROLES:
            return
        lecturer = self._require_staff(actor, Role.LECTURER, action)
        if claim.lecturer_id != lecturer.staff_id:
            raise ForbiddenError(action)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def submit_claim(
        self,
        actor: Actor,
        payload: ClaimPayload,
        attachments: Iterable[AttachmentUpload] = (),
    ) -> Claim:
        """
        Create a Pending claim owned by the calling lecturer.

        Zero-length attachments are skipped.  Any oversize attachment fails
        the whole submission before anything is written.

        Raises:
            ForbiddenError: Caller is not a lecturer with a staff record.
            ValidationError: An attachment exceeds the size limit.
        """
        lecturer = self._require_staff(actor, Role.LECTURER, "submit_claim")

        uploads = []
        for upload in attachments:
            if upload.size == 0:
                logger.warning(
                    "attachment_skipped_empty",
                    extra={"file_name": upload.file_name},
                )
                continue
            self._storage.check_size(upload)
            uploads.append(upload)

        now = self._clock.now()
        claim = Claim.submit(lecturer.staff_id, payload, now)

        with LogContext.bind(
            actor_id=str(actor.user_id),
            claim_id=str(claim.claim_id),
            workflow_action="submit_claim",
        ):
            stored: list[tuple[AttachmentUpload, str]] = []
            try:
                for upload in uploads:
                    stored.append((upload, self._storage.store(upload)))

                self._store.add_claim(claim)
                self._auditor.record_claim_submitted(claim, actor)

                for upload, storage_name in stored:
                    document = self._store.add_document(
                        claim.claim_id,
                        Document(
                            document_id=uuid4(),
                            claim_id=claim.claim_id,
                            file_name=display_file_name(upload.file_name),
                            storage_name=storage_name,
                            content_type=upload.content_type,
                            file_size=upload.size,
                            uploaded_date=now,
                        ),
                    )
                    self._auditor.record_document_attached(document, actor)
            except Exception:
                for _, storage_name in stored:
                    self._storage.delete(storage_name)
                logger.warning(
                    "claim_submission_compensated",
                    extra={"removed_documents": len(stored)},
                )
                raise

            saved = self._store.get_claim(claim.claim_id)
            logger.info(
                "claim_submitted",
                extra={
                    "lecturer_id": str(lecturer.staff_id),
                    "hours_worked": saved.hours_worked,
                    "hourly_rate": saved.hourly_rate,
                    "document_count": len(saved.documents),
                },
            )
            return saved

    def edit_claim(
        self,
        actor: Actor,
        claim_id: UUID,
        payload: ClaimPayload,
    ) -> Claim:
        """
        Replace the payload of the caller's own Pending or Returned claim.

        The claim returns to Pending, its manager notes are cleared and its
        ``created_date`` is refreshed.
        """
        lecturer = self._require_staff(actor, Role.LECTURER, "edit_claim")
        claim = self._store.get_claim(claim_id)
        if claim.lecturer_id != lecturer.staff_id:
            raise ForbiddenError("edit_claim")
        return self._apply(
            actor, claim, LecturerEdit(payload), Role.LECTURER, lecturer.staff_id,
        )

    def coordinator_decide(
        self,
        actor: Actor,
        claim_id: UUID,
        approve: bool,
        notes: str = "",
    ) -> Claim:
        """Approve (to the manager) or reject a Pending or Returned claim."""
        coordinator = self._require_staff(
            actor, Role.PROGRAMME_COORDINATOR, "coordinator_decide",
        )
        decision = CoordinatorDecision(approve=approve, notes=notes)
        claim = self._store.get_claim(claim_id)
        return self._apply(
            actor, claim, decision, Role.PROGRAMME_COORDINATOR, coordinator.staff_id,
        )

    def manager_decide(
        self,
        actor: Actor,
        claim_id: UUID,
        outcome: ManagerOutcome | str,
        notes: str = "",
    ) -> Claim:
        """Approve, return or reject a coordinator-approved claim."""
        manager = self._require_staff(
            actor, Role.ACADEMIC_MANAGER, "manager_decide",
        )
        decision = ManagerDecision(outcome=outcome, notes=notes)
        claim = self._store.get_claim(claim_id)
        return self._apply(
            actor, claim, decision, Role.ACADEMIC_MANAGER, manager.staff_id,
        )

    def _apply(
        self,
        actor: Actor,
        claim: Claim,
        action: TransitionAction,
        role: Role,
        staff_id: UUID,
    ) -> Claim:
        with LogContext.bind(
            actor_id=str(actor.user_id),
            claim_id=str(claim.claim_id),
            workflow_action=action.kind.value,
        ):
            result = attempt_transition(
                claim, action, role, staff_id, self._clock.now(),
            )
            saved = self._store.save_claim(result.claim)
            self._auditor.record_claim_transition(result, actor, role)

            logger.info(
                "claim_transitioned",
                extra={
                    "outcome": result.outcome,
                    "from_status": result.from_status.value,
                    "to_status": result.to_status.value,
                    "version": saved.version,
                },
            )
            return saved

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_claim(self, actor: Actor, claim_id: UUID) -> Claim:
        """Claim detail with documents, for its owner or any reviewer."""
        self._require_viewer(actor, "get_claim")
        claim = self._store.get_claim(claim_id)
        self._authorize_view(actor, claim, "get_claim")
        return claim

    def get_document(self, actor: Actor, document_id: UUID) -> DocumentContent:
        """
        Attachment metadata and bytes, authorized like claim detail.

        Raises:
            DocumentNotFoundError: Unknown id, or the stored content is gone.
        """
        self._require_viewer(actor, "get_document")
        document = self._store.get_document(document_id)
        claim = self._store.get_claim(document.claim_id)
        self._authorize_view(actor, claim, "get_document")
        return DocumentContent(
            document=document,
            content=self._storage.open(document.storage_name),
        )

    def list_claims(self, actor: Actor) -> list[Claim]:
        """
        The caller's role-scoped listing.

        Multi-role callers get the listing of their first role in the order
        Lecturer, ProgrammeCoordinator, AcademicManager.  No recognised
        role gives an empty list.
        """
        return self._listing(actor, limit=None)

    def dashboard_claims(self, actor: Actor) -> list[Claim]:
        """As ``list_claims``, with the lecturer view cut to the most recent N."""
        return self._listing(actor, limit=self._dashboard_limit)

    def _listing(self, actor: Actor, limit: int | None) -> list[Claim]:
        role = actor.primary_role
        if role is Role.LECTURER:
            lecturer = self._require_staff(actor, role, "list_claims")
            return self._store.list_claims_by_lecturer(lecturer.staff_id, limit=limit)
        return self._selector.for_role(role)
