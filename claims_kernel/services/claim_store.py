"""
ClaimStore -- persistence boundary for claims, documents and staff records.

Responsibility:
    Loads claim snapshots, persists new snapshots produced by the
    transition engine with an optimistic version check, records document
    metadata and resolves staff records for identity-provider user ids.

Architecture position:
    Kernel > Services -- imperative shell.  ``ClaimStore`` is the protocol
    the workflow service depends on; ``SqlClaimStore`` is the SQLAlchemy
    implementation.  Listing queries delegate to ``ClaimSelector``.

Invariants enforced:
    - ``save_claim`` writes only when the snapshot's ``version`` matches the
      stored row; the UPDATE itself is conditional on that version
      (``version_id_col``), so a concurrent writer cannot be overwritten.
    - Claim and document rows are only flushed, never committed.

Failure modes:
    - ClaimNotFoundError / DocumentNotFoundError for unknown ids.
    - ConflictError when the stored claim changed since the snapshot was
      read (``StaleDataError`` is translated at this boundary).
"""

from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from claims_kernel.domain.claim import Claim, ClaimStatus, Document
from claims_kernel.domain.identity import Role, StaffRecord
from claims_kernel.exceptions import (
    ClaimNotFoundError,
    ConflictError,
    DocumentNotFoundError,
)
from claims_kernel.logging_config import get_logger
from claims_kernel.models.claim import ClaimModel, DocumentModel
from claims_kernel.models.staff import STAFF_MODELS
from claims_kernel.selectors.claim_selector import ClaimSelector

logger = get_logger("services.claim_store")


class ClaimStore(Protocol):
    """Keyed storage for claims, attachments and staff records."""

    def get_claim(self, claim_id: UUID) -> Claim: ...

    def add_claim(self, claim: Claim) -> Claim: ...

    def save_claim(self, claim: Claim) -> Claim: ...

    def list_claims_by_lecturer(
        self, lecturer_id: UUID, limit: int | None = None,
    ) -> list[Claim]: ...

    def list_claims_by_status(self, statuses: Sequence[ClaimStatus]) -> list[Claim]: ...

    def add_document(self, claim_id: UUID, document: Document) -> Document: ...

    def get_document(self, document_id: UUID) -> Document: ...

    def get_staff(self, role: Role, user_id: UUID) -> StaffRecord | None: ...


class SqlClaimStore:
    """
    SQLAlchemy implementation of ``ClaimStore``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT authorize; the workflow service does that.
    """

    def __init__(self, session: Session):
        self.session = session
        self._selector = ClaimSelector(session)

    def _claim_model(self, claim_id: UUID) -> ClaimModel:
        model = self.session.execute(
            select(ClaimModel).where(ClaimModel.claim_id == claim_id)
        ).scalar_one_or_none()
        if model is None:
            raise ClaimNotFoundError(str(claim_id))
        return model

    # Claims

    def get_claim(self, claim_id: UUID) -> Claim:
        """
        Load the current snapshot of a claim, documents included.

        Raises:
            ClaimNotFoundError: If ``claim_id`` is unknown.
        """
        return self._claim_model(claim_id).to_dto()

    def add_claim(self, claim: Claim) -> Claim:
        """Insert a new claim and return it with its assigned version."""
        model = ClaimModel.from_dto(claim)
        self.session.add(model)
        self.session.flush()
        return model.to_dto()

    def save_claim(self, claim: Claim) -> Claim:
        """
        Persist ``claim`` over the stored row it was derived from.

        Raises:
            ClaimNotFoundError: If the claim does not exist.
            ConflictError: If the stored row is no longer at
                ``claim.version``.
        """
        model = self._claim_model(claim.claim_id)
        if model.version != claim.version:
            logger.warning(
                "claim_conflict",
                extra={
                    "claim_id": str(claim.claim_id),
                    "expected_version": claim.version,
                    "stored_version": model.version,
                },
            )
            raise ConflictError("Claim", str(claim.claim_id))

        model.apply_snapshot(claim)
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "claim_conflict",
                extra={
                    "claim_id": str(claim.claim_id),
                    "expected_version": claim.version,
                },
            )
            raise ConflictError("Claim", str(claim.claim_id)) from exc

        return model.to_dto()

    def list_claims_by_lecturer(
        self, lecturer_id: UUID, limit: int | None = None,
    ) -> list[Claim]:
        return self._selector.by_lecturer(lecturer_id, limit=limit)

    def list_claims_by_status(self, statuses: Sequence[ClaimStatus]) -> list[Claim]:
        return self._selector.by_status(statuses)

    # Documents

    def add_document(self, claim_id: UUID, document: Document) -> Document:
        """
        Record attachment metadata for an existing claim.

        The document is placed after the claim's existing attachments;
        any ``position`` on ``document`` is ignored.

        Raises:
            ClaimNotFoundError: If the claim does not exist.
        """
        claim_model = self._claim_model(claim_id)
        position = self.session.execute(
            select(func.count())
            .select_from(DocumentModel)
            .where(DocumentModel.claim_id == claim_id)
        ).scalar_one()
        model = DocumentModel.from_dto(replace(document, position=position))
        self.session.add(model)
        self.session.flush()
        self.session.expire(claim_model, ["documents"])
        return model.to_dto()

    def get_document(self, document_id: UUID) -> Document:
        """
        Raises:
            DocumentNotFoundError: If ``document_id`` is unknown.
        """
        model = self.session.execute(
            select(DocumentModel).where(DocumentModel.document_id == document_id)
        ).scalar_one_or_none()
        if model is None:
            raise DocumentNotFoundError(str(document_id))
        return model.to_dto()

    # Staff

    def get_staff(self, role: Role, user_id: UUID) -> StaffRecord | None:
        """Staff record of kind ``role`` linked to ``user_id``, or None."""
        model_cls = STAFF_MODELS.get(Role(role).value)
        if model_cls is None:
            return None
        model = self.session.execute(
            select(model_cls).where(model_cls.user_id == user_id)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def add_staff(self, record: StaffRecord) -> StaffRecord:
        """
        Insert a staff record, or return the existing one for the same
        (role, user_id).
        """
        existing = self.get_staff(record.role, record.user_id)
        if existing is not None:
            return existing

        model_cls = STAFF_MODELS[Role(record.role).value]
        model = model_cls(
            id=record.staff_id,
            user_id=record.user_id,
            first_name=record.first_name,
            last_name=record.last_name,
            email=record.email,
        )
        self.session.add(model)
        self.session.flush()
        logger.info(
            "staff_record_created",
            extra={"role": model.role_value, "user_id": str(record.user_id)},
        )
        return model.to_dto()
