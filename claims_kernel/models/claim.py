"""
Module: claims_kernel.models.claim
Responsibility: ORM persistence for claims and their attached documents.
Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py only (domain DTOs are imported lazily for conversion).

Invariants enforced:
    - status is one of the six claim statuses (DB check constraint).
    - 1 <= hours_worked <= 200 and 0 <= hourly_rate <= 500 (DB check
      constraints, backing the domain-level validation).
    - ``version`` is an optimistic concurrency counter
      (``version_id_col``): every UPDATE is conditional on the version the
      row was read at, so two concurrent decisions cannot both succeed.
    - A claim in a terminal status is never updated (ORM listener).
    - Documents are append-only (ORM listeners).

Failure modes:
    - StaleDataError on a lost optimistic-lock race (translated to
      ConflictError by SqlClaimStore).
    - ImmutabilityViolationError on UPDATE of a terminal claim or on any
      UPDATE/DELETE of a document.

Audit relevance:
    The coordinator and manager provenance groups record who decided, when,
    and with what notes.  The full history of every change is in the audit
    chain; this table holds the current snapshot.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, attributes, mapped_column, relationship

from claims_kernel.db.base import Base, UUIDString
from claims_kernel.exceptions import ImmutabilityViolationError
from claims_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from claims_kernel.domain.claim import Claim, Document

logger = get_logger("models.claim")

_TERMINAL_STATUS_VALUES = frozenset({
    "fully_approved",
    "rejected",
    "rejected_by_manager",
})


class ClaimModel(Base):
    """Persistent claim snapshot.

    Contract:
        Rows change only through SqlClaimStore.save_claim, which applies a
        snapshot produced by the transition engine.

    Guarantees:
        - claim_id is unique and never changes.
        - version increments on every UPDATE.
    """

    __tablename__ = "claims"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved_by_coordinator', "
            "'returned_to_coordinator', 'fully_approved', 'rejected', "
            "'rejected_by_manager')",
            name="ck_claims_valid_status",
        ),
        CheckConstraint(
            "hours_worked >= 1 AND hours_worked <= 200",
            name="ck_claims_hours_range",
        ),
        CheckConstraint(
            "hourly_rate >= 0 AND hourly_rate <= 500",
            name="ck_claims_rate_range",
        ),
        Index("ix_claims_lecturer_created", "lecturer_id", "created_date"),
        Index("ix_claims_status_created", "status", "created_date"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    lecturer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("lecturers.id"), nullable=False,
    )
    claim_date: Mapped[date] = mapped_column(nullable=False)
    hours_worked: Mapped[Decimal] = mapped_column(nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    department: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="pending")

    approved_by_coordinator_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("programme_coordinators.id"), nullable=True,
    )
    coordinator_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    coordinator_approval_date: Mapped[datetime | None] = mapped_column(nullable=True)

    approved_by_manager_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("academic_managers.id"), nullable=True,
    )
    manager_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    manager_approval_date: Mapped[datetime | None] = mapped_column(nullable=True)

    created_date: Mapped[datetime] = mapped_column(nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    documents: Mapped[list[DocumentModel]] = relationship(
        "DocumentModel",
        primaryjoin="ClaimModel.claim_id == DocumentModel.claim_id",
        order_by="DocumentModel.position",
        lazy="selectin",
        viewonly=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Claim {self.claim_id} status={self.status} v{self.version}>"

    def to_dto(self) -> Claim:
        """Convert ORM model to frozen domain DTO."""
        from claims_kernel.domain.claim import Claim, ClaimStatus

        return Claim(
            claim_id=self.claim_id,
            lecturer_id=self.lecturer_id,
            claim_date=self.claim_date,
            hours_worked=self.hours_worked,
            hourly_rate=self.hourly_rate,
            description=self.description,
            department=self.department,
            status=ClaimStatus(self.status),
            approved_by_coordinator_id=self.approved_by_coordinator_id,
            coordinator_notes=self.coordinator_notes,
            coordinator_approval_date=self.coordinator_approval_date,
            approved_by_manager_id=self.approved_by_manager_id,
            manager_notes=self.manager_notes,
            manager_approval_date=self.manager_approval_date,
            created_date=self.created_date,
            version=self.version,
            documents=tuple(d.to_dto() for d in self.documents),
        )

    @classmethod
    def from_dto(cls, dto: Claim) -> ClaimModel:
        """Create ORM model from domain DTO.  ``version`` is assigned on flush."""
        model = cls(claim_id=dto.claim_id, lecturer_id=dto.lecturer_id)
        model.apply_snapshot(dto)
        return model

    def apply_snapshot(self, dto: Claim) -> None:
        """Copy every mutable field of ``dto`` onto this row."""
        self.claim_date = dto.claim_date
        self.hours_worked = dto.hours_worked
        self.hourly_rate = dto.hourly_rate
        self.description = dto.description
        self.department = dto.department
        self.status = dto.status.value
        self.approved_by_coordinator_id = dto.approved_by_coordinator_id
        self.coordinator_notes = dto.coordinator_notes
        self.coordinator_approval_date = dto.coordinator_approval_date
        self.approved_by_manager_id = dto.approved_by_manager_id
        self.manager_notes = dto.manager_notes
        self.manager_approval_date = dto.manager_approval_date
        self.created_date = dto.created_date


class DocumentModel(Base):
    """Attachment metadata row.  Append-only."""

    __tablename__ = "claim_documents"

    __table_args__ = (
        Index("ix_claim_documents_claim", "claim_id"),
        UniqueConstraint("claim_id", "position", name="uq_claim_documents_position"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("claims.claim_id"), nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_date: Mapped[datetime] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Document {self.document_id} {self.file_name!r}>"

    def to_dto(self) -> Document:
        """Convert ORM model to frozen domain DTO."""
        from claims_kernel.domain.claim import Document

        return Document(
            document_id=self.document_id,
            claim_id=self.claim_id,
            file_name=self.file_name,
            storage_name=self.storage_name,
            content_type=self.content_type,
            file_size=self.file_size,
            uploaded_date=self.uploaded_date,
            position=self.position,
        )

    @classmethod
    def from_dto(cls, dto: Document) -> DocumentModel:
        """Create ORM model from domain DTO."""
        return cls(
            document_id=dto.document_id,
            claim_id=dto.claim_id,
            file_name=dto.file_name,
            storage_name=dto.storage_name,
            content_type=dto.content_type,
            file_size=dto.file_size,
            uploaded_date=dto.uploaded_date,
            position=dto.position,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ClaimModel, "before_update")
def prevent_terminal_claim_update(mapper, connection, target):
    """Block any UPDATE of a claim whose stored status is terminal."""
    history = attributes.get_history(target, "status")
    if history.deleted:
        stored_status = history.deleted[0]
    elif history.unchanged:
        stored_status = history.unchanged[0]
    else:
        stored_status = target.status

    if stored_status not in _TERMINAL_STATUS_VALUES:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Claim",
            "entity_id": str(target.claim_id),
            "operation": "UPDATE",
            "status": stored_status,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Claim",
        entity_id=str(target.claim_id),
        reason=f"Claim is {stored_status} and can no longer change",
    )


@event.listens_for(ClaimModel, "before_delete")
def prevent_claim_delete(mapper, connection, target):
    """Claims are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="Claim",
        entity_id=str(target.claim_id),
        reason="Claims cannot be deleted",
    )


@event.listens_for(DocumentModel, "before_update")
def prevent_document_update(mapper, connection, target):
    """Prevent updates to document records."""
    raise ImmutabilityViolationError(
        entity_type="Document",
        entity_id=str(target.document_id),
        reason="Documents are immutable -- cannot modify",
    )


@event.listens_for(DocumentModel, "before_delete")
def prevent_document_delete(mapper, connection, target):
    """Prevent deletion of document records."""
    raise ImmutabilityViolationError(
        entity_type="Document",
        entity_id=str(target.document_id),
        reason="Documents are immutable -- cannot delete",
    )
