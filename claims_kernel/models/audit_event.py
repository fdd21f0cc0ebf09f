"""
Module: claims_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - Hash chain integrity: hash = H(seq | entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the audit trail.  Every claim submission, edit, coordinator
    decision, manager decision and document attachment produces exactly one
    AuditEvent in the same transaction as the change it records.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from claims_kernel.db.base import Base, UUIDString
from claims_kernel.exceptions import ImmutabilityViolationError
from claims_kernel.logging_config import get_logger

logger = get_logger("models.audit_event")


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: Every member represents one class of claim event that MUST be
    recorded in the audit chain.
    """

    CLAIM_SUBMITTED = "claim_submitted"
    CLAIM_EDITED = "claim_edited"
    CLAIM_COORDINATOR_APPROVED = "claim_coordinator_approved"
    CLAIM_COORDINATOR_REJECTED = "claim_coordinator_rejected"
    CLAIM_MANAGER_APPROVED = "claim_manager_approved"
    CLAIM_MANAGER_RETURNED = "claim_manager_returned"
    CLAIM_MANAGER_REJECTED = "claim_manager_rejected"
    DOCUMENT_ATTACHED = "document_attached"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    # "Claim" or "Document"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # Identity-provider user id of the caller
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(50), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        """True iff this is the first event in the hash chain."""
        return self.prev_hash is None


@event.listens_for(AuditEvent, "before_update")
def prevent_audit_event_update(mapper, connection, target):
    """Audit events are always immutable."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEvent",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are immutable and cannot be modified",
    )


@event.listens_for(AuditEvent, "before_delete")
def prevent_audit_event_delete(mapper, connection, target):
    """Audit events cannot be deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEvent",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events cannot be deleted",
    )
