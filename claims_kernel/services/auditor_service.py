"""
AuditorService -- tamper-evident audit trail for claims.

Responsibility:
    Creates immutable, hash-chained audit events for every claim submission,
    edit, decision and document attachment.  Provides chain validation for
    tamper detection and per-claim trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by ClaimWorkflowService
    inside the same transaction as the change being recorded.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never MAX(seq) + 1).
    - Chain integrity: every event's ``hash`` covers its sequence number,
      subject, action, actor, actor role, ``occurred_at``, payload hash and
      the previous event's hash.
    - Append-only: audit events are never modified or deleted (ORM
      listeners on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: a recomputed payload hash or event hash does
      not match the stored value, or a ``prev_hash`` does not match its
      predecessor.

Audit relevance:
    This IS the audit service.  Every audit event flows through
    ``_create_audit_event()``.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from claims_kernel.domain.claim import Claim, Document
from claims_kernel.domain.clock import Clock, SystemClock
from claims_kernel.domain.identity import Actor, Role
from claims_kernel.domain.transitions import (
    ClaimAction,
    ManagerOutcome,
    TransitionResult,
)
from claims_kernel.exceptions import AuditChainBrokenError
from claims_kernel.logging_config import get_logger
from claims_kernel.models.audit_event import AuditAction, AuditEvent
from claims_kernel.services.sequence_service import SequenceService
from claims_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
)

logger = get_logger("services.auditor")

_TRANSITION_ACTIONS: dict[tuple[ClaimAction, str], AuditAction] = {
    (ClaimAction.COORDINATOR_DECIDE, "approve"): AuditAction.CLAIM_COORDINATOR_APPROVED,
    (ClaimAction.COORDINATOR_DECIDE, "reject"): AuditAction.CLAIM_COORDINATOR_REJECTED,
    (ClaimAction.MANAGER_DECIDE, ManagerOutcome.APPROVE.value): AuditAction.CLAIM_MANAGER_APPROVED,
    (ClaimAction.MANAGER_DECIDE, ManagerOutcome.RETURN.value): AuditAction.CLAIM_MANAGER_RETURNED,
    (ClaimAction.MANAGER_DECIDE, ManagerOutcome.REJECT.value): AuditAction.CLAIM_MANAGER_REJECTED,
    (ClaimAction.LECTURER_EDIT, "edit"): AuditAction.CLAIM_EDITED,
}


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    actor_role: str | None
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Guarantees:
        - Every audit event's ``hash`` is recomputable from its other
          stored columns, including who acted and when.  Rewriting any of
          them, or the payload, is detected by ``validate_chain()``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    CLAIM = "Claim"
    DOCUMENT = "Document"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor: Actor,
        actor_role: Role | None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event linked to the current chain head.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with the next audit
              sequence number and a valid hash chain link.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()
        occurred_at = self._clock.now()
        role_value = actor_role.value if actor_role else None

        # Store the payload in its canonical JSON form so the stored value
        # rehashes to exactly payload_hash.
        payload_data = json.loads(canonicalize_json(payload or {}))
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor.user_id,
            actor_role=role_value,
            occurred_at=occurred_at,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor.user_id,
            actor_role=role_value,
            occurred_at=occurred_at,
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Claim recording methods

    def record_claim_submitted(self, claim: Claim, actor: Actor) -> AuditEvent:
        """Record a new Pending claim with its full payload."""
        return self._create_audit_event(
            entity_type=self.CLAIM,
            entity_id=claim.claim_id,
            action=AuditAction.CLAIM_SUBMITTED,
            actor=actor,
            actor_role=Role.LECTURER,
            payload={
                "lecturer_id": claim.lecturer_id,
                "claim_date": claim.claim_date,
                "hours_worked": claim.hours_worked,
                "hourly_rate": claim.hourly_rate,
                "description": claim.description,
                "department": claim.department,
                "status": claim.status,
            },
        )

    def record_claim_transition(
        self,
        result: TransitionResult,
        actor: Actor,
        actor_role: Role,
    ) -> AuditEvent:
        """
        Record an edit or decision.

        The payload carries from/to status, the outcome, the notes and,
        for edits, the manager notes that were cleared plus the new payload.
        """
        payload = result.audit_payload()
        if result.action is ClaimAction.LECTURER_EDIT:
            claim = result.claim
            payload.update({
                "claim_date": claim.claim_date,
                "hours_worked": claim.hours_worked,
                "hourly_rate": claim.hourly_rate,
                "description": claim.description,
                "department": claim.department,
            })
        return self._create_audit_event(
            entity_type=self.CLAIM,
            entity_id=result.claim.claim_id,
            action=_TRANSITION_ACTIONS[(result.action, result.outcome)],
            actor=actor,
            actor_role=actor_role,
            payload=payload,
        )

    def record_document_attached(self, document: Document, actor: Actor) -> AuditEvent:
        """Record attachment metadata.  Content bytes are never audited."""
        return self._create_audit_event(
            entity_type=self.DOCUMENT,
            entity_id=document.document_id,
            action=AuditAction.DOCUMENT_ATTACHED,
            actor=actor,
            actor_role=Role.LECTURER,
            payload={
                "claim_id": document.claim_id,
                "file_name": document.file_name,
                "storage_name": document.storage_name,
                "content_type": document.content_type,
                "file_size": document.file_size,
            },
        )

    # Validation and trace

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If a stored payload, actor, timestamp,
                hash or predecessor link no longer matches the chain.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(
                str(events[0].id),
                "None",
                events[0].prev_hash,
            )

        for i, event in enumerate(events):
            expected_payload_hash = hash_payload(event.payload or {})
            if event.payload_hash != expected_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_payload_hash,
                    event.payload_hash,
                )

            expected_hash = hash_audit_event(
                seq=event.seq,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                action=event.action,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                occurred_at=event.occurred_at,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_hash,
                    event.hash,
                )

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        str(event.id),
                        expected_prev,
                        event.prev_hash or "None",
                    )

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """All audit events for an entity, in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

    def get_claim_trace(self, claim_id: UUID) -> AuditTrace:
        return self.get_trace(self.CLAIM, claim_id)
