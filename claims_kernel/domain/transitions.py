"""
Claim transition engine (``claims_kernel.domain.transitions``).

Responsibility
--------------
Decides, for a (claim snapshot, action, actor role), whether the action is
legal and computes the next snapshot with its provenance fields.  This is
the only place a claim's ``status`` changes.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O, no clock access:
``now`` is injected by the caller.  Safe to call concurrently.

Invariants enforced
-------------------
* ``CLAIM_TRANSITIONS`` defines the only valid status edges.  Terminal
  statuses have no outgoing edges.
* Each action is gated on exactly one role (``ACTION_ROLES``), and the role
  check runs before any status check so a forbidden caller learns nothing
  about the claim.
* A decision sets exactly one provenance group (coordinator OR manager).
* A lecturer edit always lands on Pending, clears the manager's notes and
  refreshes ``created_date``.  The cleared note is carried in the result so
  the audit trail keeps it.
* No partial mutation: every failure raises before a snapshot is built.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

from claims_kernel.domain.claim import Claim, ClaimPayload, ClaimStatus
from claims_kernel.domain.identity import Role
from claims_kernel.exceptions import (
    ForbiddenError,
    IllegalTransitionError,
    ValidationError,
)

NOTES_MAX_LENGTH = 2000


class ClaimAction(str, Enum):
    """Workflow actions that move a claim."""

    COORDINATOR_DECIDE = "coordinator_decide"
    MANAGER_DECIDE = "manager_decide"
    LECTURER_EDIT = "lecturer_edit"


class ManagerOutcome(str, Enum):
    """Closed three-way outcome of a manager decision."""

    APPROVE = "approve"
    RETURN = "return"
    REJECT = "reject"


CLAIM_TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.PENDING: frozenset({
        ClaimStatus.APPROVED_BY_COORDINATOR,
        ClaimStatus.REJECTED,
        ClaimStatus.PENDING,
    }),
    ClaimStatus.RETURNED_TO_COORDINATOR: frozenset({
        ClaimStatus.APPROVED_BY_COORDINATOR,
        ClaimStatus.REJECTED,
        ClaimStatus.PENDING,
    }),
    ClaimStatus.APPROVED_BY_COORDINATOR: frozenset({
        ClaimStatus.FULLY_APPROVED,
        ClaimStatus.RETURNED_TO_COORDINATOR,
        ClaimStatus.REJECTED_BY_MANAGER,
    }),
    ClaimStatus.FULLY_APPROVED: frozenset(),
    ClaimStatus.REJECTED: frozenset(),
    ClaimStatus.REJECTED_BY_MANAGER: frozenset(),
}

ACTION_SOURCE_STATUSES: dict[ClaimAction, frozenset[ClaimStatus]] = {
    ClaimAction.COORDINATOR_DECIDE: frozenset({
        ClaimStatus.PENDING,
        ClaimStatus.RETURNED_TO_COORDINATOR,
    }),
    ClaimAction.MANAGER_DECIDE: frozenset({
        ClaimStatus.APPROVED_BY_COORDINATOR,
    }),
    ClaimAction.LECTURER_EDIT: frozenset({
        ClaimStatus.PENDING,
        ClaimStatus.RETURNED_TO_COORDINATOR,
    }),
}

ACTION_ROLES: dict[ClaimAction, Role] = {
    ClaimAction.COORDINATOR_DECIDE: Role.PROGRAMME_COORDINATOR,
    ClaimAction.MANAGER_DECIDE: Role.ACADEMIC_MANAGER,
    ClaimAction.LECTURER_EDIT: Role.LECTURER,
}

_DECISION_ACTIONS = (ClaimAction.COORDINATOR_DECIDE, ClaimAction.MANAGER_DECIDE)


def allowed_actions(status: ClaimStatus) -> tuple[ClaimAction, ...]:
    """Actions legal from ``status``, in declaration order."""
    return tuple(
        action for action in ClaimAction
        if status in ACTION_SOURCE_STATUSES[action]
    )


def deciding_role(status: ClaimStatus) -> Role | None:
    """The single role holding decision authority in ``status``.

    None for terminal statuses.
    """
    roles = {
        ACTION_ROLES[action] for action in _DECISION_ACTIONS
        if status in ACTION_SOURCE_STATUSES[action]
    }
    if not roles:
        return None
    (role,) = roles
    return role


# =========================================================================
# Actions
# =========================================================================


def _check_notes(notes: str | None) -> str:
    notes = notes or ""
    if len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(
            {"notes": f"must be at most {NOTES_MAX_LENGTH} characters"}
        )
    return notes


@dataclass(frozen=True)
class CoordinatorDecision:
    """Programme coordinator approves or rejects a claim."""

    kind: ClassVar[ClaimAction] = ClaimAction.COORDINATOR_DECIDE

    approve: bool
    notes: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.approve, bool):
            raise ValidationError({"approve": "must be true or false"})
        object.__setattr__(self, "notes", _check_notes(self.notes))


@dataclass(frozen=True)
class ManagerDecision:
    """Academic manager approves, returns or rejects a claim.

    ``outcome`` is an explicit discriminator; it is never inferred from
    the notes.
    """

    kind: ClassVar[ClaimAction] = ClaimAction.MANAGER_DECIDE

    outcome: ManagerOutcome
    notes: str = ""

    def __post_init__(self) -> None:
        try:
            outcome = ManagerOutcome(self.outcome)
        except ValueError:
            allowed = ", ".join(o.value for o in ManagerOutcome)
            raise ValidationError({"outcome": f"must be one of {allowed}"}) from None
        object.__setattr__(self, "outcome", outcome)
        object.__setattr__(self, "notes", _check_notes(self.notes))


@dataclass(frozen=True)
class LecturerEdit:
    """Owning lecturer replaces the claim payload."""

    kind: ClassVar[ClaimAction] = ClaimAction.LECTURER_EDIT

    payload: ClaimPayload


TransitionAction = CoordinatorDecision | ManagerDecision | LecturerEdit


# =========================================================================
# Result
# =========================================================================


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a legal transition: the next snapshot plus audit detail."""

    claim: Claim
    action: ClaimAction
    outcome: str
    from_status: ClaimStatus
    to_status: ClaimStatus
    notes: str | None = None
    cleared_manager_notes: str | None = None

    def audit_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "action": self.action.value,
            "outcome": self.outcome,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "notes": self.notes,
        }
        if self.cleared_manager_notes is not None:
            payload["cleared_manager_notes"] = self.cleared_manager_notes
        return payload


# =========================================================================
# Engine
# =========================================================================


def attempt_transition(
    claim: Claim,
    action: TransitionAction,
    actor_role: Role,
    actor_ref: UUID | None,
    now: datetime,
) -> TransitionResult:
    """Validate ``action`` against ``claim`` and compute the next snapshot.

    Args:
        claim: Current snapshot.
        action: The requested action.
        actor_role: Role the caller is acting under.
        actor_ref: Staff record id recorded as provenance for decisions.
        now: Injected timestamp for provenance dates / ``created_date``.

    Raises:
        ForbiddenError: ``actor_role`` may not perform ``action``.
        IllegalTransitionError: ``claim.status`` does not permit ``action``.
    """
    kind = action.kind
    if actor_role != ACTION_ROLES[kind]:
        raise ForbiddenError(kind.value)

    from_status = claim.status
    if from_status not in ACTION_SOURCE_STATUSES[kind]:
        raise IllegalTransitionError(
            str(claim.claim_id),
            from_status.value,
            kind.value,
            tuple(a.value for a in allowed_actions(from_status)),
        )

    if isinstance(action, CoordinatorDecision):
        result = _coordinator_decide(claim, action, actor_ref, now)
    elif isinstance(action, ManagerDecision):
        result = _manager_decide(claim, action, actor_ref, now)
    else:
        result = _lecturer_edit(claim, action, now)

    if result.to_status not in CLAIM_TRANSITIONS[from_status]:
        raise IllegalTransitionError(
            str(claim.claim_id),
            from_status.value,
            kind.value,
            tuple(a.value for a in allowed_actions(from_status)),
        )
    return result


def _coordinator_decide(
    claim: Claim,
    action: CoordinatorDecision,
    coordinator_id: UUID | None,
    now: datetime,
) -> TransitionResult:
    to_status = (
        ClaimStatus.APPROVED_BY_COORDINATOR if action.approve
        else ClaimStatus.REJECTED
    )
    updated = replace(
        claim,
        status=to_status,
        approved_by_coordinator_id=coordinator_id,
        coordinator_notes=action.notes,
        coordinator_approval_date=now,
    )
    return TransitionResult(
        claim=updated,
        action=action.kind,
        outcome="approve" if action.approve else "reject",
        from_status=claim.status,
        to_status=to_status,
        notes=action.notes,
    )


_MANAGER_TARGETS: dict[ManagerOutcome, ClaimStatus] = {
    ManagerOutcome.APPROVE: ClaimStatus.FULLY_APPROVED,
    ManagerOutcome.RETURN: ClaimStatus.RETURNED_TO_COORDINATOR,
    ManagerOutcome.REJECT: ClaimStatus.REJECTED_BY_MANAGER,
}


def _manager_decide(
    claim: Claim,
    action: ManagerDecision,
    manager_id: UUID | None,
    now: datetime,
) -> TransitionResult:
    to_status = _MANAGER_TARGETS[action.outcome]
    updated = replace(
        claim,
        status=to_status,
        approved_by_manager_id=manager_id,
        manager_notes=action.notes,
        manager_approval_date=now,
    )
    return TransitionResult(
        claim=updated,
        action=action.kind,
        outcome=action.outcome.value,
        from_status=claim.status,
        to_status=to_status,
        notes=action.notes,
    )


def _lecturer_edit(
    claim: Claim,
    action: LecturerEdit,
    now: datetime,
) -> TransitionResult:
    payload = action.payload
    updated = replace(
        claim,
        claim_date=payload.claim_date,
        hours_worked=payload.hours_worked,
        hourly_rate=payload.hourly_rate,
        description=payload.description,
        department=payload.department,
        status=ClaimStatus.PENDING,
        manager_notes=None,
        created_date=now,
    )
    return TransitionResult(
        claim=updated,
        action=action.kind,
        outcome="edit",
        from_status=claim.status,
        to_status=ClaimStatus.PENDING,
        cleared_manager_notes=claim.manager_notes,
    )
