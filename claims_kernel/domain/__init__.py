"""
Pure domain layer.

This module contains the claim value objects, identity types and the
transition engine, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (``now`` is always injected)
- File storage

All domain objects are immutable and deterministic.
"""

from claims_kernel.domain.claim import (
    MAX_ATTACHMENT_BYTES,
    TERMINAL_CLAIM_STATUSES,
    AttachmentUpload,
    Claim,
    ClaimPayload,
    ClaimStatus,
    Document,
)
from claims_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from claims_kernel.domain.identity import (
    ROLE_PRECEDENCE,
    Actor,
    IdentityProvider,
    Role,
    StaffRecord,
)
from claims_kernel.domain.transitions import (
    ACTION_ROLES,
    ACTION_SOURCE_STATUSES,
    CLAIM_TRANSITIONS,
    ClaimAction,
    CoordinatorDecision,
    LecturerEdit,
    ManagerDecision,
    ManagerOutcome,
    TransitionResult,
    allowed_actions,
    attempt_transition,
    deciding_role,
)

__all__ = [
    # Claim
    "Claim",
    "ClaimPayload",
    "ClaimStatus",
    "Document",
    "AttachmentUpload",
    "TERMINAL_CLAIM_STATUSES",
    "MAX_ATTACHMENT_BYTES",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Identity
    "Actor",
    "Role",
    "StaffRecord",
    "IdentityProvider",
    "ROLE_PRECEDENCE",
    # Transitions
    "ClaimAction",
    "ManagerOutcome",
    "CoordinatorDecision",
    "ManagerDecision",
    "LecturerEdit",
    "TransitionResult",
    "CLAIM_TRANSITIONS",
    "ACTION_SOURCE_STATUSES",
    "ACTION_ROLES",
    "allowed_actions",
    "deciding_role",
    "attempt_transition",
]
