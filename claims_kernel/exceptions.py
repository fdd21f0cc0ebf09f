"""
Typed Exception Hierarchy for the Claims Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The approval workflow reports every failure back to a caller who has to
decide what to show a lecturer, coordinator or manager.  Parsing message
strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has a STATUS_CODE (HTTP-equivalent for a thin
     delivery layer)
  4. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        workflow.manager_decide(actor, claim_id, ManagerOutcome.APPROVE, "")
    except IllegalTransitionError as e:
        api_response(e.status_code, code=e.code,
                     status=e.current_status, allowed=e.allowed_actions)
    except ConflictError:
        reload_and_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ClaimsKernelError (base)
    |
    +-- ValidationError
    |
    +-- WorkflowError
    |   +-- IllegalTransitionError
    |
    +-- ForbiddenError
    |
    +-- NotFoundError
    |   +-- ClaimNotFoundError
    |   +-- DocumentNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | Status | When Raised
----------------------------|--------|------------------------------------------
VALIDATION_FAILED           | 422    | Payload outside declared field ranges
ILLEGAL_TRANSITION          | 409    | Action not valid from current status
FORBIDDEN                   | 403    | Role or ownership check failed
CLAIM_NOT_FOUND             | 404    | Unknown claim id
DOCUMENT_NOT_FOUND          | 404    | Unknown document id / missing content
CONFLICT                    | 409    | Claim changed since it was loaded
IMMUTABILITY_VIOLATION      | 500    | Modifying an append-only record
AUDIT_CHAIN_BROKEN          | 500    | Hash chain validation failed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ForbiddenError carries no claim state.  A caller who may not act on a
   claim learns nothing about where that claim is in the workflow.

2. IllegalTransitionError carries the current status and the actions the
   status allows, so the caller can explain what is still possible.

3. ConflictError is a ConcurrencyError, not a WorkflowError: the request
   was legal when it was made and may succeed after a reload.
"""

from __future__ import annotations

from collections.abc import Mapping


class ClaimsKernelError(Exception):
    """
    Base exception for all claims kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification and a ``status_code``
    for delivery layers that speak HTTP.
    """

    code: str = "CLAIMS_KERNEL_ERROR"
    status_code: int = 500


# Validation


class ValidationError(ClaimsKernelError):
    """Payload fails declared field ranges.  No mutation occurs."""

    code: str = "VALIDATION_FAILED"
    status_code: int = 422

    def __init__(self, field_errors: Mapping[str, str]):
        self.field_errors = dict(field_errors)
        detail = "; ".join(
            f"{name}: {message}" for name, message in sorted(self.field_errors.items())
        )
        super().__init__(f"Claim validation failed: {detail}")


# Workflow


class WorkflowError(ClaimsKernelError):
    """Base exception for workflow state errors."""

    code: str = "WORKFLOW_ERROR"
    status_code: int = 409


class IllegalTransitionError(WorkflowError):
    """Action is not valid from the claim's current status."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        claim_id: str,
        current_status: str,
        action: str,
        allowed_actions: tuple[str, ...],
    ):
        self.claim_id = claim_id
        self.current_status = current_status
        self.action = action
        self.allowed_actions = allowed_actions
        allowed = ", ".join(allowed_actions) or "none"
        super().__init__(
            f"Cannot {action} claim {claim_id} in status {current_status} "
            f"(allowed: {allowed})"
        )


# Authorization


class ForbiddenError(ClaimsKernelError):
    """Role or ownership check failed.  Reported generically."""

    code: str = "FORBIDDEN"
    status_code: int = 403

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Not permitted to {action}")


# Lookup


class NotFoundError(ClaimsKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"
    status_code: int = 404


class ClaimNotFoundError(NotFoundError):
    """Claim id does not exist."""

    code: str = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Claim not found: {claim_id}")


class DocumentNotFoundError(NotFoundError):
    """Document id does not exist, or its stored content is missing."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


# Concurrency


class ConcurrencyError(ClaimsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    status_code: int = 409


class ConflictError(ConcurrencyError):
    """The claim was modified by another transaction since it was loaded."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction, reload and retry"
        )


# Immutability


class ImmutabilityError(ClaimsKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditError(ClaimsKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
