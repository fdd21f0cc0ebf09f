"""ORM models for the claims kernel."""

from claims_kernel.models.audit_event import AuditAction, AuditEvent
from claims_kernel.models.claim import ClaimModel, DocumentModel
from claims_kernel.models.staff import (
    STAFF_MODELS,
    CoordinatorModel,
    LecturerModel,
    ManagerModel,
)

__all__ = [
    "ClaimModel",
    "DocumentModel",
    "LecturerModel",
    "CoordinatorModel",
    "ManagerModel",
    "STAFF_MODELS",
    "AuditEvent",
    "AuditAction",
]
