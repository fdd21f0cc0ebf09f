"""Kernel services: the imperative shell around the pure domain."""

from claims_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from claims_kernel.services.claim_store import ClaimStore, SqlClaimStore
from claims_kernel.services.claim_workflow_service import (
    ClaimWorkflowService,
    DocumentContent,
)
from claims_kernel.services.document_storage import LocalDocumentStorage
from claims_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AuditorService",
    "AuditTrace",
    "AuditTraceEntry",
    "ClaimStore",
    "SqlClaimStore",
    "ClaimWorkflowService",
    "DocumentContent",
    "LocalDocumentStorage",
    "SequenceService",
    "SequenceCounter",
]
