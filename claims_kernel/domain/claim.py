"""
Claim domain types (``claims_kernel.domain.claim``).

Responsibility
--------------
Pure value objects for a lecturer's hours-worked claim: the closed status
enum, the editable payload, the immutable claim snapshot, and attachment
records.  Field ranges are enforced at construction.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* 1 <= hours_worked <= 200 and 0 <= hourly_rate <= 500 (inclusive), checked
  on every ``ClaimPayload`` and ``Claim`` construction.
* ``ClaimStatus`` lists only statuses some transition can produce.
* ``Claim`` is frozen: status and provenance fields change only by the
  transition engine building a new snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from claims_kernel.exceptions import ValidationError

HOURS_WORKED_MIN = Decimal("1")
HOURS_WORKED_MAX = Decimal("200")
HOURLY_RATE_MIN = Decimal("0")
HOURLY_RATE_MAX = Decimal("500")

DESCRIPTION_MAX_LENGTH = 2000
DEPARTMENT_MAX_LENGTH = 100

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


class ClaimStatus(str, Enum):
    """Claim lifecycle states."""

    PENDING = "pending"
    APPROVED_BY_COORDINATOR = "approved_by_coordinator"
    RETURNED_TO_COORDINATOR = "returned_to_coordinator"
    FULLY_APPROVED = "fully_approved"
    REJECTED = "rejected"
    REJECTED_BY_MANAGER = "rejected_by_manager"


TERMINAL_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.FULLY_APPROVED,
    ClaimStatus.REJECTED,
    ClaimStatus.REJECTED_BY_MANAGER,
})


def _coerce_decimal(value: Any, name: str, errors: dict[str, str]) -> Decimal | None:
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        errors[name] = "must be a number"
        return None
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            errors[name] = "must be a number"
            return None
    if not result.is_finite():
        errors[name] = "must be a number"
        return None
    return result


def _validate_payload_fields(
    claim_date: Any,
    hours_worked: Any,
    hourly_rate: Any,
    description: Any,
    department: Any,
) -> tuple[Decimal, Decimal, str, str]:
    """Check every payload field, collecting all failures before raising."""
    errors: dict[str, str] = {}

    if not isinstance(claim_date, date):
        errors["claim_date"] = "is required"

    hours = _coerce_decimal(hours_worked, "hours_worked", errors)
    if hours is not None and not HOURS_WORKED_MIN <= hours <= HOURS_WORKED_MAX:
        errors["hours_worked"] = (
            f"must be between {HOURS_WORKED_MIN} and {HOURS_WORKED_MAX}"
        )

    rate = _coerce_decimal(hourly_rate, "hourly_rate", errors)
    if rate is not None and not HOURLY_RATE_MIN <= rate <= HOURLY_RATE_MAX:
        errors["hourly_rate"] = (
            f"must be between {HOURLY_RATE_MIN} and {HOURLY_RATE_MAX}"
        )

    description = description or ""
    if len(description) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"must be at most {DESCRIPTION_MAX_LENGTH} characters"

    department = department or ""
    if len(department) > DEPARTMENT_MAX_LENGTH:
        errors["department"] = f"must be at most {DEPARTMENT_MAX_LENGTH} characters"

    if errors:
        raise ValidationError(errors)
    return hours, rate, description, department


@dataclass(frozen=True)
class ClaimPayload:
    """The lecturer-editable part of a claim.

    Raises ``ValidationError`` with one entry per bad field.  Numeric
    inputs (int, str, float) are normalized to ``Decimal``.
    """

    claim_date: date
    hours_worked: Decimal
    hourly_rate: Decimal
    description: str = ""
    department: str = ""

    def __post_init__(self) -> None:
        hours, rate, description, department = _validate_payload_fields(
            self.claim_date,
            self.hours_worked,
            self.hourly_rate,
            self.description,
            self.department,
        )
        object.__setattr__(self, "hours_worked", hours)
        object.__setattr__(self, "hourly_rate", rate)
        object.__setattr__(self, "description", description)
        object.__setattr__(self, "department", department)


@dataclass(frozen=True)
class Document:
    """Attachment metadata.  Immutable once created.

    ``file_name`` is display-only; ``storage_name`` is the opaque key the
    content is stored under.  ``position`` is the attachment's place in
    upload order within its claim, assigned by the store.
    """

    document_id: UUID
    claim_id: UUID
    file_name: str
    storage_name: str
    content_type: str
    file_size: int
    uploaded_date: datetime
    position: int = 0


@dataclass(frozen=True)
class AttachmentUpload:
    """An uploaded file as received from the delivery layer."""

    file_name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class Claim:
    """Immutable snapshot of a claim.

    ``version`` is the persisted row version this snapshot was read at
    (0 for a claim that has not been stored yet).  The store compares it
    on save to detect concurrent modification.
    """

    claim_id: UUID
    lecturer_id: UUID
    claim_date: date
    hours_worked: Decimal
    hourly_rate: Decimal
    description: str = ""
    department: str = ""
    status: ClaimStatus = ClaimStatus.PENDING
    approved_by_coordinator_id: UUID | None = None
    coordinator_notes: str | None = None
    coordinator_approval_date: datetime | None = None
    approved_by_manager_id: UUID | None = None
    manager_notes: str | None = None
    manager_approval_date: datetime | None = None
    created_date: datetime | None = None
    version: int = 0
    documents: tuple[Document, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        if self.lecturer_id is None:
            raise ValidationError({"lecturer_id": "is required"})
        hours, rate, description, department = _validate_payload_fields(
            self.claim_date,
            self.hours_worked,
            self.hourly_rate,
            self.description,
            self.department,
        )
        object.__setattr__(self, "hours_worked", hours)
        object.__setattr__(self, "hourly_rate", rate)
        object.__setattr__(self, "description", description)
        object.__setattr__(self, "department", department)

    @classmethod
    def submit(
        cls,
        lecturer_id: UUID,
        payload: ClaimPayload,
        now: datetime,
    ) -> Claim:
        """Build a new Pending claim owned by ``lecturer_id``."""
        return cls(
            claim_id=uuid4(),
            lecturer_id=lecturer_id,
            claim_date=payload.claim_date,
            hours_worked=payload.hours_worked,
            hourly_rate=payload.hourly_rate,
            description=payload.description,
            department=payload.department,
            status=ClaimStatus.PENDING,
            created_date=now,
        )

    @property
    def payload(self) -> ClaimPayload:
        return ClaimPayload(
            claim_date=self.claim_date,
            hours_worked=self.hours_worked,
            hourly_rate=self.hourly_rate,
            description=self.description,
            department=self.department,
        )

    @property
    def amount(self) -> Decimal:
        """Total claimed: hours worked times hourly rate."""
        return self.hours_worked * self.hourly_rate

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CLAIM_STATUSES
