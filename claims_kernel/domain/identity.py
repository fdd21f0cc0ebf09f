"""
Identity types (``claims_kernel.domain.identity``).

Roles, the explicit ``Actor`` passed into every workflow call, staff
records that link identity user ids to the ids stored on claims, and the
``IdentityProvider`` protocol a delivery layer implements.

Kernel domain layer -- pure value objects, ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from uuid import UUID


class Role(str, Enum):
    """Roles an identity provider can grant."""

    LECTURER = "Lecturer"
    PROGRAMME_COORDINATOR = "ProgrammeCoordinator"
    ACADEMIC_MANAGER = "AcademicManager"
    ADMIN = "Admin"


# Dashboard precedence when an actor holds several roles.
ROLE_PRECEDENCE: tuple[Role, ...] = (
    Role.LECTURER,
    Role.PROGRAMME_COORDINATOR,
    Role.ACADEMIC_MANAGER,
)

REVIEWER_ROLES: frozenset[Role] = frozenset({
    Role.PROGRAMME_COORDINATOR,
    Role.ACADEMIC_MANAGER,
})


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a workflow operation."""

    user_id: UUID
    roles: frozenset[Role] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "roles", frozenset(Role(r) for r in self.roles))

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_reviewer(self) -> bool:
        return bool(self.roles & REVIEWER_ROLES)

    @property
    def primary_role(self) -> Role | None:
        """First role in dashboard precedence order, or None."""
        for role in ROLE_PRECEDENCE:
            if role in self.roles:
                return role
        return None


@dataclass(frozen=True)
class StaffRecord:
    """A lecturer, programme coordinator or academic manager record."""

    staff_id: UUID
    user_id: UUID
    role: Role
    first_name: str
    last_name: str
    email: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class IdentityProvider(Protocol):
    """Pluggable interface for resolving the current caller."""

    def current_actor(self) -> Actor:
        """Return the authenticated caller and their roles."""
        ...
