"""
Module: claims_kernel.models.staff
Responsibility: ORM persistence for the three staff record kinds that link an
    identity-provider user id to the ids stored on claims: lecturers (claim
    owners), programme coordinators and academic managers (reviewers).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One staff record per user per kind (unique user_id).
    - Claim.lecturer_id, Claim.approved_by_coordinator_id and
      Claim.approved_by_manager_id reference these tables by primary key.

Failure modes:
    - IntegrityError on a second record for the same user_id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar
from uuid import UUID

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from claims_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from claims_kernel.domain.identity import Role, StaffRecord


class _StaffColumns:
    """Columns shared by every staff table."""

    role_value: ClassVar[str]

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} user={self.user_id}>"

    @property
    def role(self) -> Role:
        from claims_kernel.domain.identity import Role

        return Role(self.role_value)

    def to_dto(self) -> StaffRecord:
        """Convert ORM model to frozen domain DTO."""
        from claims_kernel.domain.identity import StaffRecord

        return StaffRecord(
            staff_id=self.id,
            user_id=self.user_id,
            role=self.role,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
        )


class LecturerModel(_StaffColumns, Base):
    """A lecturer who submits claims."""

    __tablename__ = "lecturers"
    role_value = "Lecturer"


class CoordinatorModel(_StaffColumns, Base):
    """A programme coordinator who makes the first decision on a claim."""

    __tablename__ = "programme_coordinators"
    role_value = "ProgrammeCoordinator"


class ManagerModel(_StaffColumns, Base):
    """An academic manager who makes the final decision on a claim."""

    __tablename__ = "academic_managers"
    role_value = "AcademicManager"


STAFF_MODELS: dict[str, type[_StaffColumns]] = {
    model.role_value: model
    for model in (LecturerModel, CoordinatorModel, ManagerModel)
}
