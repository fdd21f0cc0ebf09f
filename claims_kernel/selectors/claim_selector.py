"""
Module: claims_kernel.selectors.claim_selector
Responsibility: Role-scoped claim listings for dashboards and review queues.
Architecture position: Kernel > Selectors.  Read-only.

Orderings:
    - Lecturer: own claims, newest ``created_date`` first.
    - Programme coordinator: Pending and ReturnedToCoordinator claims,
      returned claims first, then oldest ``created_date`` first.
    - Academic manager: ApprovedByCoordinator claims, oldest
      ``coordinator_approval_date`` first.
    - Any other role (or none): empty.

Every ordering ends with ``claim_id`` as a tiebreaker so results are
deterministic when timestamps collide.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import case, select
from sqlalchemy.orm import InstrumentedAttribute

from claims_kernel.domain.claim import Claim, ClaimStatus
from claims_kernel.domain.identity import Role
from claims_kernel.models.claim import ClaimModel
from claims_kernel.selectors.base import BaseSelector

COORDINATOR_QUEUE: tuple[ClaimStatus, ...] = (
    ClaimStatus.RETURNED_TO_COORDINATOR,
    ClaimStatus.PENDING,
)
MANAGER_QUEUE: tuple[ClaimStatus, ...] = (ClaimStatus.APPROVED_BY_COORDINATOR,)


class ClaimSelector(BaseSelector[ClaimModel]):
    """Read-only claim listings."""

    def by_lecturer(self, lecturer_id: UUID, limit: int | None = None) -> list[Claim]:
        """Claims owned by ``lecturer_id``, newest first."""
        stmt = (
            select(ClaimModel)
            .where(ClaimModel.lecturer_id == lecturer_id)
            .order_by(ClaimModel.created_date.desc(), ClaimModel.claim_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def by_status(
        self,
        statuses: Sequence[ClaimStatus],
        order_by: InstrumentedAttribute | None = None,
    ) -> list[Claim]:
        """
        Claims in any of ``statuses``.

        Results are grouped in the order ``statuses`` is given, then sorted
        ascending by ``order_by`` (``created_date`` by default).
        """
        values = [ClaimStatus(s).value for s in statuses]
        if not values:
            return []
        order_col = order_by if order_by is not None else ClaimModel.created_date

        stmt = select(ClaimModel).where(ClaimModel.status.in_(values))
        if len(values) > 1:
            priority = case(
                {value: rank for rank, value in enumerate(values)},
                value=ClaimModel.status,
            )
            stmt = stmt.order_by(priority)
        stmt = stmt.order_by(order_col.asc(), ClaimModel.claim_id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def coordinator_queue(self) -> list[Claim]:
        return self.by_status(COORDINATOR_QUEUE)

    def manager_queue(self) -> list[Claim]:
        return self.by_status(
            MANAGER_QUEUE, order_by=ClaimModel.coordinator_approval_date,
        )

    def for_role(
        self,
        role: Role | None,
        lecturer_id: UUID | None = None,
        limit: int | None = None,
    ) -> list[Claim]:
        """
        The listing for a single role.

        ``lecturer_id`` is required for the lecturer listing; ``limit`` only
        applies to it.
        """
        if role is Role.LECTURER:
            if lecturer_id is None:
                return []
            return self.by_lecturer(lecturer_id, limit=limit)
        if role is Role.PROGRAMME_COORDINATOR:
            return self.coordinator_queue()
        if role is Role.ACADEMIC_MANAGER:
            return self.manager_queue()
        return []
