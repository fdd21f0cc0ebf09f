"""
SequenceService -- the audit chain's sequence counter.

Responsibility:
    Hands out ``AuditEvent.seq`` values from a single counter row that is
    locked (``SELECT ... FOR UPDATE``) for the rest of the workflow
    transaction.  Two reviewers deciding claims at the same moment queue
    on that row, so each audit event gets its own number and its
    ``prev_hash`` is read after the previous event is committed.

Architecture position:
    Kernel > Services.  Used only by AuditorService.  The row is created by
    ``scripts/init_db.py`` through ``initialize_sequences()``.

Invariants enforced:
    - The counter row, not ``MAX(seq) + 1`` over audit events, decides the
      next number.
    - A rolled-back workflow call gives its number back.

Failure modes:
    - IntegrityError: the counter row was never initialized and two
      transactions tried to create it at once.  The losing workflow call
      fails and the caller's ``session_scope`` rolls it back.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from claims_kernel.db.base import Base
from claims_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Audit sequence allocation.  Flush-only; never commits.
    """

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, sequence_name: str, lock: bool) -> SequenceCounter | None:
        query = select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(query).scalar_one_or_none()

    def next_value(self, sequence_name: str = AUDIT_EVENT) -> int:
        """
        Lock the counter, increment it and return the new value.

        The lock is held until the caller's transaction ends.
        """
        counter = self._counter(sequence_name, lock=True)
        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            logger.warning(
                "sequence_counter_created_lazily",
                extra={"sequence_name": sequence_name},
            )

        counter.current_value += 1
        self._session.flush()
        return counter.current_value

    def current_value(self, sequence_name: str = AUDIT_EVENT) -> int | None:
        """Last allocated value, or None before initialization."""
        counter = self._counter(sequence_name, lock=False)
        return counter.current_value if counter else None

    def initialize_sequences(self) -> None:
        """Create the audit counter at zero if it is missing."""
        if self._counter(self.AUDIT_EVENT, lock=False) is None:
            self._session.add(SequenceCounter(name=self.AUDIT_EVENT, current_value=0))
            self._session.flush()
            logger.info(
                "sequence_counter_initialized",
                extra={"sequence_name": self.AUDIT_EVENT},
            )
