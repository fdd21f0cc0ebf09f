"""
Pytest fixtures for the claims kernel test suite.

Provides:
- A file-backed SQLite database per test (real commits, so several
  sessions can interleave in concurrency tests)
- Deterministic clock, local document storage and a wired workflow service
- Staff/actor and claim factories
- Captured structured logs
"""

import json
import logging
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from claims_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from claims_kernel.domain.claim import ClaimPayload, ClaimStatus
from claims_kernel.domain.clock import DeterministicClock
from claims_kernel.domain.identity import Actor, Role, StaffRecord
from claims_kernel.domain.transitions import ManagerOutcome
from claims_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from claims_kernel.services.auditor_service import AuditorService
from claims_kernel.services.claim_store import SqlClaimStore
from claims_kernel.services.claim_workflow_service import ClaimWorkflowService
from claims_kernel.services.document_storage import LocalDocumentStorage
from claims_kernel.services.sequence_service import SequenceService
from tests.factories import TEST_MAX_ATTACHMENT_BYTES, make_payload


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture claims_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit_claim(...)
            logs = captured_logs()
            assert any(r["message"] == "claim_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("claims_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'claims.db'}"


@pytest.fixture
def db_engine(database_url):
    """Fresh schema in a per-test SQLite file, audit counter initialized."""
    engine = init_engine_from_url(database_url)
    create_tables()
    with session_scope() as s:
        SequenceService(s).initialize_sequences()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """A session on the test database.  Tests commit explicitly when needed."""
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture
def session_factory(db_engine):
    """Factory for additional independent sessions (concurrency tests)."""
    factory = get_session_factory()
    created: list[Session] = []

    def _make() -> Session:
        s = factory()
        created.append(s)
        return s

    yield _make

    for s in created:
        s.rollback()
        s.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def storage(tmp_path) -> LocalDocumentStorage:
    return LocalDocumentStorage(
        tmp_path / "documents", max_bytes=TEST_MAX_ATTACHMENT_BYTES,
    )


@pytest.fixture
def store(session) -> SqlClaimStore:
    return SqlClaimStore(session)


@pytest.fixture
def auditor_service(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def workflow(session, storage, deterministic_clock) -> ClaimWorkflowService:
    return ClaimWorkflowService(
        session, storage, clock=deterministic_clock, dashboard_limit=5,
    )


# =============================================================================
# Actors and staff
# =============================================================================


@pytest.fixture
def make_actor(store):
    """
    Create an Actor holding ``roles``, with a staff record for each staff
    role unless ``with_staff=False``.
    """

    def _make(*roles: Role, with_staff: bool = True, name: str = "Test") -> Actor:
        user_id = uuid4()
        if with_staff:
            for role in roles:
                if role is Role.ADMIN:
                    continue
                store.add_staff(StaffRecord(
                    staff_id=uuid4(),
                    user_id=user_id,
                    role=role,
                    first_name=name,
                    last_name=role.value,
                    email=f"{user_id.hex[:8]}@example.edu",
                ))
        return Actor(user_id=user_id, roles=frozenset(roles))

    return _make


@pytest.fixture
def lecturer(make_actor) -> Actor:
    return make_actor(Role.LECTURER, name="Owner")


@pytest.fixture
def other_lecturer(make_actor) -> Actor:
    return make_actor(Role.LECTURER, name="Other")


@pytest.fixture
def coordinator(make_actor) -> Actor:
    return make_actor(Role.PROGRAMME_COORDINATOR)


@pytest.fixture
def manager(make_actor) -> Actor:
    return make_actor(Role.ACADEMIC_MANAGER)


@pytest.fixture
def staff_id(store):
    """Look up the staff id recorded for an actor acting as ``role``."""

    def _lookup(actor: Actor, role: Role):
        return store.get_staff(role, actor.user_id).staff_id

    return _lookup


# =============================================================================
# Claims
# =============================================================================


@pytest.fixture
def payload() -> ClaimPayload:
    return make_payload()


@pytest.fixture
def claim_in_status(workflow, lecturer, coordinator, manager, deterministic_clock):
    """
    Drive a fresh claim owned by ``lecturer`` into ``status`` through the
    workflow service and return the final snapshot.
    """

    def _drive(status: ClaimStatus, owner: Actor | None = None):
        claim = workflow.submit_claim(owner or lecturer, make_payload())
        if status is ClaimStatus.PENDING:
            return claim

        deterministic_clock.advance(60)
        if status is ClaimStatus.REJECTED:
            return workflow.coordinator_decide(
                coordinator, claim.claim_id, False, "Missing timesheet",
            )
        claim = workflow.coordinator_decide(
            coordinator, claim.claim_id, True, "Hours verified",
        )
        if status is ClaimStatus.APPROVED_BY_COORDINATOR:
            return claim

        deterministic_clock.advance(60)
        outcome = {
            ClaimStatus.FULLY_APPROVED: ManagerOutcome.APPROVE,
            ClaimStatus.RETURNED_TO_COORDINATOR: ManagerOutcome.RETURN,
            ClaimStatus.REJECTED_BY_MANAGER: ManagerOutcome.REJECT,
        }[status]
        return workflow.manager_decide(
            manager, claim.claim_id, outcome, f"Manager {outcome.value}",
        )

    return _drive
