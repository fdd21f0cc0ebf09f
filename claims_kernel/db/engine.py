"""
Engine and session lifecycle for the claims database.

Responsibility:
    Owns the one process-wide engine and session factory, and
    ``session_scope()``, the unit-of-work boundary every workflow call runs
    inside.

Architecture position:
    Kernel > DB.  Callers (scripts, a delivery layer, tests) pass in the URL
    and pool settings from ``claims_config``; this module never reads
    configuration itself.

Invariants enforced:
    - Sessions keep loaded claim snapshots usable after commit
      (``expire_on_commit=False``); the claim ``version`` column, not a
      reload, detects concurrent writers.
    - PostgreSQL connections run at READ COMMITTED.  Two reviewers deciding
      the same claim are separated by the optimistic version check.

Failure modes:
    - RuntimeError: any accessor used before ``init_engine_from_url()``.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from claims_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
) -> Engine:
    """
    Create the engine and session factory, replacing any earlier ones.

    Pool settings apply to server databases only; SQLite keeps the
    driver's default pool.
    """
    global _engine, _SessionFactory
    reset_engine()

    url = make_url(database_url)
    options: dict = {"echo": echo}
    if url.get_backend_name() != "sqlite":
        options.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    _engine = create_engine(url, **options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for independent sessions, one per concurrent caller."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One workflow unit of work: commit on success, roll back and re-raise
    on any error, always close.

    A claim change, its documents and its audit events are flushed by the
    services inside the block and become durable together here.

    Usage:
        with session_scope() as session:
            workflow = ClaimWorkflowService(session, storage)
            workflow.coordinator_decide(actor, claim_id, True, "Hours verified")
    """
    session = get_session()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _schema() -> MetaData:
    from claims_kernel.db.base import Base
    import claims_kernel.models  # noqa: F401  (claims, documents, staff, audit)
    import claims_kernel.services.sequence_service  # noqa: F401  (counter table)

    return Base.metadata


def create_tables() -> None:
    """Create the claims schema (idempotent)."""
    metadata = _schema()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables() -> None:
    """Drop the claims schema.  Used by ``init_db --drop`` and tests."""
    _schema().drop_all(get_engine())
    logger.info("tables_dropped")


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
