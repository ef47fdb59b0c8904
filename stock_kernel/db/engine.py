"""
Module: stock_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the stock kernel.
Architecture position: Kernel > DB.  May import from db/base.py and db/triggers.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables/drop_tables which import models and triggers).

Invariants enforced:
    - PostgreSQL is the production backend.  Write transactions run at
      READ COMMITTED with explicit row-level locking (SELECT ... FOR UPDATE)
      on the inventory item being mutated.
    - Read models run inside snapshot_scope(): REPEATABLE READ on PostgreSQL,
      so item rows and the movement window come from one snapshot.
    - SQLite (tests, local runs) has no row locks.  Every transaction is
      opened with BEGIN IMMEDIATE, which takes the database write lock up
      front and therefore serializes writers the same way.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - OperationalError ("database is locked") on SQLite if the busy timeout
      elapses; the ledger service treats it as a retryable conflict.
"""

import atexit
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_locking(engine: Engine, busy_timeout_ms: int) -> None:
    """Take over SQLite transaction control so BEGIN IMMEDIATE can be issued."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's implicit BEGIN; we emit our own.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout_ms: int = 30000,
) -> Engine:
    """
    Create an engine for PostgreSQL or SQLite without touching module state.

    Preconditions: database_url is a postgresql:// or sqlite:// URL.
    Postconditions: Returned engine enforces the kernel's transaction
        semantics for its dialect (see module docstring).
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=NullPool,
            connect_args={
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout_ms / 1000,
            },
        )
        _install_sqlite_locking(engine, sqlite_busy_timeout_ms)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory with the kernel's settings (no expiry on commit)."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Preconditions: database_url is a valid PostgreSQL or SQLite URL.
        A second call overwrites the first.
    Postconditions: get_engine/get_session use this engine.
    """
    global _engine, _SessionFactory

    _engine = build_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )
    _SessionFactory = make_session_factory(_engine)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope() as session:
            session.add(entity)
    """
    factory = session_factory or get_session_factory()
    session = factory()
    logger.debug("transaction_started")
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


@contextmanager
def snapshot_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Read-only transaction over a single consistent snapshot.

    Postconditions: The transaction is always rolled back; nothing written
        inside it persists.
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        if session.get_bind().dialect.name == "postgresql":
            session.connection(
                execution_options={"isolation_level": "REPEATABLE READ"}
            )
        yield session
    finally:
        session.rollback()
        session.close()


def create_tables(engine: Engine | None = None, install_triggers: bool = True) -> None:
    """
    Create all tables defined in the models and optionally install triggers.

    Postconditions: All tables exist.  On PostgreSQL with
        install_triggers=True the ledger protection triggers are installed.
    """
    from stock_kernel.db.base import Base
    from stock_kernel.models import import_all_models

    engine = engine or get_engine()
    import_all_models()
    Base.metadata.create_all(engine)

    if install_triggers and engine.dialect.name == "postgresql":
        from stock_kernel.db.triggers import install_ledger_triggers

        install_ledger_triggers(engine)


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from stock_kernel.db.base import Base
    from stock_kernel.models import import_all_models

    engine = engine or get_engine()
    if engine.dialect.name == "postgresql":
        from stock_kernel.db.triggers import uninstall_ledger_triggers

        uninstall_ledger_triggers(engine)
    import_all_models()
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Reset the engine and session factory.  Useful for test cleanup."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose() -> None:
    """Dispose the engine on process exit to release pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
