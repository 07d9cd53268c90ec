from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings


def create_db_engine(url: str, timeout: float = None):
    """
    Create an engine for the link store.

    For SQLite the connect timeout bounds how long a store call may wait
    on a locked database before failing.
    """
    if timeout is None:
        timeout = settings.STORE_TIMEOUT_SECONDS

    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": timeout
        }

    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)

    if url.startswith("sqlite"):
        # Enable WAL mode and foreign keys for SQLite
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return engine


engine = create_db_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def _apply_timeout(db, timeout):
    """Bound lock and statement waits of this session; returns an undo callable."""
    dialect = db.get_bind().dialect.name
    milliseconds = max(1, int(timeout * 1000))

    if dialect == "sqlite":
        previous = db.execute(text("PRAGMA busy_timeout")).scalar()
        db.execute(text(f"PRAGMA busy_timeout = {milliseconds}"))
        return lambda: db.execute(text(f"PRAGMA busy_timeout = {int(previous)}"))
    if dialect == "postgresql":
        # SET LOCAL ends with the transaction
        db.execute(text(f"SET LOCAL statement_timeout = {milliseconds}"))
    return None


@contextmanager
def session_scope(session_factory=SessionLocal, timeout: float = None):
    """
    Transactional scope: commit on success, roll back on any error.

    With a timeout, store waits inside the scope are bounded by it
    instead of the engine-wide connect timeout.
    """
    db = session_factory()
    undo = None
    try:
        if timeout is not None:
            undo = _apply_timeout(db, timeout)
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        try:
            if undo is not None:
                undo()
        finally:
            db.close()
