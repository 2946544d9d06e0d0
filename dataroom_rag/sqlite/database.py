from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from dataroom_rag.core.config import settings
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.sqlite.database")


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable WAL so answers can be stored while history is being read."""
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
    except Exception as e:
        # WAL is unavailable on some network filesystems; continue without it
        logger.warning("Could not set SQLite pragmas: %s", e)
    finally:
        cursor.close()


def create_db_engine(url: str | None = None) -> Engine:
    url = url or settings.database_url
    if _is_sqlite(url):
        sqlite_engine = create_engine(
            url,
            connect_args={
                "check_same_thread": settings.sqlite_check_same_thread,
                "timeout": settings.sqlite_timeout,
            },
            pool_pre_ping=True,
            future=True,
        )
        event.listen(sqlite_engine, "connect", set_sqlite_pragma)
        return sqlite_engine
    return create_engine(url, pool_pre_ping=True, future=True)


engine = create_db_engine()

# Plain session factory; create a new Session per request/task
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)


@contextmanager
def get_db_context(session_factory=None):
    """Session context for background work; commits on success."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> bool:
    """
    Verify the connection and create missing tables.
    Call this during app startup.
    """
    bind = bind or engine
    try:
        from dataroom_rag.sqlite import models  # noqa: F401  (registers tables)

        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(bind=bind)
        logger.info("[OK] Database ready")
        return True
    except Exception as e:
        logger.error("[FAIL] Database initialization failed: %s", e)
        return False
