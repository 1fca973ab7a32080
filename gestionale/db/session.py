import logging
import socket
from contextlib import closing

from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from gestionale.core.config import settings

logger = logging.getLogger(__name__)

_engine = None


def _report_connection_failure(exc: Exception) -> None:
    """Log high-signal diagnostics when the application cannot reach Postgres."""
    logger.warning("Could not connect to database: %s", exc)
    logger.warning("The application will start but database operations will fail until the connection succeeds.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        logger.warning("Unable to parse DATABASE_URL (%s); skipping detailed diagnostics.", parse_error)
        return

    if url.get_backend_name() == "sqlite":
        return

    host = url.host or "localhost"
    port = url.port or 5432
    logger.warning(
        "Database connection settings: dialect=%s host=%s port=%s database=%s user=%s",
        url.get_backend_name(),
        host,
        port,
        url.database,
        url.username,
    )

    try:
        with closing(socket.create_connection((host, port), timeout=2)):
            logger.warning("Socket check: able to reach %s:%s", host, port)
    except OSError as socket_err:
        logger.warning("Socket check: unable to reach %s:%s (%s)", host, port, socket_err)


def _is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _create_engine(database_url: str):
    if not _is_sqlite(database_url):
        return create_engine(database_url, pool_pre_ping=True)

    # SQLite connections are shared between the request thread and background jobs
    return create_engine(database_url, connect_args={"check_same_thread": False})


def get_engine():
    global _engine
    if _engine is None:
        try:
            _engine = _create_engine(settings.database_url)
            # Test connection eagerly so failures surface immediately.
            with _engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            _report_connection_failure(e)
            # Create the engine anyway so callers can proceed (may still fail later).
            _engine = _create_engine(settings.database_url)
    return _engine


# Don't create engine at import time
SessionLocal = None

Base = declarative_base()


def get_session_local():
    global SessionLocal
    if SessionLocal is None:
        engine = get_engine()
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal


def get_db():
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create every ORM table that does not exist yet."""
    # Model modules register themselves on Base.metadata when imported
    from gestionale.core import security  # noqa: F401
    from gestionale.db import models  # noqa: F401
    from gestionale.domain import jobs  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
