from collections.abc import Generator
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings


def _sqlite_file(url: str) -> Path | None:
    """Return the database file of a file-backed SQLite URL, else ``None``."""

    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return None
    database = parsed.database
    if not database or database == ":memory:":
        return None
    return Path(database)


def _enable_wal(engine: Engine) -> None:
    # The API and the CLI may share one cache file.
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def _create_engine(url: str) -> Engine:
    engine_kwargs: dict[str, object] = {
        "echo": settings.debug,
        "future": True,
        "pool_pre_ping": True,
    }

    is_sqlite = make_url(url).get_backend_name() == "sqlite"
    if is_sqlite:
        # Price resolution fans out over worker threads; writes are serialized
        # by the resolver, so the connection may be shared.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_recycle"] = 300

    database_file = _sqlite_file(url)
    if database_file is not None:
        database_file.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, **engine_kwargs)
    if database_file is not None:
        _enable_wal(engine)
    return engine


engine = _create_engine(str(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=True, autocommit=False, future=True)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Create the price cache table if it does not exist yet."""

    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
