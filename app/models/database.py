"""Engine, session factory and declarative base.

PostgreSQL is the production database: coupon allocation and session
updates rely on its row locks. SQLite works for local runs and tests, with
foreign keys switched on so cascades behave the same way.
"""

from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import get_settings


class Base(DeclarativeBase):
    """Declarative base shared by every table of the survey."""
    pass


def build_engine(database_url: str) -> Engine:
    """Create an engine for a database URL.

    Pool sizing only applies to server databases; SQLite connections get
    ``PRAGMA foreign_keys=ON``.
    """
    settings = get_settings()
    kwargs = {"pool_pre_ping": True, "echo": settings.sql_echo}

    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow

    new_engine = create_engine(database_url, **kwargs)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(get_settings().database_url)

# Objects stay usable after commit; routes serialize them after the last commit
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def init_db() -> None:
    """Create any missing tables from model metadata."""
    import app.models  # noqa: F401  registers every table

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request, such as startup seeding."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency providing one session per request.

    Example:
        @router.get("/api/admin/conventions")
        async def conventions(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
