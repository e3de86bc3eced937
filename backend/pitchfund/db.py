from collections.abc import Generator, Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings


def _psycopg_supports_cache_flag(version_str: str) -> bool:
    """Return True if psycopg accepts the prepared_statement_cache_size option."""

    parts: list[int] = []
    for token in version_str.split("."):
        digits = ""
        for char in token:
            if char.isdigit():
                digits += char
            else:
                break
        if not digits:
            break
        parts.append(int(digits))
        if len(parts) >= 3:
            break
    if not parts:
        return False
    return tuple(parts) < (3, 2)


def _ensure_sqlite_path(url: str) -> None:
    if not url.startswith("sqlite"):
        return

    parsed = make_url(url)
    database = parsed.database
    if not database or database == ":memory:":
        return

    path = Path(database)
    path.parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _create_engine(url: str):
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {
        "echo": settings.debug,
        "future": True,
        "pool_pre_ping": True,
    }

    parsed = make_url(url)
    backend = parsed.get_backend_name()
    driver = parsed.get_driver_name()

    if backend == "sqlite":
        connect_args["check_same_thread"] = False
        _ensure_sqlite_path(url)
    else:
        # Supabase/PgBouncer drop idle connections; recycle before they do.
        engine_kwargs["pool_recycle"] = 300

        if backend.startswith("postgresql"):
            connect_args.setdefault("keepalives", 1)
            connect_args.setdefault("keepalives_idle", 120)
            connect_args.setdefault("keepalives_interval", 30)
            connect_args.setdefault("keepalives_count", 5)
            # PgBouncer's transaction pooler rejects PREPARE.
            if driver == "psycopg":
                connect_args.setdefault("prepare_threshold", None)

                try:  # psycopg<3.2 accepted prepared_statement_cache_size
                    import psycopg  # type: ignore[import]
                except ImportError:  # pragma: no cover - psycopg always available in prod
                    pass
                else:
                    if _psycopg_supports_cache_flag(psycopg.__version__):
                        connect_args.setdefault("prepared_statement_cache_size", 0)

    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    created = create_engine(url, **engine_kwargs)
    if backend == "sqlite":
        event.listen(created, "connect", _enable_sqlite_foreign_keys)
    return created


def _create_session_factory(engine) -> sessionmaker[Session]:
    # Services commit per unit of work; instances reload on next access.
    return sessionmaker(bind=engine, autoflush=True, autocommit=False, future=True)


def _build_db_components(url: str):
    engine = _create_engine(url)
    session_factory = _create_session_factory(engine)
    return engine, session_factory


engine, SessionLocal = _build_db_components(settings.resolved_database_url)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
