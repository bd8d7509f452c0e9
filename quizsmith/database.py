"""
Database engine and session factory.

Quota counters, generation jobs and quiz content all live in one relational
store. SQLite is used for development and tests; production runs on Postgres,
where the usage gate's conditional UPDATEs and the quiz row lock are real.
"""

import logging
import os
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

query_logger = logging.getLogger("sqlalchemy.query_timing")
query_logger.setLevel(logging.DEBUG if os.getenv("DEBUG_QUERIES") else logging.WARNING)

SLOW_QUERY_THRESHOLD_MS = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))
MAX_LOGGED_STATEMENT_CHARS = 500
MAX_LOGGED_PARAMS_CHARS = 200


def normalize_database_url(url: str) -> str:
    """SQLAlchemy only accepts the postgresql:// scheme."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request handlers and the test client share connections across threads
        return {"connect_args": {"check_same_thread": False}, "pool_pre_ping": True}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
    }


DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL", "sqlite:///./quizsmith.db"))

engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Warn about statements slower than SLOW_QUERY_THRESHOLD_MS."""
    start_times = conn.info.get("query_start_time", [])
    if not start_times:
        return

    elapsed_ms = (time.perf_counter() - start_times.pop()) * 1000
    if elapsed_ms > SLOW_QUERY_THRESHOLD_MS:
        query_logger.warning(
            "SLOW QUERY (%.2fms): %s | params=%s",
            elapsed_ms,
            _clip(statement, MAX_LOGGED_STATEMENT_CHARS),
            _clip(str(parameters), MAX_LOGGED_PARAMS_CHARS),
        )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session; closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
