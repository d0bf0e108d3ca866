import time
from typing import Any, Dict

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.shared.core.config import get_settings

logger = structlog.get_logger()
settings = get_settings()

LOCAL_DATABASE_URL = "sqlite+aiosqlite:///./cloudshift.db"
MEMORY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
SLOW_QUERY_THRESHOLD_SECONDS = 0.2


def resolve_database_url() -> str:
    """Configured URL; local SQLite when unset, in-memory SQLite under tests."""
    url = settings.DATABASE_URL or LOCAL_DATABASE_URL
    if settings.TESTING and not url.startswith("sqlite"):
        return MEMORY_DATABASE_URL
    if not settings.DATABASE_URL:
        logger.warning("database_url_missing_using_sqlite", url=url)
    return url


def engine_options(url: str) -> Dict[str, Any]:
    if settings.TESTING or url.startswith("sqlite"):
        return {"poolclass": NullPool}
    # Postgres: sized pool, recycled for pgbouncer-style proxies
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": 300,
    }


database_url = resolve_database_url()
engine = create_async_engine(
    database_url,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    **engine_options(database_url),
)


@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _start_query_timer(conn, _cursor, _statement, _parameters, _context, _executemany):
    conn.info.setdefault("query_started_at", []).append(time.perf_counter())


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _log_slow_query(conn, _cursor, statement, parameters, _context, _executemany):
    elapsed = time.perf_counter() - conn.info["query_started_at"].pop()
    if elapsed <= SLOW_QUERY_THRESHOLD_SECONDS:
        return
    logger.warning(
        "slow_query_detected",
        duration_seconds=round(elapsed, 3),
        statement=statement if len(statement) <= 200 else f"{statement[:200]}...",
        parameter_count=len(parameters) if parameters else 0,
    )


async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Creates every table. Used by the scripts and local development."""
    from app.shared.db.base import Base
    import app.models.billing  # noqa: F401
    import app.models.modeling  # noqa: F401
    import app.models.pricing  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", url=database_url.split("@")[-1])
