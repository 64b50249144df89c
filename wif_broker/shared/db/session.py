import time
import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = structlog.get_logger()

SLOW_QUERY_THRESHOLD_SECONDS = 0.2


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build the async engine for the key-value store.
    SQLite gets a static pool for in-memory databases so every session sees
    the same data; other backends use a small pool with pre-ping.
    """
    engine_args = {"echo": echo}
    if "sqlite" in database_url:
        from sqlalchemy.pool import StaticPool, NullPool
        engine_args["connect_args"] = {"check_same_thread": False}
        engine_args["poolclass"] = StaticPool if ":memory:" in database_url else NullPool
    else:
        engine_args["pool_pre_ping"] = True
        engine_args["pool_recycle"] = 300

    engine = create_async_engine(database_url, **engine_args)
    _attach_slow_query_logging(engine)
    return engine


def _attach_slow_query_logging(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, _context, _executemany):
        total = time.perf_counter() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD_SECONDS:
            # Parameters may contain key material, never log them
            logger.warning(
                "slow_query_detected",
                duration_seconds=round(total, 3),
                statement=statement[:200] + "..." if len(statement) > 200 else statement,
            )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
