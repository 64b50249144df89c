from typing import Any, Iterable, List, Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from wif_broker.models.kv_entry import KVEntry
from wif_broker.shared.db.base import Base
from wif_broker.shared.db.session import create_engine, create_session_maker
from wif_broker.shared.store.base import normalize_entries, normalize_keys

logger = structlog.get_logger()


class SQLStore:
    """
    Key-value store on a SQL database via SQLAlchemy async.

    `set_many` writes every entry inside one transaction, so a batch is
    committed entirely or rolled back entirely.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], engine: Optional[AsyncEngine] = None):
        self.session_maker = session_maker
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLStore":
        engine = create_engine(database_url, echo=echo)
        return cls(create_session_maker(engine), engine=engine)

    async def init_schema(self) -> None:
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("kv_store_schema_ready")

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def get(self, key: str) -> Optional[Any]:
        return (await self.get_many([key]))[0]

    async def get_many(self, keys: Iterable[str]) -> List[Optional[Any]]:
        keys = normalize_keys(keys)
        async with self.session_maker() as session:
            result = await session.execute(select(KVEntry.key, KVEntry.value).where(KVEntry.key.in_(keys)))
            found = {row.key: row.value for row in result}
        return [found.get(k) for k in keys]

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, entries: Mapping[str, Any]) -> None:
        entries = normalize_entries(entries)
        async with self.session_maker() as session:
            async with session.begin():
                existing = await session.execute(select(KVEntry).where(KVEntry.key.in_(list(entries))))
                rows = {row.key: row for row in existing.scalars()}
                for key, value in entries.items():
                    if key in rows:
                        rows[key].value = value
                    else:
                        session.add(KVEntry(key=key, value=value))
