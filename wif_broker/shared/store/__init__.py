from wif_broker.shared.store.base import KeyValueStore
from wif_broker.shared.store.memory import InMemoryStore
from wif_broker.shared.store.sql import SQLStore
from wif_broker.shared.core.config import Settings, get_settings


def load_store(settings: Settings | None = None) -> KeyValueStore:
    """
    Factory resolver for the runtime store backend.

        - sql (default)
        - memory
    """
    settings = settings or get_settings()
    provider = settings.STORE_PROVIDER

    if provider == "memory":
        return InMemoryStore()

    if provider == "sql":
        return SQLStore.from_url(settings.DATABASE_URL, echo=settings.DEBUG)

    raise ValueError(f"Unknown store provider: {provider}")


__all__ = [
    "KeyValueStore",
    "InMemoryStore",
    "SQLStore",
    "load_store",
]
