from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol


class KeyValueStore(Protocol):
    """
    Installation-scoped key-value store.

    Contract:
    - `get`/`get_many` return None for missing keys (get_many keeps input order).
    - `set_many` is all-or-nothing: readers observe either every entry of the
      batch or none of them. Key pair persistence relies on this.
    - Values are JSON-serializable.
    """

    async def get(self, key: str) -> Optional[Any]: ...

    async def get_many(self, keys: Iterable[str]) -> List[Optional[Any]]: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def set_many(self, entries: Mapping[str, Any]) -> None: ...


def normalize_keys(keys: Iterable[Any]) -> List[str]:
    """Accept plain strings or str-valued enums (KVKey)."""
    return [getattr(k, "value", k) for k in keys]


def normalize_entries(entries: Mapping[Any, Any]) -> Dict[str, Any]:
    return {getattr(k, "value", k): v for k, v in entries.items()}
