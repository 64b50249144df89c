import copy
from typing import Any, Iterable, List, Mapping, Optional

from wif_broker.shared.store.base import normalize_entries, normalize_keys


class InMemoryStore:
    """Process-local store. Used in tests and for throwaway local runs."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data = normalize_entries(initial or {})

    async def get(self, key: str) -> Optional[Any]:
        key = normalize_keys([key])[0]
        return copy.deepcopy(self._data.get(key))

    async def get_many(self, keys: Iterable[str]) -> List[Optional[Any]]:
        return [copy.deepcopy(self._data.get(k)) for k in normalize_keys(keys)]

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, entries: Mapping[str, Any]) -> None:
        # Copy-and-swap keeps the batch atomic for concurrent readers
        updated = dict(self._data)
        updated.update(copy.deepcopy(normalize_entries(entries)))
        self._data = updated

    def snapshot(self) -> dict:
        return copy.deepcopy(self._data)
