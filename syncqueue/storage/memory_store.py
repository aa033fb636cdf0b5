"""In-process store for queue-less mode and tests."""
import copy
from typing import Any, Dict, Optional

from syncqueue.storage.base import DurableStore


class MemoryStore(DurableStore):
    """Dict-backed store. Values are copied so callers never share state with it."""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data
