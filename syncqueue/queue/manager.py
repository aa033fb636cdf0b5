"""Durable FIFO queue of sync actions."""
import asyncio
import json
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from syncqueue.connectivity import ConnectivityMonitor
from syncqueue.errors import InvalidActionError, QueueNotInitializedError
from syncqueue.logging_conf import logger
from syncqueue.queue.models import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_STORAGE_KEY,
    ItemStatus,
    ProcessResult,
    QueueItem,
    SyncAction,
)
from syncqueue.queue.processor import ItemProcessor, SyncActionHandler
from syncqueue.storage.base import DurableStore

QueueListener = Callable[[Tuple[QueueItem, ...]], None]


class QueueManager:
    """Owns the ordered list of queue items and mirrors it to a DurableStore.

    Every mutation updates memory first, then awaits the store write before
    returning. Listeners receive an immutable snapshot after each committed
    mutation, and once after each sweep.
    """

    def __init__(
        self,
        store: DurableStore,
        storage_key: str = DEFAULT_STORAGE_KEY,
        monitor: Optional[ConnectivityMonitor] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        processor: Optional[ItemProcessor] = None,
    ):
        if not storage_key:
            raise ValueError("storage_key must not be empty")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1: {max_attempts}")

        self.store = store
        self.storage_key = storage_key
        self.monitor = monitor
        self.max_attempts = max_attempts
        self.processor = processor or ItemProcessor()

        self._items: List[QueueItem] = []
        self._listeners: List[QueueListener] = []
        self._initialized = False
        self._processing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._write_lock = asyncio.Lock()

    # Reads

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_processing(self) -> bool:
        return self._processing

    def get_queue(self) -> List[QueueItem]:
        return list(self._items)

    def get_queue_length(self) -> int:
        return len(self._items)

    def get_pending_count(self) -> int:
        return sum(1 for item in self._items if item.is_pending)

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Mutations

    async def initialize(self) -> None:
        """Load persisted items once."""
        async with self._write_lock:
            if self._initialized:
                return
            stored = await self.store.get(self.storage_key)
            self._items = self._load(stored)
            self._initialized = True
        logger.info(f"Sync queue '{self.storage_key}' loaded with {len(self._items)} item(s)")
        self._notify()

    async def add(self, action: Union[SyncAction, Mapping[str, Any]]) -> QueueItem:
        self._require_initialized()
        item = QueueItem.create(self._coerce_action(action), max_attempts=self.max_attempts)
        self._items.append(item)
        async with self._write_lock:
            await self._persist()
        logger.info(
            f"Queued {item.action.type}:{item.id}",
            extra={"action_type": item.action.type, "item_id": item.id}
        )
        self._notify()
        return item

    async def remove(self, item_id: str) -> bool:
        self._require_initialized()
        index = self._index_of(item_id)
        if index is None:
            return False
        del self._items[index]
        async with self._write_lock:
            await self._persist()
        logger.info(f"Removed queue item {item_id}", extra={"item_id": item_id})
        self._notify()
        return True

    async def clear(self) -> None:
        """Drop every item and the stored document."""
        self._require_initialized()
        self._items = []
        async with self._write_lock:
            await self.store.delete(self.storage_key)
        logger.info(f"Cleared sync queue '{self.storage_key}'")
        self._notify()

    async def process_all(self, handler: SyncActionHandler) -> List[ProcessResult]:
        """Run one sweep over the items that are PENDING right now.

        Returns ``[]`` without calling the handler when offline or when a sweep
        is already running.
        """
        self._require_initialized()
        if self.monitor is not None and self.monitor.is_offline():
            logger.warning(f"Cannot process sync queue '{self.storage_key}' while offline")
            return []
        if self._processing:
            logger.info(f"Sweep of '{self.storage_key}' already in progress; skipping")
            return []

        self._processing = True
        self._idle.clear()
        results: List[ProcessResult] = []
        try:
            pending_ids = [item.id for item in self._items if item.is_pending]
            if pending_ids:
                logger.info(f"Processing {len(pending_ids)} pending item(s) in '{self.storage_key}'")
            for item_id in pending_ids:
                index = self._index_of(item_id)
                if index is None or not self._items[index].is_pending:
                    continue
                result = await self.processor.process(self._items[index], handler)
                results.append(result)
                if not result.skipped:
                    await self._apply(item_id, result)
        finally:
            self._processing = False
            self._idle.set()

        self._notify()
        return results

    async def wait_until_idle(self) -> None:
        """Return once no sweep is running."""
        await self._idle.wait()

    # Internals

    async def _apply(self, item_id: str, result: ProcessResult) -> None:
        index = self._index_of(item_id)
        if index is None:
            # Removed by the caller while its handler was running
            logger.debug(f"Queue item {item_id} vanished during sweep")
            return
        if result.item.status == ItemStatus.SYNCED:
            del self._items[index]
        else:
            self._items[index] = result.item
        async with self._write_lock:
            await self._persist()

    async def _persist(self) -> None:
        await self.store.set(self.storage_key, [item.to_dict() for item in self._items])

    def _load(self, stored: Any) -> List[QueueItem]:
        if stored is None:
            return []
        if not isinstance(stored, list):
            logger.warning(f"Ignoring stored queue '{self.storage_key}': expected a list, got {type(stored).__name__}")
            return []

        items: List[QueueItem] = []
        seen = set()
        for record in stored:
            try:
                item = QueueItem.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed queue record in '{self.storage_key}': {e}")
                continue
            if item.id in seen:
                logger.warning(f"Skipping duplicate queue item {item.id} in '{self.storage_key}'")
                continue
            seen.add(item.id)
            items.append(item)
        return items

    def _notify(self) -> None:
        snapshot = tuple(self._items)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Queue listener failed: {e}", exc_info=True)

    def _index_of(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise QueueNotInitializedError(
                f"Sync queue '{self.storage_key}' used before initialize()"
            )

    @staticmethod
    def _coerce_action(action: Union[SyncAction, Mapping[str, Any]]) -> SyncAction:
        if isinstance(action, Mapping):
            action_type = action.get("type")
            payload = action.get("payload", {})
        elif isinstance(action, SyncAction):
            action_type, payload = action.type, action.payload
        else:
            raise InvalidActionError(f"Expected SyncAction or mapping, got {type(action).__name__}")

        if not isinstance(action_type, str) or not action_type:
            raise InvalidActionError("Action type must be a non-empty string")
        if not isinstance(payload, Mapping):
            raise InvalidActionError(f"Action payload must be a mapping, got {type(payload).__name__}")
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise InvalidActionError(f"Action payload is not JSON serializable: {e}") from e
        return SyncAction(type=action_type, payload=dict(payload))
