"""Consumer facade: submit online or queue offline, then reconcile on reconnect."""
import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Union

from syncqueue.connectivity import ConnectivityMonitor
from syncqueue.errors import InvalidActionError
from syncqueue.logging_conf import logger
from syncqueue.queue.manager import QueueManager
from syncqueue.queue.models import (
    HandlerResult,
    ProcessResult,
    QueueItem,
    SubmissionResult,
    SyncAction,
)
from syncqueue.queue.processor import SyncActionHandler

OnlineSubmit = Callable[[Any], Any]


@dataclass(frozen=True)
class SyncState:
    """What a UI needs to render queued / syncing / synced / failed."""

    is_offline: bool
    queue_length: int
    pending_count: int
    is_processing: bool
    last_sync_attempt: Optional[float]


StateListener = Callable[[SyncState], None]


class SubmissionOrchestrator:
    """Owns one action type on a (possibly shared) queue.

    ``online_submit(value)`` performs the remote call and returns a
    HandlerResult or a ``{"success": ..., "error": ...}`` mapping; it may be
    a coroutine function. Items of other action types on the same queue are
    reported as skipped by this orchestrator's handler and left untouched.
    """

    def __init__(
        self,
        queue: QueueManager,
        monitor: ConnectivityMonitor,
        action_type: str,
        online_submit: OnlineSubmit,
        on_success: Optional[Callable[[], None]] = None,
        on_queued: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_synced: Optional[Callable[[], None]] = None,
        on_sync_error: Optional[Callable[[str], None]] = None,
    ):
        if not isinstance(action_type, str) or not action_type:
            raise InvalidActionError("action_type must be a non-empty string")

        self.manager = queue
        self.monitor = monitor
        self.action_type = action_type
        self.online_submit = online_submit
        self.on_success = on_success
        self.on_queued = on_queued
        self.on_error = on_error
        self.on_synced = on_synced
        self.on_sync_error = on_sync_error

        self.last_sync_attempt: Optional[float] = None
        self._was_offline = monitor.is_offline()
        self._auto_syncing = False
        self._sync_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._listeners: List[StateListener] = []
        self._unsubscribers: List[Callable[[], None]] = []

    # Lifecycle

    async def start(self) -> None:
        """Load the queue if needed and begin watching connectivity."""
        self._loop = asyncio.get_running_loop()
        if not self.manager.is_initialized:
            await self.manager.initialize()

        self._was_offline = self.monitor.is_offline()
        self._unsubscribers = [
            self.monitor.subscribe(self._on_connectivity_change),
            self.manager.subscribe(lambda _snapshot: self._notify()),
        ]
        logger.info(f"Orchestrator for {self.action_type} started ({'offline' if self._was_offline else 'online'})")

        if not self._was_offline:
            self._start_sync_task()

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def wait_for_sync(self) -> None:
        """Wait for an automatic sweep that is in flight, if any."""
        if self._sync_task is not None and not self._sync_task.done():
            await self._sync_task

    # Reactive reads

    @property
    def is_offline(self) -> bool:
        return self.monitor.is_offline()

    @property
    def queue(self) -> List[QueueItem]:
        return self.manager.get_queue()

    @property
    def queue_length(self) -> int:
        return self.manager.get_queue_length()

    @property
    def pending_count(self) -> int:
        return self.manager.get_pending_count()

    @property
    def is_processing(self) -> bool:
        return self.manager.is_processing or self._auto_syncing

    def state(self) -> SyncState:
        return SyncState(
            is_offline=self.is_offline,
            queue_length=self.queue_length,
            pending_count=self.pending_count,
            is_processing=self.is_processing,
            last_sync_attempt=self.last_sync_attempt,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register for SyncState updates; returns a function that unregisters it.

        Connectivity changes reported by a polling thread reach listeners on
        that thread.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Consumer API

    async def submit(self, value: Mapping[str, Any]) -> SubmissionResult:
        """Send ``value`` now when online, otherwise queue it. Never raises for operational failures."""
        if self.monitor.is_offline():
            try:
                item = await self.manager.add({"type": self.action_type, "payload": value})
            except InvalidActionError as e:
                self._fire(self.on_error, str(e))
                return SubmissionResult(success=False, error=str(e))

            self._fire(self.on_queued)
            return SubmissionResult(success=True, queued=True, queue_item_id=item.id)

        try:
            result = await self._call_online_submit(value)
        except Exception as e:
            message = str(e) or "Submission failed"
            logger.error(f"Online submit of {self.action_type} failed: {message}")
            self._fire(self.on_error, message)
            return SubmissionResult(success=False, error=message, queued=False)

        if result.success:
            self._fire(self.on_success)
        elif result.error:
            self._fire(self.on_error, result.error)
        return SubmissionResult(success=result.success, error=result.error, queued=False)

    async def add_action(self, action: Union[SyncAction, Mapping[str, Any]]) -> QueueItem:
        return await self.manager.add(action)

    async def remove_action(self, item_id: str) -> bool:
        return await self.manager.remove(item_id)

    async def process_queue(self, handler: SyncActionHandler) -> List[ProcessResult]:
        return await self.manager.process_all(handler)

    # Reconciliation

    async def _handle_queued_action(self, action: SyncAction) -> HandlerResult:
        if action.type != self.action_type:
            return HandlerResult(success=True, skipped=True)
        return await self._call_online_submit(dict(action.payload))

    async def _call_online_submit(self, value: Any) -> HandlerResult:
        result = self.online_submit(value)
        if inspect.isawaitable(result):
            result = await result
        return HandlerResult.coerce(result)

    def _on_connectivity_change(self, offline: bool) -> None:
        was_offline = self._was_offline
        self._was_offline = offline
        self._notify()

        if offline or not was_offline:
            return
        if self._loop is None or self._loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._start_sync_task()
        else:
            self._loop.call_soon_threadsafe(self._start_sync_task)

    def _start_sync_task(self) -> None:
        if self._auto_syncing or self.manager.get_pending_count() == 0:
            return
        self._auto_syncing = True
        self.last_sync_attempt = time.time()
        self._sync_task = self._loop.create_task(self._auto_sync())

    async def _auto_sync(self) -> None:
        self._notify()
        try:
            # Another orchestrator may be sweeping the shared queue
            while self.manager.is_processing:
                await self.manager.wait_until_idle()
            results = await self.manager.process_all(self._handle_queued_action)
        finally:
            self._auto_syncing = False
            self._notify()

        own = [result for result in results if not result.skipped]
        failed = [result for result in own if not result.success]
        for result in own:
            if result.success:
                self._fire(self.on_synced)
            else:
                self._fire(self.on_sync_error, result.error or "Sync failed")
        if failed:
            logger.warning(f"{len(failed)} {self.action_type} action(s) could not be synced")

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    @staticmethod
    def _fire(callback: Optional[Callable[..., None]], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Callback {getattr(callback, '__name__', callback)} failed: {e}", exc_info=True)
