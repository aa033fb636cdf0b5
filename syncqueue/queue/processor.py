"""Single-attempt state machine for queue items."""
import inspect
from typing import Any, Awaitable, Callable, Union

from syncqueue.logging_conf import logger
from syncqueue.queue.models import HandlerResult, ProcessResult, QueueItem, SyncAction

SyncActionHandler = Callable[[SyncAction], Union[Awaitable[Any], Any]]


class ItemProcessor:
    """Applies one handler call to one item and computes its next state.

    PENDING -> SYNCED on success, PENDING -> PENDING on a failure with attempts
    left, PENDING -> FAILED once attempts reach ``max_attempts``. Skipped
    actions come back unchanged.
    """

    async def process(self, item: QueueItem, handler: SyncActionHandler) -> ProcessResult:
        try:
            result = handler(item.action)
            if inspect.isawaitable(result):
                result = await result
            result = HandlerResult.coerce(result)
        except Exception as e:
            logger.warning(
                f"Handler raised for {item.action.type}:{item.id}: {e}",
                extra={"action_type": item.action.type, "item_id": item.id}
            )
            result = HandlerResult(success=False, error=str(e) or type(e).__name__)

        if result.skipped:
            return ProcessResult(success=True, item=item, skipped=True)

        if result.success:
            logger.info(
                f"Synced {item.action.type}:{item.id}",
                extra={"action_type": item.action.type, "item_id": item.id}
            )
            return ProcessResult(success=True, item=item.with_success())

        updated = item.with_failure(result.error)
        logger.warning(
            f"Sync failed for {item.action.type}:{item.id} "
            f"(attempt {updated.attempts}/{updated.max_attempts}, {updated.status.value}): {result.error}",
            extra={"action_type": item.action.type, "item_id": item.id}
        )
        return ProcessResult(success=False, item=updated, error=result.error)
