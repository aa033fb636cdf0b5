"""Exceptions raised for programmer misuse of the queue.

Operational failures (network, storage, connectivity) never raise; they are
reported through result objects and queue item state.
"""


class SyncQueueError(Exception):
    """Base class for syncqueue errors."""


class QueueNotInitializedError(SyncQueueError):
    """A queue was mutated before ``initialize()`` completed."""


class InvalidActionError(SyncQueueError, ValueError):
    """An action is missing its type or has a non-mapping payload."""
