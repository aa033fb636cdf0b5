"""Queue data models."""
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

DEFAULT_STORAGE_KEY = "syncqueue-default"
DEFAULT_MAX_ATTEMPTS = 3

# Built-in action types. Applications add their own tags by using new strings,
# e.g. "BOOK_LESSON"; the queue only ever compares tags for equality.
FORM_SUBMIT = "FORM_SUBMIT"
FORM_UPDATE = "FORM_UPDATE"
FORM_DELETE = "FORM_DELETE"


class ItemStatus(str, Enum):
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SyncAction:
    """An operation to replay against the remote backend."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "payload": dict(self.payload)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SyncAction":
        return cls(type=data["type"], payload=dict(data.get("payload") or {}))


@dataclass(frozen=True)
class QueueItem:
    """A persisted SyncAction plus its retry bookkeeping."""

    id: str
    action: SyncAction
    created_at: float
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None

    @classmethod
    def create(cls, action: SyncAction, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> "QueueItem":
        """Factory method to create a fresh PENDING item."""
        return cls(
            id=uuid.uuid4().hex,
            action=action,
            created_at=time.time(),
            max_attempts=max_attempts,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == ItemStatus.PENDING

    def with_failure(self, error: Optional[str]) -> "QueueItem":
        attempts = self.attempts + 1
        status = ItemStatus.FAILED if attempts >= self.max_attempts else ItemStatus.PENDING
        return replace(self, attempts=attempts, status=status, error=error)

    def with_success(self) -> "QueueItem":
        return replace(self, status=ItemStatus.SYNCED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.to_dict(),
            "created_at": self.created_at,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QueueItem":
        """Rebuild an item from its stored form. Raises KeyError/ValueError on bad records."""
        return cls(
            id=str(data["id"]),
            action=SyncAction.from_dict(data["action"]),
            created_at=float(data["created_at"]),
            attempts=int(data.get("attempts", 0)),
            max_attempts=int(data.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            status=ItemStatus(data.get("status", ItemStatus.PENDING.value)),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one remote call made on behalf of a queue item.

    ``skipped`` marks an action the handler does not own; the item is left
    exactly as it was.
    """

    success: bool
    error: Optional[str] = None
    skipped: bool = False

    @classmethod
    def coerce(cls, value: Union["HandlerResult", Mapping[str, Any]]) -> "HandlerResult":
        if isinstance(value, HandlerResult):
            return value
        if isinstance(value, Mapping):
            return cls(
                success=bool(value.get("success")),
                error=value.get("error"),
                skipped=bool(value.get("skipped", False)),
            )
        raise TypeError(f"Handler returned {type(value).__name__}, expected HandlerResult or mapping")


@dataclass(frozen=True)
class ProcessResult:
    """Result of visiting one item during a sweep."""

    success: bool
    item: Optional[QueueItem] = None
    error: Optional[str] = None
    skipped: bool = False


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    error: Optional[str] = None
    queued: Optional[bool] = None
    queue_item_id: Optional[str] = None
