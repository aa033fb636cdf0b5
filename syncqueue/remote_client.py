"""HTTP client that delivers queued actions to the remote backend."""
import asyncio
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import requests

from syncqueue.logging_conf import logger
from syncqueue.queue.models import HandlerResult, SyncAction

MAX_RETRIES = 3
DEFAULT_RETRY_AFTER = 60
MAX_RETRY_AFTER = 300


class RemoteSyncClient:
    """POSTs actions as JSON to ``{base_url}/actions``."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    async def handle(self, action: SyncAction) -> HandlerResult:
        """Queue handler: delivers ``action`` without blocking the event loop."""
        return await asyncio.to_thread(self.send, action)

    def send(self, action: SyncAction) -> HandlerResult:
        """
        Deliver one action.

        Args:
            action: The action to replay

        Returns:
            HandlerResult with success=False and the reason when the backend
            rejects the action or stays unreachable after retries
        """
        return self._post(action.to_dict())

    def close(self):
        self.session.close()

    def _post(self, body: dict, retry_count: int = 0) -> HandlerResult:
        """Make API request with retry logic."""
        url = f"{self.base_url}/actions"

        try:
            response = self.session.post(url, json=body, timeout=self.timeout)

            if response.status_code == 429:
                if retry_count >= MAX_RETRIES:
                    logger.warning(f"Still rate limited after {retry_count} retries; giving up on {body['type']}")
                    return HandlerResult(success=False, error="HTTP 429: rate limited")
                retry_after = self._retry_after(response.headers.get("Retry-After"))
                logger.warning(f"Rate limited. Waiting {retry_after}s...")
                time.sleep(retry_after)
                return self._post(body, retry_count + 1)

            if response.status_code >= 500 and retry_count < MAX_RETRIES:
                wait_time = 2 ** retry_count
                logger.warning(f"Server error {response.status_code}. Retrying in {wait_time}s...")
                time.sleep(wait_time)
                return self._post(body, retry_count + 1)

            if response.status_code >= 400:
                error = f"HTTP {response.status_code}: {response.text[:500]}"
                logger.error(f"Sync API rejected {body['type']}: {error}")
                return HandlerResult(success=False, error=error)

            return HandlerResult(success=True)

        except requests.exceptions.RequestException as e:
            if retry_count < MAX_RETRIES and isinstance(
                e, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
            ):
                wait_time = 2 ** retry_count
                time.sleep(wait_time)
                return self._post(body, retry_count + 1)
            logger.error(f"Sync API request failed: {e}")
            return HandlerResult(success=False, error=str(e))

    @staticmethod
    def _retry_after(value: Optional[str]) -> int:
        """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
        if not value:
            return DEFAULT_RETRY_AFTER
        try:
            return min(max(int(value), 0), MAX_RETRY_AFTER)
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        delay = int((when - datetime.now(timezone.utc)).total_seconds())
        return min(max(delay, 0), MAX_RETRY_AFTER)
