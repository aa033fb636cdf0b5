"""JSON file store: one document per key in a directory."""
import asyncio
import hashlib
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from syncqueue.logging_conf import logger
from syncqueue.storage.base import DurableStore


class FileStore(DurableStore):
    """Stores each key as ``<directory>/<safe-key>.json``.

    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace``, so a crash leaves either the old or the new document.
    """

    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as e:
            self._degrade("get", key, e)
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except (OSError, TypeError, ValueError) as e:
            self._degrade("set", key, e)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._path(key).unlink, missing_ok=True)
        except OSError as e:
            self._degrade("delete", key, e)

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._safe_key(key)}.json"

    def _safe_key(self, key: str) -> str:
        """Make a safe, collision-free filename from a storage key."""
        stem = re.sub(r"[^A-Za-z0-9._-]", "_", key)[:100]
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        return f"{stem}-{digest}"

    def _read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def _write(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        data = json.dumps(value, indent=2)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {key} to {path}")
