"""PostgreSQL-backed store: one JSONB row per key."""
import asyncio
import threading
from contextlib import contextmanager
from typing import Any, Optional

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from syncqueue.logging_conf import logger
from syncqueue.storage.base import DurableStore


class PostgresStore(DurableStore):
    """Key-value rows in a single table, created on first use."""

    def __init__(self, dsn: str, table: str = "sync_queue_store"):
        super().__init__()
        self.dsn = dsn
        self.table = table
        self._conn = None
        self._table_ready = False
        self._lock = threading.Lock()

    @property
    def conn(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(self.dsn)
            self._table_ready = False
        return self._conn

    @contextmanager
    def cursor(self):
        """Context manager for cursor with auto-commit/rollback."""
        with self._lock:
            conn = self.conn
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                if not self._table_ready:
                    self._create_table(cur)
                yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()

    def _create_table(self, cur) -> None:
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {} (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """).format(sql.Identifier(self.table)))
        self._table_ready = True
        logger.debug(f"Ensured table {self.table}")

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self._get, key)
        except psycopg2.Error as e:
            self._degrade("get", key, e)
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._set, key, value)
        except (psycopg2.Error, TypeError) as e:
            self._degrade("set", key, e)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except psycopg2.Error as e:
            self._degrade("delete", key, e)

    async def close(self) -> None:
        """Close database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()
        self._conn = None

    def _get(self, key: str) -> Optional[Any]:
        with self.cursor() as cur:
            cur.execute(
                sql.SQL("SELECT value FROM {} WHERE key = %s").format(sql.Identifier(self.table)),
                (key,),
            )
            row = cur.fetchone()
            return row["value"] if row else None

    def _set(self, key: str, value: Any) -> None:
        with self.cursor() as cur:
            cur.execute(sql.SQL("""
                INSERT INTO {} (key, value, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value, updated_at = NOW()
            """).format(sql.Identifier(self.table)), (key, Json(value)))

    def _delete(self, key: str) -> None:
        with self.cursor() as cur:
            cur.execute(
                sql.SQL("DELETE FROM {} WHERE key = %s").format(sql.Identifier(self.table)),
                (key,),
            )
