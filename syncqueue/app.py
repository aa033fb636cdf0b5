"""Sync daemon - replays queued actions to the backend whenever it is reachable."""
import asyncio
import signal
import sys

from syncqueue.logging_conf import logger
from syncqueue import settings
from syncqueue.connectivity import ConnectivityMonitor, http_probe
from syncqueue.queue.manager import QueueManager
from syncqueue.remote_client import RemoteSyncClient
from syncqueue.storage.base import DurableStore
from syncqueue.storage.file_store import FileStore
from syncqueue.storage.memory_store import MemoryStore
from syncqueue.storage.postgres_store import PostgresStore


def build_store(backend: str = None) -> DurableStore:
    """Create the DurableStore selected by STORAGE_BACKEND."""
    backend = backend or settings.STORAGE_BACKEND
    if backend == "postgres":
        return PostgresStore(settings.DATABASE_URL, settings.STORAGE_TABLE)
    if backend == "memory":
        logger.warning("Using in-memory storage; queued actions will not survive a restart")
        return MemoryStore()
    if backend == "file":
        return FileStore(settings.STORAGE_DIR)
    raise ValueError(f"Unknown storage backend: {backend}")


class Application:
    """Keeps the shared queue drained while the backend is reachable."""

    def __init__(self):
        settings.validate_config()
        self.store = build_store()
        self.monitor = ConnectivityMonitor(
            initially_offline=True,
            probe=http_probe(settings.CONNECTIVITY_PROBE_URL, settings.CONNECTIVITY_TIMEOUT),
            poll_interval=settings.CONNECTIVITY_POLL_INTERVAL,
        )
        self.queue = QueueManager(
            self.store,
            storage_key=settings.SYNC_QUEUE_STORAGE_KEY,
            monitor=self.monitor,
            max_attempts=settings.MAX_ATTEMPTS,
        )
        self.client = RemoteSyncClient(settings.SYNC_API_URL, settings.SYNC_API_TOKEN)
        self.running = False
        self._wakeup: asyncio.Event = None

    async def start(self):
        """Start the application."""
        logger.info("=" * 50)
        logger.info("Sync Queue Daemon")
        logger.info("=" * 50)
        logger.info(f"Storage: {settings.STORAGE_BACKEND} (key: {settings.SYNC_QUEUE_STORAGE_KEY})")
        logger.info(f"Backend: {settings.SYNC_API_URL}")
        logger.info(f"Sweep interval: {settings.SWEEP_INTERVAL}s")
        logger.info("=" * 50)

        self.running = True
        self._wakeup = asyncio.Event()
        loop = asyncio.get_running_loop()

        await self.queue.initialize()
        self.monitor.subscribe(
            lambda offline: None if offline else loop.call_soon_threadsafe(self._wakeup.set)
        )
        self.monitor.check_once()
        self.monitor.start()
        logger.info(f"Started - {self.queue.get_pending_count()} pending action(s)")

    def request_stop(self):
        """Ask the main loop to exit after the current sweep."""
        self.running = False
        if self._wakeup:
            self._wakeup.set()

    async def stop(self):
        """Stop the application."""
        self.running = False
        if self._wakeup:
            self._wakeup.set()
        self.monitor.stop()
        self.client.close()
        await self.store.close()
        logger.info("Stopped")

    async def run(self):
        """Main loop."""
        await self.start()

        while self.running:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Error in main loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=settings.SWEEP_INTERVAL)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

        await self.stop()

    async def sweep_once(self) -> int:
        """Run one sweep if online with pending work. Returns how many actions synced."""
        if self.monitor.is_offline() or self.queue.get_pending_count() == 0:
            return 0

        results = await self.queue.process_all(self.client.handle)
        synced = sum(1 for result in results if result.success)
        failed = len(results) - synced
        logger.info(f"Sweep finished: {synced} synced, {failed} failed, {self.queue.get_queue_length()} left")
        return synced


def main():
    """Entry point."""
    try:
        app = Application()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    async def runner():
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig}")
            app.request_stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, signal_handler, sig)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: signal_handler(s))

        await app.run()

    asyncio.run(runner())


if __name__ == "__main__":
    main()
