"""Connectivity tracking with push updates and a polling fallback."""
import threading
import time
from typing import Callable, List, Optional

import requests

from syncqueue.logging_conf import logger

StatusListener = Callable[[bool], None]
Probe = Callable[[], bool]


def http_probe(url: str, timeout: float = 3.0) -> Probe:
    """Build a probe that reports True when ``url`` answers at all."""

    def probe() -> bool:
        try:
            requests.head(url, timeout=timeout, allow_redirects=False)
            return True
        except requests.exceptions.RequestException as e:
            logger.debug(f"Connectivity probe to {url} failed: {e}")
            return False

    return probe


class ConnectivityMonitor:
    """Tracks whether the host is offline.

    Hosts with push-based network events call ``set_offline``. Without them,
    ``start()`` runs ``probe`` in a background thread every ``poll_interval``
    seconds. Listeners are called once per offline/online transition, on
    whichever thread observed it.
    """

    def __init__(
        self,
        initially_offline: bool = False,
        probe: Optional[Probe] = None,
        poll_interval: int = 5,
    ):
        self._offline = initially_offline
        self._listeners: List[StatusListener] = []
        self._lock = threading.Lock()
        self.probe = probe
        self.poll_interval = poll_interval
        self.running = False
        self.thread = None

    def is_offline(self) -> bool:
        return self._offline

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set_offline(self, offline: bool) -> bool:
        """Record the current state. Returns True if it changed."""
        with self._lock:
            if self._offline == offline:
                return False
            self._offline = offline
            listeners = list(self._listeners)

        logger.info("Connectivity changed: " + ("offline" if offline else "online"))
        for listener in listeners:
            try:
                listener(offline)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}", exc_info=True)
        return True

    def check_once(self) -> bool:
        """Run the probe once and record the result. Returns the offline state."""
        if self.probe is None:
            return self._offline
        try:
            online = self.probe()
        except Exception as e:
            logger.error(f"Connectivity probe error: {e}", exc_info=True)
            online = False
        self.set_offline(not online)
        return self._offline

    def start(self):
        """Start polling in a background thread."""
        if self.probe is None:
            raise ValueError("Polling needs a probe")
        if self.running:
            logger.warning("Connectivity monitor is already running")
            return

        self.running = True
        self.thread = threading.Thread(target=self._run, name="connectivity-monitor", daemon=True)
        self.thread.start()
        logger.info(f"Connectivity monitor started (interval: {self.poll_interval}s)")

    def stop(self):
        """Stop polling."""
        if not self.running:
            return

        self.running = False
        if self.thread:
            self.thread.join(timeout=10)
            self.thread = None
        logger.info("Connectivity monitor stopped")

    def _run(self):
        while self.running:
            self.check_once()

            for _ in range(self.poll_interval):
                if not self.running:
                    break
                time.sleep(1)
