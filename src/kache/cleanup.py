"""Background expiry sweep for a cache engine."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from kache.engine import CacheEngine

logger = structlog.get_logger(__name__)


class CleanupScheduler:
    """Calls engine.cleanup() every engine.cleanup_interval on a daemon thread.

    At most one timer runs per scheduler: start() replaces a running timer.
    The interval is re-read before each wait, so changing
    engine.cleanup_interval applies from the next cycle.
    """

    def __init__(self, engine: CacheEngine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        with self._lock:
            self._halt()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="kache-cleanup",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()
        logger.debug(
            "cache cleanup started", interval_ms=self._engine.cleanup_interval
        )

    def stop(self) -> None:
        with self._lock:
            was_running = self._thread is not None
            self._halt()
        if was_running:
            logger.debug("cache cleanup stopped")

    def _halt(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._stop_event = None
        self._thread = None

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._engine.cleanup_interval / 1000):
            try:
                self._engine.cleanup()
            except Exception:
                logger.exception("cache cleanup failed")
