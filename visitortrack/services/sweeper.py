# ==============================================================================
# Idle Session Sweeper
# ==============================================================================
"""
Background sweep that ends idle sessions.

Each tick:

    1. Scan the active index for sessions idle past the timeout
    2. End each one in its own optimistic transaction (re-read, re-check)
    3. Trim event log entries and idle visitors past their retention windows
    4. Drain ended sessions into the PostgreSQL archive (if enabled)

A session that changes between the scan and its transaction (a heartbeat
landed) is skipped and re-evaluated on the next tick. A tick that fails as
a whole is logged and the loop keeps running.

Usage:
    sweeper = Sweeper(store, event_log)
    sweeper.start()      # background thread
    ...
    sweeper.stop()
"""

import logging
import threading
import time
from dataclasses import dataclass

import psycopg2

from visitortrack.base.repositories import SessionArchive
from visitortrack.core.errors import TrackingError
from visitortrack.infrastructure.event_log import ValkeyEventLog
from visitortrack.infrastructure.session_store import ValkeySessionStore
from visitortrack.utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)

DAY_MS = 86_400_000


@dataclass
class SweepResult:
    """What one sweep tick did."""

    candidates: int = 0
    ended: int = 0
    skipped: int = 0
    events_trimmed: int = 0
    visitors_trimmed: int = 0
    archived: int = 0
    duration_ms: float = 0.0


class Sweeper:
    """Periodic idle-session finalization."""

    def __init__(
        self,
        store: ValkeySessionStore,
        event_log: ValkeyEventLog,
        archive: SessionArchive | None = None,
        interval_seconds: float = 30.0,
        event_retention_days: int = 90,
        archive_batch_size: int = 500,
        clock: Clock = now_ms,
    ):
        """
        Initialize the sweeper.

        Args:
            store: Session store (idle timeout comes from its processor)
            event_log: Event log to trim
            archive: Long-term session archive; None disables draining
            interval_seconds: Time between ticks
            event_retention_days: Event log entries older than this are trimmed
            archive_batch_size: Sessions archived per tick
            clock: Millisecond clock
        """
        self._store = store
        self._event_log = event_log
        self._archive = archive
        self._archive_connected = False
        self._interval = interval_seconds
        self._event_retention_ms = event_retention_days * DAY_MS
        self._archive_batch_size = archive_batch_size
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ==========================================================================
    # Single Tick
    # ==========================================================================

    def run_once(self, now: int | None = None) -> SweepResult:
        """
        Run one sweep tick.

        Safe to call while the background loop is running (manual cleanup);
        ticks are serialized within the process.
        """
        with self._lock:
            return self._sweep(self._clock() if now is None else now)

    def _sweep(self, now: int) -> SweepResult:
        started = time.monotonic()
        result = SweepResult()

        cutoff = now - self._store.processor.idle_timeout_ms
        candidates = self._store.idle_candidates(cutoff)
        result.candidates = len(candidates)
        for session_id in candidates:
            if self._store.sweep_session(session_id, now):
                result.ended += 1
            else:
                result.skipped += 1

        result.events_trimmed = self._event_log.trim_before(now - self._event_retention_ms)
        result.visitors_trimmed = self._store.trim_visitor_index(now)
        if self._archive is not None:
            result.archived = self._drain_archive()

        result.duration_ms = (time.monotonic() - started) * 1000
        if result.candidates or result.events_trimmed or result.archived:
            logger.info(
                "Sweep: %d idle candidates, %d ended, %d skipped, "
                "%d events trimmed, %d archived (%.1fms)",
                result.candidates,
                result.ended,
                result.skipped,
                result.events_trimmed,
                result.archived,
                result.duration_ms,
            )
        else:
            logger.debug("Sweep: nothing to do (%.1fms)", result.duration_ms)
        return result

    def _drain_archive(self) -> int:
        """
        Copy queued ended sessions into the archive.

        The queue is trimmed only after the archive commit, so a failure
        leaves the batch in place for the next tick.
        """
        sessions = self._store.peek_archive(self._archive_batch_size)
        if not sessions:
            return 0
        try:
            if not self._archive_connected:
                self._archive.connect()
                self._archive_connected = True
            saved = self._archive.save(sessions)
        except psycopg2.Error as e:
            logger.warning("Archive of %d sessions failed, retrying next tick: %s", len(sessions), e)
            self._archive.close()
            self._archive_connected = False
            return 0
        self._store.ack_archive(len(sessions))
        return saved

    # ==========================================================================
    # Background Loop
    # ==========================================================================

    def run(self) -> None:
        """Sweep every interval until stop() is called."""
        logger.info(
            "Sweeper started (interval=%.1fs, idle timeout=%ds)",
            self._interval,
            self._store.processor.idle_timeout_ms // 1000,
        )
        while not self._stop.is_set():
            try:
                self.run_once()
            except TrackingError as e:
                logger.error("Sweep failed: %s", e)
            except Exception:
                logger.exception("Unexpected error during sweep")
            self._stop.wait(self._interval)
        if self._archive is not None:
            self._archive.close()
        logger.info("Sweeper stopped")

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread."""
        if self.running:
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="sweeper", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
