"""
CapturePoller - fixed-interval active-window sampling for a running session.

Each tick asks the active-window probe what is focused and stores a
Capture row. Probe errors are counted; after CAPTURE_FAILURE_THRESHOLD
consecutive failures a warning is raised once, and it is cleared once
when a capture succeeds again or the poller stops.

Callbacks:
    on_warning()
    on_warning_cleared()
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Callable, Optional

import config
from core.exceptions import ProbeError
from storage.database import utcnow
from storage.repositories import CaptureRepository

logger = logging.getLogger(__name__)


class CapturePoller:
    """
    Polls the active-window probe on a background thread.

    The session state machine is the only caller of start()/stop().
    At most one polling thread exists at a time.
    """

    def __init__(
        self,
        captures: CaptureRepository,
        get_active_window: Callable[[], Any],
        check_permission: Callable[[], bool],
        poll_interval: float = config.CAPTURE_POLL_INTERVAL,
        failure_threshold: int = config.CAPTURE_FAILURE_THRESHOLD,
        probe_timeout: float = config.CAPTURE_PROBE_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Args:
            captures: Repository capture rows are written to.
            get_active_window: Probe returning an object with app_name and
                window_title (or None when nothing is focused); raises on error.
            check_permission: Probe answering whether window tracking is allowed.
            poll_interval: Seconds between ticks.
            failure_threshold: Consecutive failures before on_warning fires.
            probe_timeout: Seconds before a probe call counts as failed.
            clock: Source of capture timestamps.
        """
        self.captures = captures
        self.get_active_window = get_active_window
        self._check_permission = check_permission
        self.poll_interval = poll_interval
        self.failure_threshold = failure_threshold
        self.probe_timeout = probe_timeout
        self.clock = clock

        self.consecutive_failures: int = 0
        self.warning_active: bool = False

        self._session_id: Optional[str] = None
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._probe_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture-probe")

        self.on_warning: Optional[Callable[[], None]] = None
        self.on_warning_cleared: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_permission(self) -> bool:
        return bool(self._check_permission())

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def start(self, session_id: str) -> None:
        """
        Begin polling for a session. No-op if already running.

        Args:
            session_id: Session that captures are written to.
        """
        with self._lock:
            if self._thread is not None:
                logger.debug(f"Capture poller already running for {self._session_id}")
                return

            self._session_id = session_id
            self.consecutive_failures = 0
            self.warning_active = False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                daemon=True,
                name="capture-poller",
            )
            self._thread.start()

        logger.info(f"Capture poller started for session {session_id}")

    def stop(self) -> None:
        """
        Stop polling. Fires on_warning_cleared if a warning was active.

        A tick already waiting on the probe is not interrupted; its result is
        discarded because it belongs to a stopped run.
        """
        with self._lock:
            was_running = self._thread is not None
            if self._stop_event is not None:
                self._stop_event.set()
            self._stop_event = None
            self._thread = None
            self._session_id = None
            self.consecutive_failures = 0
            cleared = self.warning_active
            self.warning_active = False

        if was_running:
            logger.info("Capture poller stopped")
        if cleared:
            self._notify(self.on_warning_cleared, "on_warning_cleared")

    def shutdown(self) -> None:
        """Stop polling and release the probe worker. Call before process exit."""
        self.stop()
        self._probe_executor.shutdown(wait=False)

    def poll_once(self) -> None:
        """Run a single tick for the current run (what the timer calls every interval)."""
        with self._lock:
            run = self._stop_event
        if run is not None:
            self._poll(run)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _run(self, run: threading.Event) -> None:
        while not run.wait(self.poll_interval):
            try:
                self._poll(run)
            except Exception as e:
                # Store errors must not kill the timer thread
                logger.error(f"Capture tick error: {e}")

    def _poll(self, run: threading.Event) -> None:
        with self._lock:
            if run is not self._stop_event or self._session_id is None:
                return
            session_id = self._session_id

        try:
            window = self._probe()
        except Exception as e:
            self._record_failure(run, e)
            return

        title = getattr(window, "window_title", "") if window is not None else ""
        app_name = getattr(window, "app_name", "") if window is not None else ""
        if not title or not app_name:
            return

        with self._lock:
            if run is not self._stop_event or self._session_id != session_id:
                logger.debug("Discarding capture that arrived after the poller stopped")
                return
            self.captures.create(session_id, title, app_name, self.clock())
            self.consecutive_failures = 0
            cleared = self.warning_active
            self.warning_active = False

        if cleared:
            logger.info("Active window readable again, capture warning cleared")
            self._notify(self.on_warning_cleared, "on_warning_cleared")

    def _probe(self) -> Any:
        future = self._probe_executor.submit(self.get_active_window)
        try:
            return future.result(timeout=self.probe_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise ProbeError(f"Active window probe timed out after {self.probe_timeout}s")

    def _record_failure(self, run: threading.Event, error: Exception) -> None:
        with self._lock:
            if run is not self._stop_event:
                return
            self.consecutive_failures += 1
            failures = self.consecutive_failures
            raise_warning = failures >= self.failure_threshold and not self.warning_active
            if raise_warning:
                self.warning_active = True

        logger.debug(f"Active window probe failed ({failures} in a row): {error}")
        if raise_warning:
            logger.warning(f"Active window probe failed {failures} times in a row")
            self._notify(self.on_warning, "on_warning")

    @staticmethod
    def _notify(callback: Optional[Callable[[], None]], name: str) -> None:
        if callback:
            try:
                callback()
            except Exception as e:
                logger.warning(f"{name} callback error: {e}")
