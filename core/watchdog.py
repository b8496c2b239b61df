"""
AutoEndWatchdog - force-ends sessions that run past the active-time limit.

Callbacks:
    on_warning(session_id: str, active_minutes: float)
    on_auto_end(session_id: str, result: Any)
"""

import logging
import threading
from typing import Any, Callable, Optional

import config
from core.exceptions import TrackerError
from tracking.session import SessionManager

logger = logging.getLogger(__name__)


class AutoEndWatchdog:
    """
    Periodic check on the live session's active minutes.

    At the warning threshold on_warning fires on every check (no dedup).
    At the hard limit the session is ended through end_session, the same
    path a user-initiated end takes, so the report is generated as usual.
    """

    def __init__(
        self,
        sessions: SessionManager,
        end_session: Callable[[str], Any],
        check_interval: float = config.AUTO_END_CHECK_INTERVAL,
        warning_minutes: float = config.AUTO_END_WARNING_MINUTES,
        limit_minutes: float = config.AUTO_END_LIMIT_MINUTES,
    ):
        """
        Args:
            sessions: Session state machine to read the live session from.
            end_session: Ends a session with ended_by="auto" and starts its report.
            check_interval: Seconds between checks.
            warning_minutes: Active minutes at which the warning fires.
            limit_minutes: Active minutes at which the session is ended.
        """
        self.sessions = sessions
        self.end_session = end_session
        self.check_interval = check_interval
        self.warning_minutes = warning_minutes
        self.limit_minutes = limit_minutes

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.on_warning: Optional[Callable[[str, float], None]] = None
        self.on_auto_end: Optional[Callable[[str, Any], None]] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="auto-end-watchdog")
        self._thread.start()
        logger.debug("Auto-end watchdog started")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.check_interval):
            try:
                self.check_once()
            except Exception as e:
                logger.error(f"Auto-end check failed: {e}")

    def check_once(self) -> Optional[str]:
        """
        Run one check.

        Returns:
            "ended" if the session was force-ended, "warning" if the warning
            fired, None otherwise.
        """
        session = self.sessions.get_active_session()
        if session is None:
            return None

        active_minutes = self.sessions.get_active_minutes(session.session_id)

        if active_minutes >= self.limit_minutes:
            logger.warning(
                f"Session {session.session_id} reached {active_minutes:.1f} active minutes, ending"
            )
            try:
                result = self.end_session(session.session_id)
            except TrackerError as e:
                # Ended by the user between the read and the end
                logger.debug(f"Auto-end skipped for {session.session_id}: {e}")
                return None
            self._notify(self.on_auto_end, "on_auto_end", session.session_id, result)
            return "ended"

        if active_minutes >= self.warning_minutes:
            self._notify(self.on_warning, "on_warning", session.session_id, active_minutes)
            return "warning"

        return None

    @staticmethod
    def _notify(callback: Optional[Callable[..., None]], name: str, *args: Any) -> None:
        if callback:
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"{name} callback error: {e}")
