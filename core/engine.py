"""
AppContext - process-wide wiring and the UI-facing session API.

Builds the database, repositories, capture poller, session state machine,
report service and auto-end watchdog, and hands each its collaborators
through its constructor. Nothing in the app reaches for a module-level
singleton; whoever owns the process owns one AppContext.

Public methods return result dicts ({"success", "error", "error_type", ...})
so a UI never has to catch exceptions for ordinary user mistakes.

Callbacks:
    on_session_state_changed(session_id: str, status: str, summary: Optional[SessionSummary])
    on_capture_warning()
    on_capture_warning_cleared()
    on_auto_end_warning(session_id: str, active_minutes: float)
    on_auto_end_triggered(session_id: str, summary: SessionSummary)
    on_report_finished(session_id: str, status: str)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import config
from ai.intent import IntentClarifier, IntentServiceError
from ai.providers import TextGenerator, create_text_generator
from core.capture_poller import CapturePoller
from core.exceptions import (
    EmptyInputError,
    InvalidTransitionError,
    NoReportError,
    NotFoundError,
    TrackerError,
)
from core.permissions import check_screen_permission
from core.watchdog import AutoEndWatchdog
from reporting.pdf_report import generate_report_pdf
from reporting.report_service import ReportService
from screen.window_detector import WindowDetector
from storage.database import Database, utcnow
from storage.repositories import Repositories
from tracking.models import SessionSummary
from tracking.session import SessionManager

logger = logging.getLogger(__name__)

_UNSET = object()


def _error_type(error: Exception) -> str:
    if isinstance(error, NotFoundError):
        return "not_found"
    if isinstance(error, InvalidTransitionError):
        return "invalid_transition"
    if isinstance(error, EmptyInputError):
        return "empty_input"
    if isinstance(error, NoReportError):
        return "no_report"
    if isinstance(error, ValueError):
        return "invalid_input"
    return "error"


def _failure(error: Exception) -> Dict[str, Any]:
    return {"success": False, "error": str(error), "error_type": _error_type(error)}


class AppContext:
    """
    Owns every long-lived component for one process.

    Handles:
    - Launch recovery (stale reports, stale sessions, abandoned setups)
    - Session lifecycle calls from the UI
    - Intent clarification
    - Report retrieval, retry and PDF export
    """

    def __init__(
        self,
        db_path: Union[Path, str, None] = None,
        get_active_window: Optional[Callable[[], Any]] = None,
        check_permission: Optional[Callable[[], bool]] = None,
        text_generator: Any = _UNSET,
        clock: Callable[[], datetime] = utcnow,
        poll_interval: float = config.CAPTURE_POLL_INTERVAL,
        watchdog_interval: float = config.AUTO_END_CHECK_INTERVAL,
    ) -> None:
        """
        Args:
            db_path: SQLite file (defaults to config.DATABASE_PATH).
            get_active_window: Active-window probe (defaults to WindowDetector).
            check_permission: Permission probe (defaults to check_screen_permission).
            text_generator: Generator for reports and intent clarification.
                Pass None to run without one; omit to build it from config
                on first use.
            clock: Source of timestamps for every component.
            poll_interval: Seconds between capture ticks.
            watchdog_interval: Seconds between auto-end checks.
        """
        self.db = Database(db_path if db_path is not None else config.DATABASE_PATH)
        self.db.initialize()
        self.repos = Repositories(self.db)

        if get_active_window is None:
            get_active_window = WindowDetector().get_active_window
        if check_permission is None:
            check_permission = check_screen_permission

        self._text_generator = text_generator

        self.poller = CapturePoller(
            self.repos.captures,
            get_active_window=get_active_window,
            check_permission=check_permission,
            poll_interval=poll_interval,
            clock=clock,
        )
        self.sessions = SessionManager(self.repos, self.poller, clock=clock)
        self.reports = ReportService(self.repos, self.get_text_generator, clock=clock)
        self.watchdog = AutoEndWatchdog(
            self.sessions,
            end_session=self._auto_end,
            check_interval=watchdog_interval,
        )

        # Callbacks (set by the UI layer)
        self.on_session_state_changed: Optional[Callable[[str, str, Optional[SessionSummary]], None]] = None
        self.on_capture_warning: Optional[Callable[[], None]] = None
        self.on_capture_warning_cleared: Optional[Callable[[], None]] = None
        self.on_auto_end_warning: Optional[Callable[[str, float], None]] = None
        self.on_auto_end_triggered: Optional[Callable[[str, SessionSummary], None]] = None
        self.on_report_finished: Optional[Callable[[str, str], None]] = None

        self.poller.on_warning = lambda: self._notify(self.on_capture_warning, "on_capture_warning")
        self.poller.on_warning_cleared = lambda: self._notify(
            self.on_capture_warning_cleared, "on_capture_warning_cleared"
        )
        self.watchdog.on_warning = lambda sid, minutes: self._notify(
            self.on_auto_end_warning, "on_auto_end_warning", sid, minutes
        )
        self.watchdog.on_auto_end = lambda sid, summary: self._notify(
            self.on_auto_end_triggered, "on_auto_end_triggered", sid, summary
        )
        self.reports.on_report_finished = lambda sid, status: self._notify(
            self.on_report_finished, "on_report_finished", sid, status
        )

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    def get_text_generator(self) -> Optional[TextGenerator]:
        """The configured text generator, built on first use. None if no API key."""
        if self._text_generator is _UNSET:
            try:
                self._text_generator = create_text_generator()
            except (ValueError, ImportError) as e:
                logger.error(f"Could not create text generator: {e}")
                self._text_generator = None
        return self._text_generator

    # ------------------------------------------------------------------
    # Launch / shutdown
    # ------------------------------------------------------------------

    def launch(self, start_watchdog: bool = True) -> Dict[str, Any]:
        """
        Recover from the previous run and start background checks.

        Order matters: interrupted reports are failed before any new
        generation starts, then stale sessions are ended (each gets a
        report), then abandoned setups are removed.

        Returns:
            Dict with stale_reports_failed, stale_sessions (list of
            (Session, SessionSummary)), last_stale (the last of those or
            None) and abandoned_removed.
        """
        stale_reports = self.reports.mark_stale_as_failed_on_launch()

        stale_sessions = self.sessions.end_stale_sessions()
        for session, _summary in stale_sessions:
            self.reports.start_generation(session.session_id)

        abandoned = self.sessions.cleanup_abandoned()

        if start_watchdog:
            self.watchdog.start()

        logger.info(
            f"Launch recovery: {stale_reports} stale report(s), "
            f"{len(stale_sessions)} stale session(s), {abandoned} abandoned"
        )
        return {
            "stale_reports_failed": stale_reports,
            "stale_sessions": stale_sessions,
            "last_stale": stale_sessions[-1] if stale_sessions else None,
            "abandoned_removed": abandoned,
        }

    def shutdown(self, wait_for_reports: bool = True) -> None:
        """Stop background work and close the database."""
        self.watchdog.stop()
        self.poller.shutdown()
        self.reports.shutdown(wait_for_tasks=wait_for_reports)
        self.db.close()

    # ------------------------------------------------------------------
    # Intent setup
    # ------------------------------------------------------------------

    def create_session(self, name: str, intent: str) -> Dict[str, Any]:
        """
        Create a session and check whether its intent is specific enough.

        Returns:
            {"success": True, "session_id", "status": "specific", "final_intent"}
            or {"success": True, "session_id", "status": "vague",
            "clarifying_questions"}. If the check can't run, the original
            intent is confirmed and "error" says why.
        """
        try:
            session = self.sessions.create(name, intent)
        except TrackerError as e:
            return _failure(e)

        result: Dict[str, Any] = {"success": True, "session_id": session.session_id}
        generator = self.get_text_generator()
        if generator is None:
            self.sessions.confirm_intent(session.session_id, session.original_intent)
            result.update(status="specific", final_intent=session.original_intent)
            return result

        try:
            check = IntentClarifier(generator).check_vagueness(session.original_intent)
        except IntentServiceError as e:
            self.sessions.confirm_intent(session.session_id, session.original_intent)
            result.update(status="specific", final_intent=session.original_intent, error=str(e))
            return result

        if check["status"] == "specific":
            self.sessions.confirm_intent(session.session_id, session.original_intent)
            result.update(status="specific", final_intent=session.original_intent)
        else:
            result.update(status="vague", clarifying_questions=check["clarifying_questions"])
        return result

    def clarify_intent(self, session_id: str, answers: List[str]) -> Dict[str, Any]:
        """
        Refine a vague intent from the user's answers and confirm it.

        Returns:
            {"success": True, "refined_intent"} or a failure dict.
        """
        session = self.sessions.get_session(session_id)
        if session is None:
            return _failure(NotFoundError(session_id))

        generator = self.get_text_generator()
        if generator is None:
            return {"success": False, "error": "No AI provider configured", "error_type": "no_provider"}

        try:
            refined = IntentClarifier(generator).refine_intent(session.original_intent, answers)
            self.sessions.confirm_intent(session_id, refined)
        except IntentServiceError as e:
            return {"success": False, "error": str(e), "error_type": "ai_error"}
        except TrackerError as e:
            return _failure(e)
        return {"success": True, "refined_intent": refined}

    def confirm_intent(self, session_id: str, final_intent: str) -> Dict[str, Any]:
        try:
            self.sessions.confirm_intent(session_id, final_intent)
        except TrackerError as e:
            return _failure(e)
        return {"success": True, "error": None, "error_type": None}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self, session_id: str) -> Dict[str, Any]:
        """
        Start a session.

        Returns:
            {"success": True, ...} or a failure dict. error_type is
            "permission_denied" when window tracking isn't allowed.
        """
        try:
            result = self.sessions.start(session_id)
        except TrackerError as e:
            return _failure(e)

        if not result["success"]:
            return result
        self._notify_state(session_id, config.SESSION_ACTIVE)
        return {"success": True, "error": None, "error_type": None}

    def pause_session(self, session_id: str) -> Dict[str, Any]:
        try:
            self.sessions.pause(session_id)
        except TrackerError as e:
            return _failure(e)
        self._notify_state(session_id, config.SESSION_PAUSED)
        return {"success": True, "error": None, "error_type": None}

    def resume_session(self, session_id: str) -> Dict[str, Any]:
        try:
            self.sessions.resume(session_id)
        except TrackerError as e:
            return _failure(e)
        self._notify_state(session_id, config.SESSION_ACTIVE)
        return {"success": True, "error": None, "error_type": None}

    def _end_and_report(self, session_id: str, ended_by: str) -> SessionSummary:
        summary = self.sessions.end(session_id, ended_by)
        self.reports.start_generation(session_id)
        self._notify_state(session_id, config.SESSION_ENDED, summary)
        return summary

    def _auto_end(self, session_id: str) -> SessionSummary:
        return self._end_and_report(session_id, config.ENDED_BY_AUTO)

    def end_session(self, session_id: str, ended_by: str = config.ENDED_BY_USER) -> Dict[str, Any]:
        """
        End a session and start its report.

        Returns:
            {"success": True, "summary": SessionSummary} or a failure dict.
        """
        try:
            summary = self._end_and_report(session_id, ended_by)
        except (TrackerError, ValueError) as e:
            return _failure(e)
        return {"success": True, "summary": summary, "error": None, "error_type": None}

    def log_feeling(self, session_id: str, text: str) -> Dict[str, Any]:
        try:
            feeling = self.sessions.create_feeling(session_id, text)
        except TrackerError as e:
            return _failure(e)
        return {"success": True, "feeling_id": feeling.feeling_id, "error": None, "error_type": None}

    def get_status(self) -> Dict[str, Any]:
        """Live session snapshot for a status display."""
        session = self.sessions.get_active_session()
        if session is None:
            return {"session_id": None, "status": None}
        breakdown = self.sessions.get_time_breakdown(session).rounded()
        return {
            "session_id": session.session_id,
            "name": session.name,
            "intent": session.display_intent,
            "status": session.status,
            "active_minutes": breakdown.active_minutes,
            "paused_minutes": breakdown.paused_minutes,
            "capture_warning": self.poller.warning_active,
        }

    # ------------------------------------------------------------------
    # Reports and dashboard
    # ------------------------------------------------------------------

    def get_report(self, session_id: str) -> Dict[str, Any]:
        return self.reports.get_report(session_id)

    def retry_report(self, session_id: str) -> Dict[str, Any]:
        try:
            self.reports.retry_generation(session_id)
        except TrackerError as e:
            return _failure(e)
        return {"success": True, "error": None, "error_type": None}

    def export_report_pdf(self, session_id: str, output_dir: Optional[Path] = None) -> Dict[str, Any]:
        """
        Write a ready report to PDF.

        Returns:
            {"success": True, "report_path": Path} or a failure dict.
        """
        report = self.reports.get_report(session_id)
        if report["status"] != config.REPORT_READY:
            return {
                "success": False,
                "error": f"Report is {report['status']}",
                "error_type": "not_ready",
            }
        try:
            path = generate_report_pdf(report, session_id, output_dir)
        except OSError as e:
            logger.error(f"Failed to write report PDF: {e}")
            return {"success": False, "error": str(e), "error_type": "io_error"}
        return {"success": True, "report_path": path, "error": None, "error_type": None}

    def dashboard_sessions(self, limit: int = 20, offset: int = 0) -> List[Dict[str, Any]]:
        """Ended sessions, newest first, with duration and whether a report can be viewed."""
        entries = []
        for session in self.sessions.list_completed(limit, offset):
            breakdown = self.sessions.get_time_breakdown(session).rounded()
            entries.append({
                "session_id": session.session_id,
                "name": session.name,
                "intent": session.display_intent,
                "ended_at": session.ended_at,
                "ended_by": session.ended_by,
                "duration_minutes": breakdown.total_minutes,
                "active_minutes": breakdown.active_minutes,
                "has_report": self.reports.has_report(session.session_id),
            })
        return entries

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_state(self, session_id: str, status: str, summary: Optional[SessionSummary] = None) -> None:
        self._notify(self.on_session_state_changed, "on_session_state_changed", session_id, status, summary)

    @staticmethod
    def _notify(callback: Optional[Callable[..., None]], name: str, *args: Any) -> None:
        if callback:
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"{name} callback error: {e}")
