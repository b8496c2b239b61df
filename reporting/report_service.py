"""
ReportService - one AI report per session, generated in the background.

Report status moves generating -> ready | failed, and failed -> generating
on retry. Generation never raises to the caller: every failure ends with
the report row marked failed so the user can retry.

Callbacks:
    on_report_finished(session_id: str, status: str)
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import config
from ai.providers import TextGenerator
from ai.report_prompt import (
    build_report_prompt,
    deserialize_report,
    parse_report_response,
    serialize_report,
)
from core.exceptions import InvalidTransitionError, NoReportError, NotFoundError
from storage.database import utcnow
from storage.repositories import Repositories
from tracking.analytics import collapse_captures, compute_time_breakdown
from tracking.models import Session, TimeBreakdown

logger = logging.getLogger(__name__)


class ReportService:
    """
    Orchestrates report generation for ended sessions.

    Generation runs on a small thread pool. start_generation() and
    retry_generation() return the Future so tests (and the CLI) can wait on
    it; the app itself never blocks on it.
    """

    def __init__(
        self,
        repos: Repositories,
        get_text_generator: Callable[[], Optional[TextGenerator]],
        clock: Callable[[], datetime] = utcnow,
        max_workers: int = config.REPORT_WORKERS,
    ):
        """
        Args:
            repos: Repository bundle over the shared database.
            get_text_generator: Returns the text generator, or None if no
                provider is configured. Called once per generation.
            clock: Source of timestamps.
            max_workers: Concurrent generations across sessions.
        """
        self.repos = repos
        self.get_text_generator = get_text_generator
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="report")
        self._pending: Dict[str, Future] = {}
        # Re-entrant: a done-callback can run in the submitting thread
        self._lock = threading.RLock()

        self.on_report_finished: Optional[Callable[[str, str], None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_generation(self, session_id: str) -> Optional[Future]:
        """
        Start generating the session's report unless one is already ready.

        Reuses an orphaned `generating` row, or the in-flight task if one is
        already running for this session. A `failed` latest report gets a
        fresh row.

        Returns:
            Future resolving to the final report status, or None if a ready
            report already exists.
        """
        if self.repos.sessions.get_by_id(session_id) is None:
            raise NotFoundError(session_id)

        with self._lock:
            if self.repos.reports.has_ready_report(session_id):
                logger.debug(f"Report already ready for {session_id}, not regenerating")
                return None

            in_flight = self._pending.get(session_id)
            if in_flight is not None and not in_flight.done():
                logger.debug(f"Report already generating for {session_id}")
                return in_flight

            report = self.repos.reports.get_by_session_id(session_id)
            if report is None or report.status == config.REPORT_FAILED:
                report = self.repos.reports.create(session_id, self.clock())

            logger.info(f"Report generation started for {session_id}")
            return self._submit(session_id, report.report_id)

    def retry_generation(self, session_id: str) -> Future:
        """
        Retry a failed report.

        Raises:
            NoReportError: No report row exists for the session.
            InvalidTransitionError: The current report is not `failed`.
        """
        with self._lock:
            report = self.repos.reports.get_by_session_id(session_id)
            if report is None:
                raise NoReportError(session_id)
            if report.status != config.REPORT_FAILED:
                raise InvalidTransitionError("retry", report.status, kind="report")

            self.repos.reports.reset_to_generating(report.report_id)
            logger.info(f"Report generation retried for {session_id}")
            return self._submit(session_id, report.report_id)

    def get_report(self, session_id: str) -> Dict[str, Any]:
        """
        Current report state for a session.

        Returns:
            {"status": "generating"} when no row exists yet or it is still
            running, {"status": "failed"}, or for a ready report:
            {"status": "ready", "report": ParsedReport, "session": {name,
            intent, total_minutes, active_minutes, paused_minutes}} with the
            time breakdown recomputed now and rounded to one decimal.
        """
        report = self.repos.reports.get_by_session_id(session_id)
        if report is None:
            return {"status": config.REPORT_GENERATING}
        if report.status != config.REPORT_READY:
            return {"status": report.status}

        session = self.repos.sessions.get_by_id(session_id)
        if session is None:
            return {"status": config.REPORT_FAILED}

        breakdown = self._time_breakdown(session).rounded()
        return {
            "status": config.REPORT_READY,
            "report": deserialize_report(report.summary, report.patterns, report.suggestions),
            "session": {
                "name": session.name,
                "intent": session.display_intent,
                "total_minutes": breakdown.total_minutes,
                "active_minutes": breakdown.active_minutes,
                "paused_minutes": breakdown.paused_minutes,
            },
        }

    def has_report(self, session_id: str) -> bool:
        """True if the session has a ready report."""
        return self.repos.reports.has_ready_report(session_id)

    def mark_stale_as_failed_on_launch(self) -> int:
        """
        Mark every `generating` report as failed.

        Must run at launch before any generation starts: a generating row
        from a previous process has no task behind it anymore.
        """
        count = self.repos.reports.mark_generating_as_failed()
        if count:
            logger.warning(f"Marked {count} interrupted report(s) as failed")
        return count

    def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every in-flight generation finishes.

        Returns:
            True if all finished within the timeout.
        """
        with self._lock:
            futures = list(self._pending.values())
        if not futures:
            return True
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _submit(self, session_id: str, report_id: str) -> Future:
        future = self._executor.submit(self._generate, session_id, report_id)
        self._pending[session_id] = future
        future.add_done_callback(lambda f: self._forget(session_id, f))
        return future

    def _forget(self, session_id: str, future: Future) -> None:
        with self._lock:
            if self._pending.get(session_id) is future:
                del self._pending[session_id]

    def _time_breakdown(self, session: Session) -> TimeBreakdown:
        end_time = session.ended_at if session.ended_at is not None else self.clock()
        events = self.repos.events.get_by_session_id(session.session_id)
        return compute_time_breakdown(session.started_at, events, end_time)

    def _build_prompt(self, session: Session) -> str:
        captures = self.repos.captures.get_by_session_id(session.session_id)
        feelings = self.repos.feelings.get_by_session_id(session.session_id)
        events = self.repos.events.get_by_session_id(session.session_id)
        breakdown = self._time_breakdown(session).rounded()

        return build_report_prompt(
            intent=session.display_intent,
            breakdown=breakdown,
            spans=collapse_captures(captures),
            feelings=feelings,
            events=events,
        )

    def _generate(self, session_id: str, report_id: str) -> str:
        status = config.REPORT_FAILED
        try:
            generator = self.get_text_generator()
            if generator is None:
                logger.error("Report generation failed: no API key configured")
                self.repos.reports.update_to_failed(report_id)
                return status

            session = self.repos.sessions.get_by_id(session_id)
            if session is None:
                logger.error(f"Report generation failed: session {session_id} is gone")
                self.repos.reports.update_to_failed(report_id)
                return status

            response_text = generator.generate(self._build_prompt(session))
            parsed = parse_report_response(response_text)

            summary, patterns, suggestions = serialize_report(parsed)
            self.repos.reports.update_to_ready(report_id, summary, patterns, suggestions)
            status = config.REPORT_READY
            logger.info(
                f"Report ready for {session_id}: {len(parsed.patterns)} patterns, "
                f"{len(parsed.suggestions)} suggestions"
            )
        except Exception as e:
            logger.error(f"Report generation failed for {session_id}: {e}")
            self.repos.reports.update_to_failed(report_id)
        finally:
            self._notify_finished(session_id, status)
        return status

    def _notify_finished(self, session_id: str, status: str) -> None:
        if self.on_report_finished:
            try:
                self.on_report_finished(session_id, status)
            except Exception as e:
                logger.warning(f"on_report_finished callback error: {e}")
