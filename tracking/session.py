"""Session lifecycle: created -> active <-> paused -> ended."""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import config
from core.capture_poller import CapturePoller
from core.exceptions import (
    ActiveSessionExistsError,
    EmptyInputError,
    InvalidTransitionError,
    NotFoundError,
)
from storage.database import utcnow
from storage.repositories import Repositories
from tracking.analytics import compute_time_breakdown
from tracking.models import Capture, Feeling, Session, SessionSummary, TimeBreakdown

logger = logging.getLogger(__name__)

LIVE_STATUSES = (config.SESSION_ACTIVE, config.SESSION_PAUSED)


class SessionManager:
    """
    Owns session status and the capture poller's lifecycle.

    Every operation re-reads the session from the store before validating a
    transition; nothing about status is cached here. Transitions are
    serialized with a lock so the watchdog thread and the user can't
    interleave a check-then-write on the same session.
    """

    def __init__(
        self,
        repos: Repositories,
        poller: CapturePoller,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            repos: Repository bundle over the shared database.
            poller: The single capture poller; only this class starts/stops it.
            clock: Source of timestamps for transitions.
        """
        self.repos = repos
        self.poller = poller
        self.clock = clock
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.repos.sessions.get_by_id(session_id)

    def _require_session(self, session_id: str) -> Session:
        session = self.repos.sessions.get_by_id(session_id)
        if session is None:
            raise NotFoundError(session_id)
        return session

    def get_active_session(self) -> Optional[Session]:
        """The live (active or paused) session, most recently created first."""
        live = self.repos.sessions.find_by_statuses(LIVE_STATUSES)
        return live[0] if live else None

    def has_active_session(self) -> bool:
        return self.get_active_session() is not None

    def list_completed(self, limit: int = 20, offset: int = 0) -> List[Session]:
        """Ended sessions, most recently ended first."""
        return self.repos.sessions.find_completed(limit, offset)

    def get_captures_in_range(self, session_id: str, start: datetime, end: datetime) -> List[Capture]:
        """
        Captures of a session whose timestamp falls inside [start, end].

        Used to back a report's evidence item with the raw observations.
        """
        self._require_session(session_id)
        if start > end:
            raise ValueError("start must not be after end")
        return self.repos.captures.get_in_range(session_id, start, end)

    def get_time_breakdown(self, session: Session) -> TimeBreakdown:
        """
        Unrounded time breakdown for a session.

        The end boundary is ended_at once the session has ended, so a session
        ended while paused stops counting paused time at its end.
        """
        end_time = session.ended_at if session.ended_at is not None else self.clock()
        events = self.repos.events.get_by_session_id(session.session_id)
        return compute_time_breakdown(session.started_at, events, end_time)

    def get_active_minutes(self, session_id: str) -> float:
        session = self._require_session(session_id)
        return self.get_time_breakdown(session).active_minutes

    def _summarize(self, session: Session) -> SessionSummary:
        breakdown = self.get_time_breakdown(session).rounded()
        return SessionSummary(
            total_minutes=breakdown.total_minutes,
            active_minutes=breakdown.active_minutes,
            paused_minutes=breakdown.paused_minutes,
            capture_count=self.repos.captures.count_by_session_id(session.session_id),
            feeling_count=self.repos.feelings.count_by_session_id(session.session_id),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, name: str, intent: str) -> Session:
        """
        Create a session in `created` status.

        Args:
            name: Display name. A time-based name is generated if blank.
            intent: What the user plans to do. Required.
        """
        intent = (intent or "").strip()
        if not intent:
            raise EmptyInputError("intent")

        now = self.clock()
        name = (name or "").strip() or self._generate_name(now)
        session = self.repos.sessions.create(name, intent, now)
        logger.info(f"Session created: {session.session_id} ({name})")
        return session

    @staticmethod
    def _generate_name(now: datetime) -> str:
        local = now.astimezone()
        day = local.strftime("%A")
        time = local.strftime("%I.%M%p").lstrip("0")
        return f"Session {day} {time}"

    def confirm_intent(self, session_id: str, final_intent: str) -> Session:
        """Set the intent the session will be judged against."""
        final_intent = (final_intent or "").strip()
        if not final_intent:
            raise EmptyInputError("final_intent")

        with self._lock:
            session = self._require_session(session_id)
            if session.status == config.SESSION_ENDED:
                raise InvalidTransitionError("confirm intent for", session.status)
            self.repos.sessions.update_final_intent(session_id, final_intent)
            session.final_intent = final_intent
        logger.debug(f"Intent confirmed for {session_id}")
        return session

    def start(self, session_id: str) -> Dict[str, Any]:
        """
        Start a session from `created`.

        Returns:
            {"success": True, "session": Session} when started, or
            {"success": False, "error_type": "permission_denied", "error": str}
            when the window-tracking permission is missing. In the second
            case the session stays in `created` and start can be retried.

        Raises:
            NotFoundError, InvalidTransitionError, ActiveSessionExistsError
        """
        with self._lock:
            session = self._require_session(session_id)
            if session.status != config.SESSION_CREATED:
                raise InvalidTransitionError("start", session.status)

            other = self.get_active_session()
            if other is not None:
                raise ActiveSessionExistsError(other.session_id, other.status)

            if not self.poller.check_permission():
                logger.warning(f"Window tracking permission denied, session {session_id} not started")
                return {
                    "success": False,
                    "error": "Window tracking permission is required to start a session",
                    "error_type": "permission_denied",
                }

            started_at = self.clock()
            self.repos.sessions.mark_started(session_id, started_at)
            session.status = config.SESSION_ACTIVE
            session.started_at = started_at
            self.poller.start(session_id)

        logger.info(f"Session started: {session_id}")
        return {"success": True, "session": session}

    def pause(self, session_id: str) -> Session:
        with self._lock:
            session = self._require_session(session_id)
            if session.status != config.SESSION_ACTIVE:
                raise InvalidTransitionError("pause", session.status)

            self.poller.stop()
            self.repos.sessions.update_status(session_id, config.SESSION_PAUSED)
            self.repos.events.create(session_id, config.EVENT_PAUSED, self.clock())
            session.status = config.SESSION_PAUSED

        logger.info(f"Session paused: {session_id}")
        return session

    def resume(self, session_id: str) -> Session:
        with self._lock:
            session = self._require_session(session_id)
            if session.status != config.SESSION_PAUSED:
                raise InvalidTransitionError("resume", session.status)

            self.repos.sessions.update_status(session_id, config.SESSION_ACTIVE)
            self.repos.events.create(session_id, config.EVENT_RESUMED, self.clock())
            session.status = config.SESSION_ACTIVE
            self.poller.start(session_id)

        logger.info(f"Session resumed: {session_id}")
        return session

    def end(self, session_id: str, ended_by: str = config.ENDED_BY_USER) -> SessionSummary:
        """
        End a live session.

        Args:
            session_id: Session to end.
            ended_by: "user" or "auto".

        Returns:
            SessionSummary with minutes rounded to one decimal and the
            number of captures and feelings recorded.
        """
        if ended_by not in (config.ENDED_BY_USER, config.ENDED_BY_AUTO):
            raise ValueError(f"Invalid ended_by: {ended_by}")

        with self._lock:
            session = self._require_session(session_id)
            if not session.is_live:
                raise InvalidTransitionError("end", session.status)

            self.poller.stop()
            ended_at = self.clock()
            self.repos.sessions.end(session_id, ended_by, ended_at)
            session.status = config.SESSION_ENDED
            session.ended_at = ended_at
            session.ended_by = ended_by
            summary = self._summarize(session)

        logger.info(
            f"Session ended ({ended_by}): {session_id}, "
            f"{summary.active_minutes} active min, {summary.capture_count} captures"
        )
        return summary

    def create_feeling(self, session_id: str, text: str) -> Feeling:
        """Log a feeling note on an active or paused session."""
        with self._lock:
            session = self._require_session(session_id)
            text = (text or "").strip()
            if not text:
                raise EmptyInputError("text")
            if not session.is_live:
                raise InvalidTransitionError("log feeling for", session.status)
            feeling = self.repos.feelings.create(session_id, text, self.clock())

        logger.debug(f"Feeling logged for {session_id}")
        return feeling

    # ------------------------------------------------------------------
    # Launch recovery
    # ------------------------------------------------------------------

    def end_stale_sessions(self) -> List[Tuple[Session, SessionSummary]]:
        """
        Auto-end every session left active or paused by a previous process.

        Neither the poller nor in-memory state survives a restart, so any
        live session found at launch is stale by definition.
        """
        self.poller.stop()
        ended: List[Tuple[Session, SessionSummary]] = []
        with self._lock:
            for stale in self.repos.sessions.find_by_statuses(LIVE_STATUSES):
                summary = self.end(stale.session_id, config.ENDED_BY_AUTO)
                ended.append((self._require_session(stale.session_id), summary))
        if ended:
            logger.warning(f"Ended {len(ended)} stale session(s) left from a previous run")
        return ended

    def check_stale_on_launch(self) -> Optional[Tuple[Session, SessionSummary]]:
        """
        Auto-end stale sessions and return the last one ended with its summary.

        Returns:
            (Session, SessionSummary) or None if nothing was stale.
        """
        ended = self.end_stale_sessions()
        return ended[-1] if ended else None

    def cleanup_abandoned(self) -> int:
        """Delete sessions that never left `created`. Returns the number deleted."""
        with self._lock:
            count = self.repos.sessions.delete_by_status(config.SESSION_CREATED)
        if count:
            logger.info(f"Removed {count} abandoned session(s)")
        return count
