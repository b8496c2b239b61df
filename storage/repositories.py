"""Table-level access for sessions, session events, captures, feelings and reports."""

import sqlite3
from datetime import datetime
from typing import List, Optional, Sequence

import config
from storage.database import Database, from_db_time, new_id, to_db_time
from tracking.models import Capture, Feeling, Report, Session, SessionEvent


class SessionRepository:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            session_id=row["session_id"],
            name=row["name"],
            original_intent=row["original_intent"],
            final_intent=row["final_intent"],
            status=row["status"],
            started_at=from_db_time(row["started_at"]),
            ended_at=from_db_time(row["ended_at"]),
            ended_by=row["ended_by"],
            created_at=from_db_time(row["created_at"]),
        )

    def create(self, name: str, original_intent: str, created_at: datetime) -> Session:
        session = Session(
            session_id=new_id(),
            name=name,
            original_intent=original_intent,
            status=config.SESSION_CREATED,
            created_at=created_at,
        )
        self.db.execute(
            "INSERT INTO session (session_id, name, original_intent, final_intent, status, "
            "started_at, ended_at, ended_by, created_at) VALUES (?, ?, ?, NULL, ?, NULL, NULL, NULL, ?)",
            (session.session_id, name, original_intent, session.status, to_db_time(created_at)),
        )
        return session

    def get_by_id(self, session_id: str) -> Optional[Session]:
        row = self.db.fetch_one("SELECT * FROM session WHERE session_id = ?", (session_id,))
        return self._row_to_session(row) if row else None

    def update_final_intent(self, session_id: str, final_intent: str) -> None:
        self.db.execute(
            "UPDATE session SET final_intent = ? WHERE session_id = ?",
            (final_intent, session_id),
        )

    def mark_started(self, session_id: str, started_at: datetime) -> None:
        self.db.execute(
            "UPDATE session SET status = ?, started_at = ? WHERE session_id = ?",
            (config.SESSION_ACTIVE, to_db_time(started_at), session_id),
        )

    def update_status(self, session_id: str, status: str) -> None:
        self.db.execute(
            "UPDATE session SET status = ? WHERE session_id = ?",
            (status, session_id),
        )

    def end(self, session_id: str, ended_by: str, ended_at: datetime) -> None:
        self.db.execute(
            "UPDATE session SET status = ?, ended_at = ?, ended_by = ? WHERE session_id = ?",
            (config.SESSION_ENDED, to_db_time(ended_at), ended_by, session_id),
        )

    def find_by_statuses(self, statuses: Sequence[str]) -> List[Session]:
        placeholders = ", ".join("?" for _ in statuses)
        rows = self.db.fetch_all(
            f"SELECT * FROM session WHERE status IN ({placeholders}) ORDER BY created_at DESC",
            tuple(statuses),
        )
        return [self._row_to_session(r) for r in rows]

    def find_completed(self, limit: int, offset: int = 0) -> List[Session]:
        rows = self.db.fetch_all(
            "SELECT * FROM session WHERE status = ? ORDER BY ended_at DESC LIMIT ? OFFSET ?",
            (config.SESSION_ENDED, limit, offset),
        )
        return [self._row_to_session(r) for r in rows]

    def delete_by_status(self, status: str) -> int:
        return self.db.execute("DELETE FROM session WHERE status = ?", (status,))


class SessionEventRepository:
    def __init__(self, db: Database):
        self.db = db

    def create(self, session_id: str, event_type: str, created_at: datetime) -> SessionEvent:
        event = SessionEvent(
            event_id=new_id(),
            session_id=session_id,
            event_type=event_type,
            created_at=created_at,
        )
        self.db.execute(
            "INSERT INTO session_events (event_id, session_id, event_type, created_at) "
            "VALUES (?, ?, ?, ?)",
            (event.event_id, session_id, event_type, to_db_time(created_at)),
        )
        return event

    def get_by_session_id(self, session_id: str) -> List[SessionEvent]:
        rows = self.db.fetch_all(
            "SELECT * FROM session_events WHERE session_id = ? ORDER BY created_at ASC, rowid ASC",
            (session_id,),
        )
        return [
            SessionEvent(
                event_id=r["event_id"],
                session_id=r["session_id"],
                event_type=r["event_type"],
                created_at=from_db_time(r["created_at"]),
            )
            for r in rows
        ]


class CaptureRepository:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_to_capture(row: sqlite3.Row) -> Capture:
        return Capture(
            capture_id=row["capture_id"],
            session_id=row["session_id"],
            window_title=row["window_title"],
            app_name=row["app_name"],
            captured_at=from_db_time(row["captured_at"]),
        )

    def create(self, session_id: str, window_title: str, app_name: str,
               captured_at: datetime) -> Capture:
        capture = Capture(
            capture_id=new_id(),
            session_id=session_id,
            window_title=window_title,
            app_name=app_name,
            captured_at=captured_at,
        )
        self.db.execute(
            "INSERT INTO capture (capture_id, session_id, window_title, app_name, captured_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (capture.capture_id, session_id, window_title, app_name, to_db_time(captured_at)),
        )
        return capture

    def get_by_session_id(self, session_id: str) -> List[Capture]:
        rows = self.db.fetch_all(
            "SELECT * FROM capture WHERE session_id = ? ORDER BY captured_at ASC, rowid ASC",
            (session_id,),
        )
        return [self._row_to_capture(r) for r in rows]

    def get_in_range(self, session_id: str, start: datetime, end: datetime) -> List[Capture]:
        rows = self.db.fetch_all(
            "SELECT * FROM capture WHERE session_id = ? AND captured_at >= ? AND captured_at <= ? "
            "ORDER BY captured_at ASC, rowid ASC",
            (session_id, to_db_time(start), to_db_time(end)),
        )
        return [self._row_to_capture(r) for r in rows]

    def count_by_session_id(self, session_id: str) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS count FROM capture WHERE session_id = ?", (session_id,)
        )
        return row["count"]


class FeelingRepository:
    def __init__(self, db: Database):
        self.db = db

    def create(self, session_id: str, text: str, created_at: datetime) -> Feeling:
        feeling = Feeling(
            feeling_id=new_id(),
            session_id=session_id,
            text=text,
            created_at=created_at,
        )
        self.db.execute(
            "INSERT INTO feeling (feeling_id, session_id, text, created_at) VALUES (?, ?, ?, ?)",
            (feeling.feeling_id, session_id, text, to_db_time(created_at)),
        )
        return feeling

    def get_by_session_id(self, session_id: str) -> List[Feeling]:
        rows = self.db.fetch_all(
            "SELECT * FROM feeling WHERE session_id = ? ORDER BY created_at ASC, rowid ASC",
            (session_id,),
        )
        return [
            Feeling(
                feeling_id=r["feeling_id"],
                session_id=r["session_id"],
                text=r["text"],
                created_at=from_db_time(r["created_at"]),
            )
            for r in rows
        ]

    def count_by_session_id(self, session_id: str) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS count FROM feeling WHERE session_id = ?", (session_id,)
        )
        return row["count"]


class ReportRepository:
    def __init__(self, db: Database):
        self.db = db

    def create(self, session_id: str, created_at: datetime) -> Report:
        report = Report(
            report_id=new_id(),
            session_id=session_id,
            status=config.REPORT_GENERATING,
            created_at=created_at,
        )
        self.db.execute(
            "INSERT INTO reports (report_id, session_id, summary, patterns, suggestions, status, created_at) "
            "VALUES (?, ?, NULL, NULL, NULL, ?, ?)",
            (report.report_id, session_id, report.status, to_db_time(created_at)),
        )
        return report

    def get_by_session_id(self, session_id: str) -> Optional[Report]:
        """Most recently created report for the session."""
        row = self.db.fetch_one(
            "SELECT * FROM reports WHERE session_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (session_id,),
        )
        if row is None:
            return None
        return Report(
            report_id=row["report_id"],
            session_id=row["session_id"],
            status=row["status"],
            created_at=from_db_time(row["created_at"]),
            summary=row["summary"],
            patterns=row["patterns"],
            suggestions=row["suggestions"],
        )

    def has_ready_report(self, session_id: str) -> bool:
        row = self.db.fetch_one(
            "SELECT 1 FROM reports WHERE session_id = ? AND status = ? LIMIT 1",
            (session_id, config.REPORT_READY),
        )
        return row is not None

    def update_to_ready(self, report_id: str, summary: str, patterns: str, suggestions: str) -> None:
        self.db.execute(
            "UPDATE reports SET status = ?, summary = ?, patterns = ?, suggestions = ? WHERE report_id = ?",
            (config.REPORT_READY, summary, patterns, suggestions, report_id),
        )

    def update_to_failed(self, report_id: str) -> None:
        self.db.execute(
            "UPDATE reports SET status = ?, summary = NULL, patterns = NULL, suggestions = NULL "
            "WHERE report_id = ?",
            (config.REPORT_FAILED, report_id),
        )

    def reset_to_generating(self, report_id: str) -> None:
        self.db.execute(
            "UPDATE reports SET status = ?, summary = NULL, patterns = NULL, suggestions = NULL "
            "WHERE report_id = ?",
            (config.REPORT_GENERATING, report_id),
        )

    def mark_generating_as_failed(self) -> int:
        return self.db.execute(
            "UPDATE reports SET status = ? WHERE status = ?",
            (config.REPORT_FAILED, config.REPORT_GENERATING),
        )


class Repositories:
    """Bundle of every repository over one database."""

    def __init__(self, db: Database):
        self.db = db
        self.sessions = SessionRepository(db)
        self.events = SessionEventRepository(db)
        self.captures = CaptureRepository(db)
        self.feelings = FeelingRepository(db)
        self.reports = ReportRepository(db)
