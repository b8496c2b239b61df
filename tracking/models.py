"""Dataclasses for sessions and everything a session owns."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import config


@dataclass
class Session:
    """One tracked work interval, from intent-setting to end."""
    session_id: str
    name: str
    original_intent: str
    status: str
    created_at: datetime
    final_intent: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None

    @property
    def display_intent(self) -> str:
        """Confirmed intent if there is one, otherwise what the user first typed."""
        return self.final_intent or self.original_intent

    @property
    def is_live(self) -> bool:
        return self.status in (config.SESSION_ACTIVE, config.SESSION_PAUSED)


@dataclass
class SessionEvent:
    """A pause or resume transition."""
    event_id: str
    session_id: str
    event_type: str
    created_at: datetime


@dataclass
class Capture:
    """One observation of the foreground window."""
    capture_id: str
    session_id: str
    window_title: str
    app_name: str
    captured_at: datetime


@dataclass
class Feeling:
    """A user-authored note logged during a session."""
    feeling_id: str
    session_id: str
    text: str
    created_at: datetime


@dataclass
class Report:
    """Stored report row. Content fields hold serialized JSON and stay None until ready."""
    report_id: str
    session_id: str
    status: str
    created_at: datetime
    summary: Optional[str] = None
    patterns: Optional[str] = None
    suggestions: Optional[str] = None


@dataclass
class TimeBreakdown:
    """
    Elapsed-time split for a session, in minutes.

    Values are unrounded; call rounded() only when displaying or
    building a prompt.
    """
    total_minutes: float = 0.0
    active_minutes: float = 0.0
    paused_minutes: float = 0.0

    def rounded(self) -> "TimeBreakdown":
        return TimeBreakdown(
            total_minutes=round(self.total_minutes, 1),
            active_minutes=round(self.active_minutes, 1),
            paused_minutes=round(self.paused_minutes, 1),
        )


@dataclass
class SessionSummary:
    """Returned when a session ends."""
    total_minutes: float
    active_minutes: float
    paused_minutes: float
    capture_count: int
    feeling_count: int


@dataclass
class ActivitySpan:
    """Consecutive captures of the same window collapsed into one span."""
    window_title: str
    app_name: str
    start_time: datetime
    end_time: datetime

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60.0


@dataclass
class ReportEvidence:
    type: str
    description: str
    start_time: str
    end_time: Optional[str] = None


@dataclass
class ReportPattern:
    name: str
    confidence: str
    type: str
    description: str
    evidence: List[ReportEvidence] = field(default_factory=list)


@dataclass
class ReportSuggestion:
    text: str
    addresses_pattern: str


@dataclass
class ParsedReport:
    """Validated model output for a session report."""
    verdict: str
    patterns: List[ReportPattern] = field(default_factory=list)
    suggestions: List[ReportSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
