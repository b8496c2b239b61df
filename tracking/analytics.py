"""Analytics for computing session time breakdowns and activity spans."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import config
from tracking.models import ActivitySpan, Capture, SessionEvent, TimeBreakdown

logger = logging.getLogger(__name__)


def format_duration(seconds: float, full_precision: bool = False) -> str:
    """
    Format duration in seconds to human-readable string.

    All calculations should use float seconds for precision, with
    truncation to int happening ONLY here at display time.

    Args:
        seconds: Duration in seconds (float for precision, truncated to int for display)
        full_precision: If True, always show all non-zero time components
                       including seconds even when hours > 0.

    Returns:
        Formatted string like "1 min 30 secs", "45 secs", "2 hrs 15 mins"

    Examples:
        >>> format_duration(90)
        '1 min 30 secs'
        >>> format_duration(3725)
        '1 hr 2 mins'
        >>> format_duration(0)
        '0 sec'
    """
    total_seconds = int(seconds) if seconds >= 0 else 0

    hours = total_seconds // 3600
    remaining_seconds = total_seconds % 3600
    mins = remaining_seconds // 60
    secs = remaining_seconds % 60

    parts = []

    if hours > 0:
        hr_unit = "hr" if hours == 1 else "hrs"
        parts.append(f"{hours} {hr_unit}")

    if mins > 0 or (full_precision and hours > 0):
        min_unit = "min" if mins == 1 else "mins"
        parts.append(f"{mins} {min_unit}")

    if secs > 0 or full_precision:
        if hours == 0 or full_precision:
            sec_unit = "sec" if secs == 1 else "secs"
            parts.append(f"{secs} {sec_unit}")

    return " ".join(parts) if parts else "0 sec"


def compute_active_seconds(
    started_at: Optional[datetime],
    events: Iterable[SessionEvent],
    end_time: datetime,
) -> float:
    """
    Sum the time a session spent active, excluding paused intervals.

    Walks the pause/resume log in order. An event that doesn't match the
    current state (a second "paused" in a row, say) is skipped; the state
    machine never writes one.

    Args:
        started_at: When the session first started, or None if it never did.
        events: Pause/resume events ordered by created_at ascending.
        end_time: Upper boundary: ended_at for a finished session, now otherwise.

    Returns:
        Active seconds as a float.
    """
    if started_at is None:
        return 0.0

    active_seconds = 0.0
    span_start = started_at
    is_active = True

    for event in events:
        if event.event_type == config.EVENT_PAUSED and is_active:
            active_seconds += (event.created_at - span_start).total_seconds()
            is_active = False
        elif event.event_type == config.EVENT_RESUMED and not is_active:
            span_start = event.created_at
            is_active = True
        else:
            logger.debug(
                f"Skipping out-of-order {event.event_type} event {event.event_id}"
            )

    if is_active:
        active_seconds += (end_time - span_start).total_seconds()

    return active_seconds


def compute_time_breakdown(
    started_at: Optional[datetime],
    events: Iterable[SessionEvent],
    end_time: datetime,
) -> TimeBreakdown:
    """
    Compute total, active and paused minutes for a session.

    Pure function: same inputs always give the same result. Values are left
    unrounded; use TimeBreakdown.rounded() for display.

    Args:
        started_at: Session start, or None if never started (all zeros).
        events: Pause/resume events ordered by created_at ascending.
        end_time: The session's ended_at once it has ended, otherwise now.

    Returns:
        TimeBreakdown in minutes. Paused time is clamped at zero so clock
        skew can't make it negative.
    """
    if started_at is None:
        return TimeBreakdown()

    total_minutes = (end_time - started_at).total_seconds() / 60.0
    active_minutes = compute_active_seconds(started_at, events, end_time) / 60.0
    paused_minutes = max(0.0, total_minutes - active_minutes)

    return TimeBreakdown(
        total_minutes=total_minutes,
        active_minutes=active_minutes,
        paused_minutes=paused_minutes,
    )


def collapse_captures(captures: Iterable[Capture]) -> List[ActivitySpan]:
    """
    Merge consecutive captures of the same window into activity spans.

    Captures arrive every few seconds; a run with identical window title
    AND app name becomes one span from its first to its last capture.
    A change in either field starts a new span.

    Args:
        captures: Captures ordered by captured_at ascending.

    Returns:
        List of ActivitySpan in chronological order.
    """
    spans: List[ActivitySpan] = []
    current: Optional[ActivitySpan] = None

    for capture in captures:
        if (
            current is not None
            and current.window_title == capture.window_title
            and current.app_name == capture.app_name
        ):
            current.end_time = capture.captured_at
            continue

        if current is not None:
            spans.append(current)

        current = ActivitySpan(
            window_title=capture.window_title,
            app_name=capture.app_name,
            start_time=capture.captured_at,
            end_time=capture.captured_at,
        )

    if current is not None:
        spans.append(current)

    return spans
