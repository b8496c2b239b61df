"""Prompt assembly and response validation for session reports."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple

import config
from ai.json_utils import is_non_empty_str, load_json_object
from core.exceptions import ReportParseError
from tracking.models import (
    ActivitySpan,
    Feeling,
    ParsedReport,
    ReportEvidence,
    ReportPattern,
    ReportSuggestion,
    SessionEvent,
    TimeBreakdown,
)

logger = logging.getLogger(__name__)


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2024-01-01T09:00:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _build_timeline(
    spans: Sequence[ActivitySpan],
    feelings: Sequence[Feeling],
    events: Sequence[SessionEvent],
) -> List[str]:
    """Interleave activity spans, feelings and pause/resume markers by time."""
    entries: List[Tuple[datetime, int, str]] = []

    for span in spans:
        entries.append((
            span.start_time, 0,
            f"{format_timestamp(span.start_time)} to {format_timestamp(span.end_time)} "
            f"({span.duration_minutes:.1f} min) [{span.app_name}] {span.window_title}",
        ))
    for event in events:
        marker = "[PAUSE]" if event.event_type == config.EVENT_PAUSED else "[RESUME]"
        entries.append((event.created_at, 1, f"{format_timestamp(event.created_at)} {marker}"))
    for feeling in feelings:
        entries.append((
            feeling.created_at, 2,
            f'{format_timestamp(feeling.created_at)} [FEELING] "{feeling.text}"',
        ))

    entries.sort(key=lambda e: (e[0], e[1]))
    return [text for _, _, text in entries]


def build_report_prompt(
    intent: str,
    breakdown: TimeBreakdown,
    spans: Sequence[ActivitySpan],
    feelings: Sequence[Feeling],
    events: Sequence[SessionEvent],
) -> str:
    """
    Create the report prompt for one session.

    Only the intent, timing, window activity and the user's own notes are
    included; nothing identifying the user or their computer.

    Args:
        intent: Final intent if confirmed, otherwise the original intent.
        breakdown: Time breakdown, already rounded to one decimal.
        spans: Collapsed capture spans in chronological order.
        feelings: Feeling notes in chronological order.
        events: Pause/resume events in chronological order.

    Returns:
        Prompt string.
    """
    timeline = _build_timeline(spans, feelings, events)
    timeline_str = "\n".join(f"- {line}" for line in timeline) if timeline else "No activity recorded"

    return f"""You are analyzing a single focused work session. Compare what the person actually did with what they intended to do, and connect their activity to how they said they felt.

Intent: "{intent}"

Session Statistics:
- Total Duration: {breakdown.total_minutes:.1f} minutes
- Active Time: {breakdown.active_minutes:.1f} minutes
- Paused Time: {breakdown.paused_minutes:.1f} minutes
- Feelings Logged: {len(feelings)}

Timeline (window activity, [PAUSE]/[RESUME] markers and [FEELING] notes, in order):
{timeline_str}

Identify the behavioral patterns in this session. For each pattern give a confidence:
- "high": several pieces of evidence clearly show it
- "medium": some evidence points to it
- "low": a plausible reading of thin evidence

Each pattern is "positive" (helped the intent), "negative" (worked against it) or "neutral".
Cite evidence using the timestamps above. Evidence "type" is "capture" for window activity or "feeling" for a note.
Write suggestions that each address one named pattern.

Respond with ONLY valid JSON in this exact format, no other text:
{{
  "verdict": "2-3 sentences on whether the session served the intent",
  "patterns": [
    {{
      "name": "short pattern name",
      "confidence": "high",
      "type": "positive",
      "description": "what happened and why it matters",
      "evidence": [
        {{
          "type": "capture",
          "description": "what the evidence shows",
          "start_time": "2024-01-01T09:00:00.000Z",
          "end_time": "2024-01-01T09:45:00.000Z"
        }}
      ]
    }}
  ],
  "suggestions": [
    {{
      "text": "one concrete thing to try next session",
      "addresses_pattern": "short pattern name"
    }}
  ]
}}"""


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------

def _parse_evidence(raw: Any, pattern_name: str) -> ReportEvidence:
    if not isinstance(raw, dict):
        raise ReportParseError(f"Pattern '{pattern_name}' has evidence that is not an object")
    if raw.get("type") not in config.EVIDENCE_TYPES:
        raise ReportParseError(
            f"Pattern '{pattern_name}' has evidence with invalid type: {raw.get('type')}"
        )
    if not isinstance(raw.get("description"), str):
        raise ReportParseError(f"Pattern '{pattern_name}' has evidence missing description")
    if not is_non_empty_str(raw.get("start_time")):
        raise ReportParseError(f"Pattern '{pattern_name}' has evidence missing start_time")
    end_time = raw.get("end_time")
    if end_time is not None and not isinstance(end_time, str):
        raise ReportParseError(f"Pattern '{pattern_name}' has evidence with invalid end_time")

    return ReportEvidence(
        type=raw["type"],
        description=raw["description"],
        start_time=raw["start_time"],
        end_time=end_time,
    )


def _parse_pattern(raw: Any, index: int) -> ReportPattern:
    if not isinstance(raw, dict):
        raise ReportParseError(f"Pattern {index} is not an object")
    name = raw.get("name")
    if not is_non_empty_str(name):
        raise ReportParseError(f"Pattern {index} missing name")
    if raw.get("confidence") not in config.PATTERN_CONFIDENCES:
        raise ReportParseError(f"Pattern '{name}' has invalid confidence: {raw.get('confidence')}")
    if raw.get("type") not in config.PATTERN_TYPES:
        raise ReportParseError(f"Pattern '{name}' has invalid type: {raw.get('type')}")
    if not isinstance(raw.get("description"), str):
        raise ReportParseError(f"Pattern '{name}' missing description")
    if not isinstance(raw.get("evidence"), list):
        raise ReportParseError(f"Pattern '{name}' missing evidence list")

    return ReportPattern(
        name=name,
        confidence=raw["confidence"],
        type=raw["type"],
        description=raw["description"],
        evidence=[_parse_evidence(item, name) for item in raw["evidence"]],
    )


def _parse_suggestion(raw: Any, index: int) -> ReportSuggestion:
    if not isinstance(raw, dict):
        raise ReportParseError(f"Suggestion {index} is not an object")
    if not is_non_empty_str(raw.get("text")):
        raise ReportParseError(f"Suggestion {index} missing text")
    if not isinstance(raw.get("addresses_pattern"), str):
        raise ReportParseError(f"Suggestion {index} missing addresses_pattern")
    return ReportSuggestion(text=raw["text"], addresses_pattern=raw["addresses_pattern"])


def validate_report(data: Dict[str, Any]) -> ParsedReport:
    """
    Validate a decoded report object.

    Raises:
        ReportParseError: On any structural violation. Nothing is coerced.
    """
    if not is_non_empty_str(data.get("verdict")):
        raise ReportParseError("Report missing verdict")
    if not isinstance(data.get("patterns"), list):
        raise ReportParseError("Report missing patterns array")
    if not isinstance(data.get("suggestions"), list):
        raise ReportParseError("Report missing suggestions array")

    return ParsedReport(
        verdict=data["verdict"],
        patterns=[_parse_pattern(p, i) for i, p in enumerate(data["patterns"])],
        suggestions=[_parse_suggestion(s, i) for i, s in enumerate(data["suggestions"])],
    )


def parse_report_response(content: str) -> ParsedReport:
    """
    Parse the model's raw report text.

    Args:
        content: Raw response, possibly with prose or a code fence around the JSON.

    Returns:
        ParsedReport

    Raises:
        ReportParseError: If no JSON object is found, it doesn't decode, or
            it doesn't match the report schema.
    """
    data = load_json_object(content, ReportParseError)
    return validate_report(data)


def serialize_report(report: ParsedReport) -> Tuple[str, str, str]:
    """Split a parsed report into the (summary, patterns, suggestions) stored columns."""
    data = report.to_dict()
    return (
        report.verdict,
        json.dumps(data["patterns"]),
        json.dumps(data["suggestions"]),
    )


def deserialize_report(summary: str, patterns: str, suggestions: str) -> ParsedReport:
    """Rebuild a ParsedReport from stored columns, validating it again."""
    try:
        data = {
            "verdict": summary,
            "patterns": json.loads(patterns or "[]"),
            "suggestions": json.loads(suggestions or "[]"),
        }
    except json.JSONDecodeError as e:
        raise ReportParseError("Stored report is not valid JSON") from e
    return validate_report(data)
