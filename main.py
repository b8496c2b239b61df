#!/usr/bin/env python3
"""
Unblurry - Main Entry Point

Tracks which window you're working in against an intent you set, lets you
log how you feel along the way, and asks an AI model for a behavioral
report when the session ends.

Usage:
    python main.py                      # Track a new session (default)
    python main.py sessions             # List past sessions
    python main.py report <session_id>  # Show a session's report
    python main.py retry <session_id>   # Retry a failed report
    python main.py export <session_id>  # Export a ready report to PDF
    python main.py apikey set           # Check and save an API key
"""

import sys
import getpass
import logging
import argparse
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import config
from ai.api_keys import PROVIDERS, ApiKeyStore
from core.engine import AppContext
from core.permissions import open_macos_accessibility_settings
from instance_lock import InstanceLock
from screen.window_detector import WindowDetector
from tracking.analytics import format_duration
from tracking.models import ParsedReport, SessionSummary

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Suppress noisy third-party library logs (HTTP requests, etc.)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)

# How long `track` waits for the report before telling the user to check later
REPORT_WAIT_SECONDS = config.AI_REQUEST_TIMEOUT * 2

DEFAULT_PROVIDER = config.REPORT_PROVIDER.lower() if config.REPORT_PROVIDER.lower() in PROVIDERS else "openai"


def _print_summary(summary: SessionSummary) -> None:
    print("\n" + "=" * 60)
    print("Session Summary")
    print("=" * 60)
    print(f"  Total:    {format_duration(summary.total_minutes * 60)}")
    print(f"  Active:   {format_duration(summary.active_minutes * 60)}")
    print(f"  Paused:   {format_duration(summary.paused_minutes * 60)}")
    print(f"  Captures: {summary.capture_count}")
    print(f"  Feelings: {summary.feeling_count}")


def _print_report(result: Dict[str, Any]) -> None:
    status = result["status"]
    if status == config.REPORT_GENERATING:
        print("\nReport is still being generated. Check again with `report <session_id>`.")
        return
    if status == config.REPORT_FAILED:
        print("\nReport generation failed. Run `retry <session_id>` to try again.")
        return

    report: ParsedReport = result["report"]
    session = result["session"]
    print("\n" + "=" * 60)
    print(f"Report: {session['name']}")
    print("=" * 60)
    print(f"Intent: {session['intent']}")
    print(
        f"Time:   {session['total_minutes']} min total, "
        f"{session['active_minutes']} active, {session['paused_minutes']} paused"
    )
    print(f"\n{report.verdict}")

    if report.patterns:
        print("\nPatterns:")
        for pattern in report.patterns:
            print(f"  [{pattern.type}/{pattern.confidence}] {pattern.name}")
            print(f"      {pattern.description}")
            for item in pattern.evidence:
                print(f"      - ({item.type}) {item.description}")

    if report.suggestions:
        print("\nSuggestions:")
        for suggestion in report.suggestions:
            print(f"  • {suggestion.text}")


def _ask(prompt: str) -> str:
    try:
        return input(prompt)
    except EOFError:
        return ""


def _settle_intent(app: AppContext, created: Dict[str, Any]) -> None:
    """Run the clarification round when the intent came back vague."""
    if created.get("error"):
        print(f"(Intent check unavailable: {created['error']})")
    if created["status"] != "vague":
        print(f"Intent: {created['final_intent']}")
        return

    print("\nYour intent is a bit broad. A couple of questions:")
    answers: List[str] = []
    for question in created["clarifying_questions"]:
        answers.append(_ask(f"  {question}\n  > ").strip())

    session_id = created["session_id"]
    original = app.sessions.get_session(session_id).original_intent
    if not any(answers):
        app.confirm_intent(session_id, original)
        print(f"Intent: {original}")
        return

    refined = app.clarify_intent(session_id, [a for a in answers if a])
    if refined["success"]:
        print(f"Refined intent: {refined['refined_intent']}")
    else:
        print(f"Couldn't refine intent ({refined['error']}), keeping your original.")
        app.confirm_intent(session_id, original)


def _start_with_permission(app: AppContext, session_id: str) -> bool:
    """Start the session, walking the user through permission setup if needed."""
    detector = WindowDetector()
    while True:
        result = app.start_session(session_id)
        if result["success"]:
            return True
        if result["error_type"] != "permission_denied":
            print(f"Could not start session: {result['error']}")
            return False

        print("\n" + detector.get_permission_instructions())
        open_macos_accessibility_settings()
        if _ask("\nPress Enter to try again, or 'q' to quit: ").strip().lower() == "q":
            return False


def run_track(app: AppContext, args: argparse.Namespace) -> int:
    """Create, run and end one session from the terminal."""
    print("\n" + "=" * 60)
    print("Unblurry")
    print("=" * 60)

    name = args.name if args.name is not None else _ask("Session name (optional): ")
    intent = args.intent if args.intent is not None else _ask("What do you intend to work on? ")

    created = app.create_session(name, intent)
    if not created["success"]:
        print(f"Could not create session: {created['error']}")
        return 1
    session_id = created["session_id"]
    _settle_intent(app, created)

    auto_ended = threading.Event()
    app.on_capture_warning = lambda: print(
        "\n[!] Can't read the active window. Check your permissions; tracking continues."
    )
    app.on_capture_warning_cleared = lambda: print("\n[ok] Active window readable again.")
    app.on_auto_end_warning = lambda sid, minutes: print(
        f"\n[!] {minutes:.0f} active minutes. The session ends automatically at "
        f"{config.AUTO_END_LIMIT_MINUTES}."
    )

    def _on_auto_end(sid: str, summary: SessionSummary) -> None:
        auto_ended.set()
        print("\n[!] Session reached the time limit and was ended. Press Enter.")

    app.on_auto_end_triggered = _on_auto_end

    if not _start_with_permission(app, session_id):
        return 1

    print("\nTracking. Commands: p = pause, r = resume, f <text> = log a feeling, "
          "s = status, q or Enter = end\n")

    summary: Optional[SessionSummary] = None
    try:
        while not auto_ended.is_set():
            line = _ask("> ").strip()
            if auto_ended.is_set():
                break
            command, _, rest = line.partition(" ")
            command = command.lower()

            if command in ("", "q"):
                ended = app.end_session(session_id)
                if ended["success"]:
                    summary = ended["summary"]
                else:
                    print(ended["error"])
                break
            elif command == "p":
                result = app.pause_session(session_id)
                print("Paused." if result["success"] else result["error"])
            elif command == "r":
                result = app.resume_session(session_id)
                print("Resumed." if result["success"] else result["error"])
            elif command == "f":
                result = app.log_feeling(session_id, rest)
                print("Noted." if result["success"] else result["error"])
            elif command == "s":
                status = app.get_status()
                print(f"{status['status']}: {status.get('active_minutes', 0)} active min")
            else:
                print("Unknown command.")
    except KeyboardInterrupt:
        print("\nEnding session...")
        ended = app.end_session(session_id)
        if ended["success"]:
            summary = ended["summary"]

    if summary is not None:
        _print_summary(summary)

    print("\nGenerating report...")
    if not app.reports.wait_for_pending(timeout=REPORT_WAIT_SECONDS):
        logger.warning("Report still generating after wait timeout")
    _print_report(app.get_report(session_id))
    print(f"\nSession id: {session_id}")
    return 0


def run_sessions(app: AppContext, args: argparse.Namespace) -> int:
    entries = app.dashboard_sessions(limit=args.limit)
    if not entries:
        print("No completed sessions yet.")
        return 0
    for entry in entries:
        ended_at = entry["ended_at"].astimezone().strftime("%Y-%m-%d %H:%M") if entry["ended_at"] else "-"
        report_flag = "report" if entry["has_report"] else "no report"
        print(
            f"{entry['session_id']}  {ended_at}  {entry['duration_minutes']:>6} min  "
            f"[{report_flag}]  {entry['name']}: {entry['intent']}"
        )
    return 0


def run_report(app: AppContext, args: argparse.Namespace) -> int:
    if app.sessions.get_session(args.session_id) is None:
        print(f"Session not found: {args.session_id}")
        return 1
    _print_report(app.get_report(args.session_id))
    return 0


def run_retry(app: AppContext, args: argparse.Namespace) -> int:
    result = app.retry_report(args.session_id)
    if not result["success"]:
        print(result["error"])
        return 1
    print("Retrying report generation...")
    app.reports.wait_for_pending(timeout=REPORT_WAIT_SECONDS)
    _print_report(app.get_report(args.session_id))
    return 0


def run_export(app: AppContext, args: argparse.Namespace) -> int:
    output_dir = Path(args.output_dir) if args.output_dir else None
    result = app.export_report_pdf(args.session_id, output_dir)
    if not result["success"]:
        print(f"Export failed: {result['error']}")
        return 1
    print(f"Report saved: {result['report_path']}")
    return 0


def run_apikey(args: argparse.Namespace, store: Optional[ApiKeyStore] = None) -> int:
    """Check, save or delete the API key for a report provider."""
    store = store or ApiKeyStore()
    provider = args.provider

    if args.action == "delete":
        if store.delete_key(provider):
            print(f"Deleted saved {provider} API key.")
        else:
            print(f"No saved {provider} API key.")
        if store.key_source(provider) == "env":
            print("A key from the environment (.env) is still in use.")
        return 0

    if args.action == "check":
        source = store.key_source(provider)
        if source is None:
            print(f"No {provider} API key configured. Run `apikey set` to add one.")
            return 1
        key = store.get_key(provider)
    else:
        key = args.key or getpass.getpass(f"{provider} API key: ")
        source = None

    print("Checking key...")
    result = store.validate_key(key, provider)
    if not result["valid"]:
        print(f"Key rejected: {result['error']}")
        return 1

    if args.action == "set":
        path = store.save_key(key, provider)
        print(f"Key saved to {path}")
    else:
        origin = "saved key" if source == "saved" else "key from .env"
        print(f"{provider} {origin} looks valid.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Unblurry - intent-based self-tracking with AI reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          Track a new session
  python main.py track --intent "Fix login bug"
  python main.py sessions                 List past sessions
  python main.py export <session_id>      Save a report as PDF
  python main.py apikey set --provider gemini
        """
    )
    subparsers = parser.add_subparsers(dest="command")

    track = subparsers.add_parser("track", help="Track a new session (default)")
    track.add_argument("--name", help="Session display name")
    track.add_argument("--intent", help="What you intend to work on")

    sessions = subparsers.add_parser("sessions", help="List completed sessions")
    sessions.add_argument("--limit", type=int, default=20)

    report = subparsers.add_parser("report", help="Show a session's report")
    report.add_argument("session_id")

    retry = subparsers.add_parser("retry", help="Retry a failed report")
    retry.add_argument("session_id")

    export = subparsers.add_parser("export", help="Export a ready report to PDF")
    export.add_argument("session_id")
    export.add_argument("--output-dir", help=f"Directory for the PDF (default: {config.REPORTS_DIR})")

    apikey = subparsers.add_parser("apikey", help="Check, save or delete an API key")
    apikey.add_argument("action", choices=["check", "set", "delete"])
    apikey.add_argument("--provider", choices=PROVIDERS, default=DEFAULT_PROVIDER)
    apikey.add_argument("--key", help="Key to save (prompted for when omitted)")

    return parser


COMMANDS = {
    "track": run_track,
    "sessions": run_sessions,
    "report": run_report,
    "retry": run_retry,
    "export": run_export,
}

# Commands that don't touch the session database
STANDALONE_COMMANDS = {
    "apikey": run_apikey,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, recover from the previous run and dispatch the command."""
    argv = list(sys.argv[1:] if argv is None else argv)
    # Flags without a command (e.g. `--intent x`) belong to the default track command
    if not argv or argv[0] not in (*COMMANDS, *STANDALONE_COMMANDS, "-h", "--help"):
        argv = ["track"] + argv
    args = build_parser().parse_args(argv)

    if args.command in STANDALONE_COMMANDS:
        return STANDALONE_COMMANDS[args.command](args)

    lock = InstanceLock()
    if not lock.acquire():
        pid = lock.read_owner_pid()
        pid_info = f" (PID: {pid})" if pid else ""
        print(f"\nUnblurry is already running{pid_info}.")
        print("Only one instance can run at a time.\n")
        return 1

    app = AppContext()
    try:
        recovery = app.launch(start_watchdog=args.command == "track")
        if recovery["last_stale"] is not None:
            stale, summary = recovery["last_stale"]
            print(f"Ended unfinished session '{stale.name}' from last time "
                  f"({summary.active_minutes} active min). Its report is being generated.")
        return COMMANDS[args.command](app, args)
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        return 1
    finally:
        app.shutdown()
        lock.release()


if __name__ == "__main__":
    sys.exit(main())
