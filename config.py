"""Configuration settings for Unblurry."""

import logging
import os
import sys
from pathlib import Path
from dotenv import load_dotenv


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (database, reports fallback).

    For development: BASE_DIR/data
    For bundled apps: a per-platform folder in the user's home directory
                      so data persists across updates.

    Returns:
        Path to the user data directory.
    """
    if not is_bundled():
        return Path(__file__).parent / "data"

    if sys.platform == 'darwin':
        data_dir = Path.home() / "Library" / "Application Support" / "Unblurry"
    elif sys.platform == 'win32':
        appdata = os.environ.get('APPDATA')
        if appdata:
            data_dir = Path(appdata) / "Unblurry"
        else:
            data_dir = Path.home() / "AppData" / "Roaming" / "Unblurry"
    else:
        data_dir = Path.home() / ".local" / "share" / "Unblurry"

    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        data_dir = Path.home() / ".unblurry"
        data_dir.mkdir(parents=True, exist_ok=True)

    return data_dir


# Load environment variables from .env file (only in development)
if not is_bundled():
    load_dotenv(Path(__file__).parent / ".env")

BASE_DIR = Path(__file__).parent
USER_DATA_DIR = get_user_data_dir()


def _validate_api_key_format(key: str, key_type: str) -> bool:
    """
    Validate API key format to catch configuration errors early.

    Args:
        key: The API key to validate.
        key_type: Type of key ("openai" or "gemini").

    Returns:
        True if key format looks valid, False otherwise.
    """
    if not key or len(key) < 10:
        return False

    expected_prefixes = {
        "openai": "sk-",
        "gemini": "AI",
    }
    prefix = expected_prefixes.get(key_type)
    if prefix is None:
        return True
    return key.startswith(prefix)


def _get_api_key(env_var: str, key_type: str = "") -> str:
    """
    Read an API key from the environment.

    A key with a suspicious format is still returned; the warning only
    helps spot copy/paste mistakes.
    """
    key = os.getenv(env_var, "")
    if key and key_type and not _validate_api_key_format(key, key_type):
        logging.getLogger(__name__).warning(
            f"{env_var} may have invalid format for {key_type} key"
        )
    return key


# Report provider selection
# Options: "openai" or "gemini"
REPORT_PROVIDER = os.getenv("REPORT_PROVIDER", "openai")

# OpenAI Configuration
OPENAI_API_KEY = _get_api_key("OPENAI_API_KEY", "openai")
OPENAI_REPORT_MODEL = os.getenv("OPENAI_REPORT_MODEL", "gpt-4o-mini")

# Gemini Configuration
GEMINI_API_KEY = _get_api_key("GEMINI_API_KEY", "gemini")
GEMINI_REPORT_MODEL = os.getenv("GEMINI_REPORT_MODEL", "gemini-2.0-flash")

# Seconds before a text-generation request is abandoned
AI_REQUEST_TIMEOUT = 60.0
REPORT_MAX_TOKENS = 4096
INTENT_MAX_TOKENS = 1024

# Background report generation threads
REPORT_WORKERS = 2

# Paths
DATABASE_PATH = Path(os.getenv("UNBLURRY_DB_PATH", str(USER_DATA_DIR / "unblurry.db")))

# Keys saved with `main.py apikey set`; these take precedence over .env
API_KEYS_FILE = USER_DATA_DIR / "api_keys.json"


def _get_reports_dir() -> Path:
    """Get the reports directory with fallback if Downloads doesn't exist."""
    downloads = Path.home() / "Downloads"
    if downloads.exists() and downloads.is_dir():
        return downloads
    documents = Path.home() / "Documents"
    if documents.exists() and documents.is_dir():
        return documents
    return USER_DATA_DIR / "reports"


REPORTS_DIR = _get_reports_dir()

try:
    USER_DATA_DIR.mkdir(parents=True, exist_ok=True)
except OSError as e:
    logging.getLogger(__name__).error(f"Failed to create data directory {USER_DATA_DIR}: {e}")

# Session statuses
SESSION_CREATED = "created"
SESSION_ACTIVE = "active"
SESSION_PAUSED = "paused"
SESSION_ENDED = "ended"

# Who ended a session
ENDED_BY_USER = "user"
ENDED_BY_AUTO = "auto"

# Session event types (pause/resume log)
EVENT_PAUSED = "paused"
EVENT_RESUMED = "resumed"

# Report statuses
REPORT_GENERATING = "generating"
REPORT_READY = "ready"
REPORT_FAILED = "failed"

# Pattern vocabulary accepted from the model
PATTERN_CONFIDENCES = ("high", "medium", "low")
PATTERN_TYPES = ("positive", "negative", "neutral")
EVIDENCE_TYPES = ("capture", "feeling")

# Capture polling
CAPTURE_POLL_INTERVAL = 3.0  # Seconds between active-window checks
CAPTURE_FAILURE_THRESHOLD = 10  # Consecutive probe failures before warning (~30s)
CAPTURE_PROBE_TIMEOUT = 5.0  # Seconds before a hung probe call counts as a failure

# Auto-end watchdog
AUTO_END_CHECK_INTERVAL = 60.0  # Seconds between checks
AUTO_END_WARNING_MINUTES = 450  # 7.5 hours active
AUTO_END_LIMIT_MINUTES = 480  # 8 hours active

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
