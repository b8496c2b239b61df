"""Shared fixtures for the unit tests."""

import json
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from storage.database import Database
from storage.repositories import Repositories

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

VALID_REPORT = {
    "verdict": "Good focused session overall.",
    "patterns": [
        {
            "name": "Deep Focus",
            "confidence": "high",
            "type": "positive",
            "description": "Stayed on task for 45 minutes",
            "evidence": [
                {
                    "type": "capture",
                    "description": "VS Code active for 45 min",
                    "start_time": "2024-01-01T09:00:00.000Z",
                    "end_time": "2024-01-01T09:45:00.000Z",
                }
            ],
        }
    ],
    "suggestions": [
        {"text": "Take a short break after 45 minutes", "addresses_pattern": "Deep Focus"}
    ],
}


class FakeClock:
    """Manually advanced clock, callable like utcnow()."""

    def __init__(self, start: datetime = T0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        with self._lock:
            self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
            return self.now


class FakeTextGenerator:
    """Records prompts and returns a canned response (or raises one)."""

    def __init__(self, response=None, error: Exception = None):
        self.response = json.dumps(VALID_REPORT) if response is None else response
        self.error = error
        self.prompts = []

    def generate(self, prompt: str, max_tokens: int = 0) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class FakeWindow:
    def __init__(self, app_name: str, window_title: str):
        self.app_name = app_name
        self.window_title = window_title


def make_repos() -> Repositories:
    db = Database(":memory:")
    db.initialize()
    return Repositories(db)
