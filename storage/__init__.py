"""
Persistence package for Unblurry.

A single SQLite database holds sessions and the events, captures,
feelings and reports each session owns.
"""

from storage.database import Database
from storage.repositories import Repositories

__all__ = ["Database", "Repositories"]
