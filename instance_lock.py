"""
Instance lock: at most one Unblurry process per data directory.

Launch recovery ends every live session it finds, which is only correct if
no other process is still tracking one. The lock is an OS-level file lock,
released automatically when the process exits, even on a crash:
- Unix (macOS/Linux): fcntl.flock()
- Windows: msvcrt.locking()
"""

import os
import sys
import logging
from pathlib import Path
from typing import IO, Optional

import config

logger = logging.getLogger(__name__)

# Bytes locked on Windows; msvcrt can't lock an empty region
_WIN_LOCK_BYTES = 32


def default_lock_path() -> Path:
    return Path(config.DATABASE_PATH).parent / ".unblurry_instance.lock"


class InstanceLock:
    """
    Cross-platform non-blocking file lock.

    Usage:
        with InstanceLock() as lock:
            if not lock.is_acquired():
                sys.exit(1)
            ...
    """

    def __init__(self, lock_file: Optional[Path] = None):
        """
        Args:
            lock_file: Path to lock file (default: next to the database).
        """
        self.lock_file = Path(lock_file) if lock_file is not None else default_lock_path()
        self._handle: Optional[IO] = None

    def acquire(self) -> bool:
        """
        Try to take the lock without blocking.

        Returns:
            True if acquired, False if another process holds it.
        """
        if self._handle is not None:
            return True

        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_file, "a+b")
        try:
            if sys.platform == "win32":
                import msvcrt
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, _WIN_LOCK_BYTES)
            else:
                import fcntl
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.close()
            logger.debug(f"Instance lock held by another process: {self.lock_file}")
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()).encode("utf-8").ljust(_WIN_LOCK_BYTES, b"\0"))
        handle.flush()
        self._handle = handle
        logger.debug(f"Instance lock acquired (PID: {os.getpid()})")
        return True

    def release(self) -> None:
        """Release the lock. Closing the file releases it on every platform."""
        if self._handle is None:
            return
        if sys.platform == "win32":
            import msvcrt
            try:
                self._handle.seek(0)
                msvcrt.locking(self._handle.fileno(), msvcrt.LK_UNLCK, _WIN_LOCK_BYTES)
            except OSError as e:
                logger.debug(f"Unlock failed, closing handle anyway: {e}")
        self._handle.close()
        self._handle = None
        logger.debug("Instance lock released")

    def is_acquired(self) -> bool:
        return self._handle is not None

    def read_owner_pid(self) -> Optional[int]:
        """PID written by the current holder, or None if unreadable."""
        try:
            content = self.lock_file.read_bytes().rstrip(b"\0").strip()
        except OSError:
            return None
        return int(content) if content.isdigit() else None

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False
