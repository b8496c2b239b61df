"""
Platform permission checks for window tracking.

check_screen_permission() is the capability probe consulted before a
session starts. It answers "can this process read the focused window?"
and never raises.
"""

import shutil
import sys
import subprocess
import logging
from typing import Optional

logger = logging.getLogger(__name__)

_PERMISSION_INDICATORS = (
    "not allowed", "assistive", "-10827", "-1743", "-1728",
    "not permitted", "permission denied", "not authorized",
)


def check_screen_permission(platform: Optional[str] = None) -> bool:
    """
    Check whether window tracking is permitted on this platform.

    Args:
        platform: Override for sys.platform (used by tests).

    Returns:
        True if the focused window can be read, False otherwise.
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return check_macos_accessibility_permission()
    if platform == "win32":
        return check_windows_screen_permission()
    if platform.startswith("linux"):
        return check_linux_screen_permission()
    logger.warning(f"Window tracking is not supported on {platform}")
    return False


# ---------------------------------------------------------------------------
# macOS Accessibility / Automation
# ---------------------------------------------------------------------------

def check_macos_accessibility_permission() -> bool:
    """
    Check Automation/Accessibility permission by querying System Events.

    Returns:
        True if permission is granted, False otherwise.
    """
    script = '''
    tell application "System Events"
        set frontApp to first application process whose frontmost is true
        return name of frontApp
    end tell
    '''
    try:
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except subprocess.TimeoutExpired:
        logger.warning("AppleScript test timed out, a permission dialog may be waiting")
        return False
    except OSError as e:
        logger.warning(f"AppleScript test error: {e}")
        return False

    if result.returncode == 0 and result.stdout.strip():
        return True

    stderr = result.stderr.lower()
    if any(ind in stderr for ind in _PERMISSION_INDICATORS):
        logger.warning(f"Permission denied for AppleScript: {result.stderr.strip()}")
    else:
        logger.warning(f"AppleScript test failed: {result.stderr.strip()}")
    return False


def open_macos_accessibility_settings() -> None:
    """Open macOS System Settings to Privacy & Security > Accessibility."""
    if sys.platform != "darwin":
        return
    try:
        subprocess.run(
            ["open", "x-apple.systempreferences:com.apple.preference.security?Privacy_Accessibility"],
            check=True, timeout=10,
        )
    except (subprocess.SubprocessError, OSError) as e:
        logger.error(f"Failed to open System Settings: {e}")


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def check_windows_screen_permission() -> bool:
    """
    Test Windows window access by reading the foreground window handle.

    Returns:
        True if a foreground window is visible to this process.
    """
    try:
        import ctypes

        user32 = ctypes.windll.user32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            logger.warning("Windows screen test: No foreground window found")
            return False
        return True
    except (ImportError, AttributeError, OSError) as e:
        logger.warning(f"Windows screen test error: {e}")
        return False


# ---------------------------------------------------------------------------
# Linux (X11)
# ---------------------------------------------------------------------------

def check_linux_screen_permission() -> bool:
    """
    Linux needs no OS permission, only an X display and xdotool.

    Returns:
        True if xdotool is installed.
    """
    if shutil.which("xdotool") is None:
        logger.warning("xdotool not found; install it to enable window tracking")
        return False
    return True
