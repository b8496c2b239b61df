"""
Active window detection for capture polling.

Reports the currently focused application and its window title.

Uses platform-native APIs:
- macOS: AppleScript via subprocess
- Windows: ctypes (user32 / kernel32)
- Linux (X11): xdotool via subprocess
"""

import sys
import subprocess
import logging
from dataclasses import dataclass
from typing import Optional

from core.exceptions import ProbeError

logger = logging.getLogger(__name__)

# Seconds before a platform helper call is abandoned
_HELPER_TIMEOUT = 2


@dataclass
class WindowInfo:
    """Information about the currently active window."""
    app_name: str
    window_title: str


class WindowDetector:
    """
    Cross-platform detector for the focused window.

    get_active_window() returns None when nothing is focused and raises
    ProbeError when the platform refuses to answer (missing permission,
    helper timeout, unsupported platform). The capture poller counts
    raised errors as failures and silently skips None.
    """

    def __init__(self, platform: Optional[str] = None):
        """
        Initialize the window detector.

        Args:
            platform: Override for sys.platform (used by tests).
        """
        self.platform = platform or sys.platform

    def get_active_window(self) -> Optional[WindowInfo]:
        """
        Get information about the currently active window.

        Returns:
            WindowInfo with app name and title, or None if no window is focused.

        Raises:
            ProbeError: If the window could not be read.
        """
        if self.platform == "darwin":
            return self._get_active_window_macos()
        elif self.platform == "win32":
            return self._get_active_window_windows()
        elif self.platform.startswith("linux"):
            return self._get_active_window_linux()
        raise ProbeError(f"Unsupported platform: {self.platform}")

    def _get_active_window_macos(self) -> Optional[WindowInfo]:
        script = '''
        tell application "System Events"
            set frontApp to first application process whose frontmost is true
            set appName to name of frontApp
            try
                set windowTitle to name of front window of frontApp
            on error
                set windowTitle to ""
            end try
            return appName & "|||" & windowTitle
        end tell
        '''
        output = self._run_helper(["osascript", "-e", script])

        if "|||" in output:
            app_name, window_title = output.split("|||", 1)
        else:
            app_name, window_title = output, ""

        if not app_name:
            return None
        return WindowInfo(app_name=app_name.strip(), window_title=window_title.strip())

    def _get_active_window_windows(self) -> Optional[WindowInfo]:
        try:
            import ctypes
            from ctypes import wintypes
        except ImportError as e:
            raise ProbeError(f"ctypes not available: {e}") from e

        user32 = ctypes.windll.user32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            return None

        length = user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        user32.GetWindowTextW(hwnd, buffer, length + 1)

        pid = wintypes.DWORD()
        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))

        return WindowInfo(
            app_name=self._get_process_name_windows(pid.value),
            window_title=buffer.value,
        )

    def _get_process_name_windows(self, pid: int) -> str:
        """
        Get the executable name for a PID on Windows.

        Returns:
            Process name without ".exe", or "" if it can't be read.
        """
        import ctypes
        from ctypes import wintypes

        PROCESS_QUERY_LIMITED_INFORMATION = 0x1000

        kernel32 = ctypes.windll.kernel32
        handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
        if not handle:
            return ""
        try:
            buffer = ctypes.create_unicode_buffer(260)
            size = wintypes.DWORD(260)
            if kernel32.QueryFullProcessImageNameW(handle, 0, buffer, ctypes.byref(size)):
                return buffer.value.split("\\")[-1].replace(".exe", "")
            return ""
        finally:
            kernel32.CloseHandle(handle)

    def _get_active_window_linux(self) -> Optional[WindowInfo]:
        window_id = self._run_helper(["xdotool", "getactivewindow"])
        if not window_id:
            return None
        title = self._run_helper(["xdotool", "getwindowname", window_id])
        pid = self._run_helper(["xdotool", "getwindowpid", window_id])

        app_name = ""
        if pid.isdigit():
            try:
                with open(f"/proc/{pid}/comm", "r") as f:
                    app_name = f.read().strip()
            except OSError as e:
                logger.debug(f"Could not read process name for pid {pid}: {e}")

        return WindowInfo(app_name=app_name, window_title=title)

    def _run_helper(self, args: list) -> str:
        """
        Run a platform helper and return its trimmed stdout.

        Raises:
            ProbeError: On timeout, missing binary, or non-zero exit.
        """
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=_HELPER_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"{args[0]} timed out getting window info") from e
        except OSError as e:
            raise ProbeError(f"Could not run {args[0]}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            stderr_lower = stderr.lower()
            if "not allowed" in stderr_lower or "assistive" in stderr_lower or "-10827" in stderr_lower:
                raise ProbeError("Accessibility permission required to read the active window")
            raise ProbeError(f"{args[0]} failed with code {result.returncode}: {stderr}")

        return result.stdout.strip()

    def get_permission_instructions(self) -> str:
        """
        Get instructions for enabling window tracking permissions.

        Returns:
            Platform-specific instructions string.
        """
        if self.platform == "darwin":
            return (
                "Window tracking requires TWO permissions:\n\n"
                "1. ACCESSIBILITY permission:\n"
                "   • System Settings → Privacy & Security → Accessibility\n"
                "   • Add Unblurry (or your terminal) and enable the checkbox\n\n"
                "2. AUTOMATION permission (System Events):\n"
                "   • System Settings → Privacy & Security → Automation\n"
                "   • Enable 'System Events' under Unblurry\n\n"
                "Then start the session again."
            )
        elif self.platform == "win32":
            return (
                "Window tracking should work automatically on Windows.\n"
                "If you're having issues, try running as Administrator."
            )
        elif self.platform.startswith("linux"):
            return "Window tracking on Linux needs an X11 session with xdotool installed."
        return f"Window tracking is not supported on {self.platform}"
