"""Tests for active-window detection and permission checks (platform helpers mocked)."""

import subprocess
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.exceptions import ProbeError
from core.permissions import check_screen_permission
from screen.window_detector import WindowDetector, WindowInfo


def _completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestMacOSDetection(unittest.TestCase):

    def setUp(self):
        self.detector = WindowDetector(platform="darwin")

    @patch("screen.window_detector.subprocess.run")
    def test_app_and_title(self, mock_run):
        mock_run.return_value = _completed(stdout="Code|||login.tsx - VS Code\n")
        self.assertEqual(
            self.detector.get_active_window(),
            WindowInfo(app_name="Code", window_title="login.tsx - VS Code"),
        )

    @patch("screen.window_detector.subprocess.run")
    def test_no_front_app(self, mock_run):
        mock_run.return_value = _completed(stdout="")
        self.assertIsNone(self.detector.get_active_window())

    @patch("screen.window_detector.subprocess.run")
    def test_permission_error_raises(self, mock_run):
        mock_run.return_value = _completed(
            stderr="System Events got an error: osascript is not allowed assistive access. (-1719)",
            returncode=1,
        )
        with self.assertRaises(ProbeError) as ctx:
            self.detector.get_active_window()
        self.assertIn("Accessibility", str(ctx.exception))

    @patch("screen.window_detector.subprocess.run")
    def test_timeout_raises(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="osascript", timeout=2)
        with self.assertRaises(ProbeError):
            self.detector.get_active_window()


class TestLinuxDetection(unittest.TestCase):

    @patch("screen.window_detector.subprocess.run")
    def test_xdotool_calls(self, mock_run):
        mock_run.side_effect = [
            _completed(stdout="12345\n"),
            _completed(stdout="README.md - Vim\n"),
            _completed(stdout="notapid\n"),
        ]
        window = WindowDetector(platform="linux").get_active_window()

        self.assertEqual(window.window_title, "README.md - Vim")
        self.assertEqual(window.app_name, "")
        self.assertEqual(mock_run.call_count, 3)

    @patch("screen.window_detector.subprocess.run")
    def test_missing_xdotool(self, mock_run):
        mock_run.side_effect = FileNotFoundError("xdotool")
        with self.assertRaises(ProbeError):
            WindowDetector(platform="linux").get_active_window()


class TestUnsupported(unittest.TestCase):

    def test_unknown_platform_raises(self):
        with self.assertRaises(ProbeError):
            WindowDetector(platform="sunos5").get_active_window()

    def test_permission_instructions(self):
        self.assertIn("Accessibility", WindowDetector(platform="darwin").get_permission_instructions())
        self.assertIn("xdotool", WindowDetector(platform="linux").get_permission_instructions())


class TestCheckScreenPermission(unittest.TestCase):

    @patch("core.permissions.subprocess.run")
    def test_macos_granted(self, mock_run):
        mock_run.return_value = _completed(stdout="Finder\n")
        self.assertTrue(check_screen_permission(platform="darwin"))

    @patch("core.permissions.subprocess.run")
    def test_macos_denied(self, mock_run):
        mock_run.return_value = _completed(stderr="Not authorized to send Apple events (-1743)", returncode=1)
        self.assertFalse(check_screen_permission(platform="darwin"))

    @patch("core.permissions.subprocess.run")
    def test_macos_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="osascript", timeout=5)
        self.assertFalse(check_screen_permission(platform="darwin"))

    @patch("core.permissions.shutil.which")
    def test_linux_requires_xdotool(self, mock_which):
        mock_which.return_value = None
        self.assertFalse(check_screen_permission(platform="linux"))
        mock_which.return_value = "/usr/bin/xdotool"
        self.assertTrue(check_screen_permission(platform="linux"))

    def test_unsupported_platform(self):
        self.assertFalse(check_screen_permission(platform="sunos5"))


if __name__ == "__main__":
    unittest.main()
