"""Tests for the command-line entry point."""

import io
import sys
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from tests.support import FakeClock


class TestParser(unittest.TestCase):

    def test_subcommands(self):
        parser = main.build_parser()
        args = parser.parse_args(["sessions", "--limit", "5"])
        self.assertEqual(args.command, "sessions")
        self.assertEqual(args.limit, 5)

        args = parser.parse_args(["export", "abc", "--output-dir", "/tmp/out"])
        self.assertEqual(args.session_id, "abc")
        self.assertEqual(args.output_dir, "/tmp/out")

    def test_every_subcommand_has_a_handler(self):
        parser = main.build_parser()
        for command in ("track", "sessions", "report", "retry", "export"):
            self.assertIn(command, main.COMMANDS)
            self.assertIsNotNone(parser.parse_args([command] + (["x"] if command in ("report", "retry", "export") else [])))
        self.assertIn("apikey", main.STANDALONE_COMMANDS)
        self.assertEqual(parser.parse_args(["apikey", "check"]).action, "check")


class TestDefaultCommand(unittest.TestCase):

    @patch("main.AppContext")
    @patch("main.InstanceLock")
    def _dispatch(self, argv, mock_lock_cls, mock_app_cls):
        mock_lock_cls.return_value.acquire.return_value = True
        mock_app_cls.return_value.launch.return_value = {"last_stale": None}
        captured = {}

        def fake_track(app, args):
            captured["args"] = args
            return 0

        with patch.dict(main.COMMANDS, {"track": fake_track}):
            code = main.main(argv)
        return code, captured["args"], mock_app_cls.return_value

    def test_no_arguments_tracks(self):
        code, args, app = self._dispatch([])
        self.assertEqual(code, 0)
        self.assertEqual(args.command, "track")
        app.launch.assert_called_once_with(start_watchdog=True)

    def test_track_flags_without_command(self):
        code, args, _ = self._dispatch(["--intent", "Fix login bug", "--name", "Morning"])
        self.assertEqual(code, 0)
        self.assertEqual(args.command, "track")
        self.assertEqual(args.intent, "Fix login bug")
        self.assertEqual(args.name, "Morning")


class TestApiKeyCommand(unittest.TestCase):

    def setUp(self):
        self.store = MagicMock()

    def _run(self, *argv):
        args = main.build_parser().parse_args(["apikey", *argv])
        out = io.StringIO()
        with redirect_stdout(out):
            code = main.run_apikey(args, store=self.store)
        return code, out.getvalue()

    def test_set_validates_then_saves(self):
        self.store.validate_key.return_value = {"valid": True, "error": None}
        self.store.save_key.return_value = Path("/tmp/api_keys.json")

        code, out = self._run("set", "--provider", "openai", "--key", "sk-test-key-123")

        self.assertEqual(code, 0)
        self.store.validate_key.assert_called_once_with("sk-test-key-123", "openai")
        self.store.save_key.assert_called_once_with("sk-test-key-123", "openai")
        self.assertIn("Key saved", out)

    def test_rejected_key_not_saved(self):
        self.store.validate_key.return_value = {"valid": False, "error": "Invalid API key."}

        code, out = self._run("set", "--provider", "gemini", "--key", "AIza-bad")

        self.assertEqual(code, 1)
        self.store.save_key.assert_not_called()
        self.assertIn("Invalid API key.", out)

    @patch("main.getpass.getpass", return_value="sk-typed-key-123")
    def test_set_prompts_for_key(self, mock_getpass):
        self.store.validate_key.return_value = {"valid": True, "error": None}
        self._run("set", "--provider", "openai")
        self.store.save_key.assert_called_once_with("sk-typed-key-123", "openai")

    def test_check_without_key(self):
        self.store.key_source.return_value = None
        code, out = self._run("check", "--provider", "openai")
        self.assertEqual(code, 1)
        self.assertIn("No openai API key configured", out)
        self.store.validate_key.assert_not_called()

    def test_check_env_key(self):
        self.store.key_source.return_value = "env"
        self.store.get_key.return_value = "sk-from-env-000"
        self.store.validate_key.return_value = {"valid": True, "error": None}

        code, out = self._run("check", "--provider", "openai")

        self.assertEqual(code, 0)
        self.assertIn("key from .env looks valid", out)
        self.store.save_key.assert_not_called()

    def test_delete(self):
        self.store.delete_key.return_value = True
        self.store.key_source.return_value = None
        code, out = self._run("delete", "--provider", "gemini")
        self.assertEqual(code, 0)
        self.assertIn("Deleted saved gemini API key", out)

    @patch("main.AppContext")
    @patch("main.InstanceLock")
    @patch("main.ApiKeyStore")
    def test_apikey_skips_lock_and_launch(self, mock_store_cls, mock_lock_cls, mock_app_cls):
        mock_store_cls.return_value.delete_key.return_value = False
        mock_store_cls.return_value.key_source.return_value = None
        with redirect_stdout(io.StringIO()):
            code = main.main(["apikey", "delete", "--provider", "openai"])
        self.assertEqual(code, 0)
        mock_lock_cls.assert_not_called()
        mock_app_cls.assert_not_called()


class TestMain(unittest.TestCase):

    @patch("main.AppContext")
    @patch("main.InstanceLock")
    def test_second_instance_exits(self, mock_lock_cls, mock_app_cls):
        mock_lock_cls.return_value.acquire.return_value = False
        mock_lock_cls.return_value.read_owner_pid.return_value = 4242

        out = io.StringIO()
        with redirect_stdout(out):
            code = main.main(["sessions"])

        self.assertEqual(code, 1)
        self.assertIn("4242", out.getvalue())
        mock_app_cls.assert_not_called()

    @patch("main.AppContext")
    @patch("main.InstanceLock")
    def test_sessions_command(self, mock_lock_cls, mock_app_cls):
        mock_lock_cls.return_value.acquire.return_value = True
        app = mock_app_cls.return_value
        app.launch.return_value = {"last_stale": None}
        app.dashboard_sessions.return_value = [{
            "session_id": "s1",
            "name": "Morning",
            "intent": "Write tests",
            "ended_at": FakeClock()(),
            "ended_by": "user",
            "duration_minutes": 42.0,
            "active_minutes": 40.0,
            "has_report": True,
        }]

        out = io.StringIO()
        with redirect_stdout(out):
            code = main.main(["sessions", "--limit", "3"])

        self.assertEqual(code, 0)
        self.assertIn("Morning: Write tests", out.getvalue())
        app.launch.assert_called_once_with(start_watchdog=False)
        app.dashboard_sessions.assert_called_once_with(limit=3)
        app.shutdown.assert_called_once()
        mock_lock_cls.return_value.release.assert_called_once()

    @patch("main.AppContext")
    @patch("main.InstanceLock")
    def test_export_failure(self, mock_lock_cls, mock_app_cls):
        mock_lock_cls.return_value.acquire.return_value = True
        app = mock_app_cls.return_value
        app.launch.return_value = {"last_stale": None}
        app.export_report_pdf.return_value = {
            "success": False, "error": "Report is failed", "error_type": "not_ready",
        }

        out = io.StringIO()
        with redirect_stdout(out):
            code = main.main(["export", "s1"])

        self.assertEqual(code, 1)
        self.assertIn("Report is failed", out.getvalue())


if __name__ == "__main__":
    unittest.main()
