"""Tests for saved API keys and key validation (API clients mocked)."""

import os
import stat
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import openai
from google.api_core import exceptions as google_exceptions

sys.path.insert(0, str(Path(__file__).parent.parent))

from ai.api_keys import ApiKeyStore


def _openai_error(cls, status):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return cls("rejected", response=httpx.Response(status, request=request), body=None)


class KeyStoreTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.keys_file = Path(self.tmp.name) / "data" / "api_keys.json"
        self.store = ApiKeyStore(self.keys_file, env_keys={})

    def tearDown(self):
        self.tmp.cleanup()


class TestKeyStorage(KeyStoreTestCase):

    def test_no_key(self):
        self.assertFalse(self.store.has_key("openai"))
        self.assertEqual(self.store.get_key("gemini"), "")
        self.assertIsNone(self.store.key_source("openai"))

    def test_save_and_read(self):
        path = self.store.save_key("  sk-test-key-123  ", "openai")

        self.assertEqual(path, self.keys_file)
        self.assertEqual(self.store.get_key("openai"), "sk-test-key-123")
        self.assertEqual(self.store.key_source("openai"), "saved")
        self.assertFalse(self.store.has_key("gemini"))

    @unittest.skipIf(sys.platform == "win32", "POSIX permissions")
    def test_saved_file_is_owner_only(self):
        self.store.save_key("sk-test-key-123", "openai")
        mode = stat.S_IMODE(os.stat(self.keys_file).st_mode)
        self.assertEqual(mode, stat.S_IRUSR | stat.S_IWUSR)

    def test_env_key_is_fallback(self):
        store = ApiKeyStore(self.keys_file, env_keys={"openai": "sk-from-env-000"})
        self.assertEqual(store.get_key("openai"), "sk-from-env-000")
        self.assertEqual(store.key_source("openai"), "env")

        store.save_key("sk-saved-key-123", "openai")
        self.assertEqual(store.get_key("openai"), "sk-saved-key-123")

        store.delete_key("openai")
        self.assertEqual(store.get_key("openai"), "sk-from-env-000")

    def test_delete(self):
        self.store.save_key("sk-test-key-123", "openai")
        self.store.save_key("AIza-test-key", "gemini")

        self.assertTrue(self.store.delete_key("openai"))
        self.assertFalse(self.store.has_key("openai"))
        self.assertTrue(self.store.has_key("gemini"))

        self.assertTrue(self.store.delete_key("gemini"))
        self.assertFalse(self.keys_file.exists())
        self.assertFalse(self.store.delete_key("gemini"))

    def test_empty_key_not_saved(self):
        with self.assertRaises(ValueError):
            self.store.save_key("   ", "openai")

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            self.store.get_key("claude")

    def test_corrupt_file_reads_as_empty(self):
        self.keys_file.parent.mkdir(parents=True)
        self.keys_file.write_text("{not json")
        self.assertFalse(self.store.has_key("openai"))

        self.store.save_key("sk-test-key-123", "openai")
        self.assertEqual(self.store.get_key("openai"), "sk-test-key-123")


class TestValidateOpenAIKey(KeyStoreTestCase):

    @patch("ai.providers.OpenAI")
    def test_valid_key(self, mock_openai):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "{"
        mock_openai.return_value.chat.completions.create.return_value = response

        result = self.store.validate_key("sk-test-key-123", "openai")

        self.assertEqual(result, {"valid": True, "error": None})
        kwargs = mock_openai.return_value.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["max_tokens"], 1)
        mock_openai.assert_called_once()
        self.assertEqual(mock_openai.call_args.kwargs["api_key"], "sk-test-key-123")

    @patch("ai.providers.OpenAI")
    def test_authentication_error_rejects(self, mock_openai):
        mock_openai.return_value.chat.completions.create.side_effect = _openai_error(
            openai.AuthenticationError, 401
        )
        result = self.store.validate_key("sk-bad-key-123", "openai")
        self.assertFalse(result["valid"])
        self.assertIn("Invalid API key", result["error"])

    @patch("ai.providers.OpenAI")
    def test_permission_error_rejects(self, mock_openai):
        mock_openai.return_value.chat.completions.create.side_effect = _openai_error(
            openai.PermissionDeniedError, 403
        )
        result = self.store.validate_key("sk-test-key-123", "openai")
        self.assertFalse(result["valid"])
        self.assertIn("permission", result["error"])

    @patch("ai.providers.OpenAI")
    def test_network_error_accepts(self, mock_openai):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_openai.return_value.chat.completions.create.side_effect = openai.APIConnectionError(
            request=request
        )
        self.assertTrue(self.store.validate_key("sk-test-key-123", "openai")["valid"])

    def test_empty_key(self):
        result = self.store.validate_key("  ", "openai")
        self.assertFalse(result["valid"])


class TestValidateGeminiKey(KeyStoreTestCase):

    @patch("ai.providers.genai")
    def test_valid_key(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.return_value = MagicMock(text="{")
        self.assertTrue(self.store.validate_key("AIza-test-key", "gemini")["valid"])
        mock_genai.configure.assert_called_once_with(api_key="AIza-test-key")

    @patch("ai.providers.genai")
    def test_bad_key_rejects(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = (
            google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key.")
        )
        result = self.store.validate_key("AIza-bad-key", "gemini")
        self.assertFalse(result["valid"])

    @patch("ai.providers.genai")
    def test_permission_denied_rejects(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = (
            google_exceptions.PermissionDenied("no access")
        )
        self.assertFalse(self.store.validate_key("AIza-test-key", "gemini")["valid"])

    @patch("ai.providers.genai")
    def test_other_invalid_argument_accepts(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = (
            google_exceptions.InvalidArgument("max_output_tokens too small")
        )
        self.assertTrue(self.store.validate_key("AIza-test-key", "gemini")["valid"])


if __name__ == "__main__":
    unittest.main()
