"""
API key management for the report providers.

Keys saved by the user live in a JSON file in the user data directory
(owner read/write only). A saved key wins over the one from .env, so a
bundled app can be set up without touching environment variables.
"""

import json
import logging
import os
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import openai
from google.api_core import exceptions as google_exceptions

import config

logger = logging.getLogger(__name__)

PROVIDERS = ("openai", "gemini")


def _normalize_provider(provider: Optional[str]) -> str:
    provider = (provider or config.REPORT_PROVIDER).lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider '{provider}'. Choose one of: {', '.join(PROVIDERS)}")
    return provider


class ApiKeyStore:
    """
    Saved-key file plus the .env fallback.

    Handles:
    - Looking up the key for a provider (saved first, then environment)
    - Checking a key with a 1-token request before it is saved
    - Saving and deleting keys
    """

    def __init__(
        self,
        keys_file: Optional[Path] = None,
        env_keys: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            keys_file: JSON file for saved keys (defaults to config.API_KEYS_FILE).
            env_keys: Fallback keys per provider (defaults to the keys read
                from .env by config).
        """
        self.keys_file = Path(keys_file) if keys_file is not None else config.API_KEYS_FILE
        if env_keys is None:
            env_keys = {"openai": config.OPENAI_API_KEY, "gemini": config.GEMINI_API_KEY}
        self.env_keys = env_keys

    def _load(self) -> Dict[str, str]:
        if not self.keys_file.exists():
            return {}
        try:
            with open(self.keys_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load saved API keys: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning("Saved API key file is malformed, ignoring it")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str) and v}

    def _save(self, keys: Dict[str, str]) -> None:
        self.keys_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.keys_file, "w") as f:
            json.dump(keys, f, indent=2)
        os.chmod(self.keys_file, stat.S_IRUSR | stat.S_IWUSR)

    def get_key(self, provider: Optional[str] = None) -> str:
        """The key to use for a provider, or "" when none is configured."""
        provider = _normalize_provider(provider)
        return self._load().get(provider) or self.env_keys.get(provider, "") or ""

    def has_key(self, provider: Optional[str] = None) -> bool:
        return bool(self.get_key(provider))

    def key_source(self, provider: Optional[str] = None) -> Optional[str]:
        """Where the key comes from: "saved", "env" or None."""
        provider = _normalize_provider(provider)
        if self._load().get(provider):
            return "saved"
        if self.env_keys.get(provider):
            return "env"
        return None

    def validate_key(self, key: str, provider: Optional[str] = None) -> Dict[str, Any]:
        """
        Check a key with a minimal real request.

        Only authentication and permission failures reject the key. Network
        trouble and other errors accept it, since they say nothing about
        the key itself.

        Returns:
            {"valid": bool, "error": Optional[str]}
        """
        provider = _normalize_provider(provider)
        key = (key or "").strip()
        if not key:
            return {"valid": False, "error": "API key is empty."}
        if not config._validate_api_key_format(key, provider):
            logger.warning(f"{provider} key has an unexpected format, checking it anyway")

        from ai.providers import GeminiTextGenerator, OpenAITextGenerator

        try:
            if provider == "gemini":
                GeminiTextGenerator(api_key=key).generate("hi", max_tokens=1)
            else:
                OpenAITextGenerator(api_key=key).generate("Reply with the JSON {}", max_tokens=1)
        except (openai.AuthenticationError, google_exceptions.Unauthenticated):
            return {"valid": False, "error": "Invalid API key. Please check your key and try again."}
        except (openai.PermissionDeniedError, google_exceptions.PermissionDenied):
            return {"valid": False, "error": "This API key does not have permission to use the model."}
        except google_exceptions.InvalidArgument as e:
            # Gemini reports a bad key as a 400
            if "api key" in str(e).lower():
                return {"valid": False, "error": "Invalid API key. Please check your key and try again."}
            logger.warning(f"Key check inconclusive: {e}")
        except Exception as e:
            logger.warning(f"Key check inconclusive, accepting key: {e}")
        return {"valid": True, "error": None}

    def save_key(self, key: str, provider: Optional[str] = None) -> Path:
        """Save a key for a provider, replacing any saved one."""
        provider = _normalize_provider(provider)
        key = (key or "").strip()
        if not key:
            raise ValueError("API key is empty")
        keys = self._load()
        keys[provider] = key
        self._save(keys)
        logger.info(f"Saved {provider} API key ({key[:3]}...)")
        return self.keys_file

    def delete_key(self, provider: Optional[str] = None) -> bool:
        """
        Remove the saved key for a provider.

        Returns:
            True if a key was removed, False if none was saved.
        """
        provider = _normalize_provider(provider)
        keys = self._load()
        if provider not in keys:
            return False
        del keys[provider]
        if keys:
            self._save(keys)
        else:
            self.keys_file.unlink()
        logger.info(f"Deleted saved {provider} API key")
        return True
