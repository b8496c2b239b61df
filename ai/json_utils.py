"""Helpers for pulling a JSON object out of a model response."""

import json
import logging
from typing import Any, Dict, Type

logger = logging.getLogger(__name__)


def extract_json_from_response(content: str) -> str:
    """
    Extract the JSON object from a response that may contain markdown or extra text.

    Handles:
    - Pure JSON
    - JSON wrapped in ```json ... ``` or ``` ... ``` code blocks
    - JSON embedded in surrounding prose

    Args:
        content: Raw response text from the model.

    Returns:
        The substring from the first "{" to the last "}" (may still fail json.loads).

    Raises:
        ValueError: If no JSON object can be found.
    """
    if not content or not content.strip():
        raise ValueError("Could not find JSON in AI response")

    content = content.strip()

    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0]
    elif content.count("```") >= 2:
        content = content.split("```", 2)[1]

    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("Could not find JSON in AI response")
    return content[start:end + 1]


def load_json_object(content: str, error_cls: Type[Exception] = ValueError) -> Dict[str, Any]:
    """
    Extract and decode a JSON object from model output.

    Raises:
        error_cls: With "Could not find JSON", "not valid JSON" or
            "not a valid object" in the message.
    """
    try:
        json_str = extract_json_from_response(content)
    except ValueError as e:
        raise error_cls(str(e)) from e

    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise error_cls("AI response is not valid JSON") from e

    if not isinstance(parsed, dict):
        raise error_cls("AI response is not a valid object")
    return parsed


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())

