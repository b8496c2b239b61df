"""Intent clarification: spot vague intents and turn answers into a specific one."""

import logging
from typing import Any, Dict, List, Sequence

import config
from ai.json_utils import is_non_empty_str, load_json_object
from ai.providers import TextGenerator

logger = logging.getLogger(__name__)


class IntentServiceError(Exception):
    """Raised when the model can't be reached or answers in the wrong shape."""


def build_vagueness_prompt(intent: str) -> str:
    return f"""You are helping someone set a clear intent for a focused work session. The intent should be specific enough that, at the end of the session, it's possible to judge whether they stayed on track.

Evaluate this intent: "{intent}"

A SPECIFIC intent says what they will work on and what outcome they're aiming for. Examples:
- "Finish the database schema migration for the users table"
- "Write the first draft of the project proposal introduction"
- "Debug the login timeout issue reported in ticket #423"

A VAGUE intent is too broad to evaluate. Examples:
- "Be productive"
- "Work on my project"
- "Study"

If the intent is vague, write 1-3 clarifying questions that would make it specific. Ask only what is needed.

Respond with ONLY valid JSON in this exact format, no other text:

If specific:
{{"status": "specific"}}

If vague:
{{"status": "vague", "clarifying_questions": ["question 1", "question 2"]}}"""


def build_refinement_prompt(original_intent: str, answers: Sequence[str]) -> str:
    answers_text = "\n".join(f"Answer {i + 1}: {a}" for i, a in enumerate(answers))
    return f"""Someone set this intent for a work session: "{original_intent}"

It was too vague, so they answered clarifying questions:
{answers_text}

Using the original intent and the answers, write one refined intent that is specific and actionable. Keep it to 1-2 sentences, written in their own voice.

Respond with ONLY valid JSON in this exact format, no other text:
{{"refined_intent": "the refined intent text"}}"""


def parse_vagueness_response(content: str) -> Dict[str, Any]:
    """
    Returns:
        {"status": "specific"} or
        {"status": "vague", "clarifying_questions": [str, ...]}

    Raises:
        IntentServiceError: On a malformed response.
    """
    data = load_json_object(content, IntentServiceError)

    status = data.get("status")
    if status not in ("specific", "vague"):
        raise IntentServiceError(f"Invalid status in AI response: {status}")

    if status == "specific":
        return {"status": "specific"}

    questions = data.get("clarifying_questions")
    if not isinstance(questions, list) or not questions:
        raise IntentServiceError("Vague response missing clarifying_questions")
    if not all(isinstance(q, str) for q in questions):
        raise IntentServiceError("clarifying_questions must be strings")
    return {"status": "vague", "clarifying_questions": questions}


def parse_refinement_response(content: str) -> str:
    """
    Returns:
        The refined intent text.

    Raises:
        IntentServiceError: On a malformed response or empty refined_intent.
    """
    data = load_json_object(content, IntentServiceError)
    refined = data.get("refined_intent")
    if not is_non_empty_str(refined):
        raise IntentServiceError("AI response missing refined_intent")
    return refined.strip()


class IntentClarifier:
    """Asks the text generator whether an intent is specific enough, and refines it."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def _ask(self, prompt: str, what: str) -> str:
        try:
            return self.generator.generate(prompt, max_tokens=config.INTENT_MAX_TOKENS)
        except Exception as e:
            logger.warning(f"Failed to {what}: {e}")
            raise IntentServiceError(f"Failed to {what}") from e

    def check_vagueness(self, intent: str) -> Dict[str, Any]:
        content = self._ask(build_vagueness_prompt(intent), "check intent vagueness")
        return parse_vagueness_response(content)

    def refine_intent(self, original_intent: str, answers: List[str]) -> str:
        content = self._ask(build_refinement_prompt(original_intent, answers), "refine intent")
        return parse_refinement_response(content)
