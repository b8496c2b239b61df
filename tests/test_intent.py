"""Tests for intent vagueness checks and refinement."""

import json
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ai.intent import (
    IntentClarifier,
    IntentServiceError,
    build_refinement_prompt,
    build_vagueness_prompt,
    parse_refinement_response,
    parse_vagueness_response,
)
from tests.support import FakeTextGenerator


class TestPrompts(unittest.TestCase):

    def test_vagueness_prompt_quotes_intent(self):
        prompt = build_vagueness_prompt("Be productive")
        self.assertIn('"Be productive"', prompt)
        self.assertIn('"clarifying_questions"', prompt)

    def test_refinement_prompt_numbers_answers(self):
        prompt = build_refinement_prompt("coding", ["the auth module", "finish login"])
        self.assertIn('"coding"', prompt)
        self.assertIn("Answer 1: the auth module", prompt)
        self.assertIn("Answer 2: finish login", prompt)


class TestParseVagueness(unittest.TestCase):

    def test_specific(self):
        self.assertEqual(parse_vagueness_response('{"status": "specific"}'), {"status": "specific"})

    def test_specific_ignores_questions(self):
        result = parse_vagueness_response('{"status": "specific", "clarifying_questions": ["x"]}')
        self.assertEqual(result, {"status": "specific"})

    def test_vague(self):
        content = '```json\n{"status": "vague", "clarifying_questions": ["What project?"]}\n```'
        result = parse_vagueness_response(content)
        self.assertEqual(result["status"], "vague")
        self.assertEqual(result["clarifying_questions"], ["What project?"])

    def test_invalid_status(self):
        with self.assertRaises(IntentServiceError) as ctx:
            parse_vagueness_response('{"status": "maybe"}')
        self.assertIn("Invalid status", str(ctx.exception))

    def test_vague_without_questions(self):
        for content in (
            '{"status": "vague"}',
            '{"status": "vague", "clarifying_questions": []}',
            '{"status": "vague", "clarifying_questions": [1, 2]}',
        ):
            with self.assertRaises(IntentServiceError):
                parse_vagueness_response(content)

    def test_not_json(self):
        with self.assertRaises(IntentServiceError):
            parse_vagueness_response("Sounds good to me!")


class TestParseRefinement(unittest.TestCase):

    def test_refined(self):
        self.assertEqual(
            parse_refinement_response('{"refined_intent": "  Finish the auth module  "}'),
            "Finish the auth module",
        )

    def test_missing_or_blank(self):
        for content in ('{}', '{"refined_intent": ""}', '{"refined_intent": 3}'):
            with self.assertRaises(IntentServiceError):
                parse_refinement_response(content)


class TestIntentClarifier(unittest.TestCase):

    def test_check_vagueness_uses_generator(self):
        generator = FakeTextGenerator(response=json.dumps({"status": "specific"}))
        result = IntentClarifier(generator).check_vagueness("Fix the login timeout bug")

        self.assertEqual(result, {"status": "specific"})
        self.assertEqual(len(generator.prompts), 1)
        self.assertIn("Fix the login timeout bug", generator.prompts[0])

    def test_refine_intent(self):
        generator = FakeTextGenerator(response='{"refined_intent": "Finish login flow"}')
        refined = IntentClarifier(generator).refine_intent("coding", ["login flow"])
        self.assertEqual(refined, "Finish login flow")

    def test_generator_error_wrapped(self):
        generator = FakeTextGenerator(error=TimeoutError("read timed out"))
        with self.assertRaises(IntentServiceError) as ctx:
            IntentClarifier(generator).check_vagueness("Study")
        self.assertIsInstance(ctx.exception.__cause__, TimeoutError)


if __name__ == "__main__":
    unittest.main()
