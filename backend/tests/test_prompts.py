"""Tests for prompt construction."""

from fakes import PASSAGE
from ra_companion.services.prompts import (
    build_context_from_quotes,
    build_suggestions_context,
    build_system_prompt,
)


def test_passages_are_numbered_from_one():
    context = build_context_from_quotes([PASSAGE, PASSAGE])
    assert "[1] (1.7)" in context
    assert "[2] (1.7)" in context


def test_no_passages():
    assert "No passages" in build_context_from_quotes([])


def test_language_instruction_only_for_non_english():
    assert "language with code" not in build_system_prompt([PASSAGE], "conceptual", "en")
    assert "'es'" in build_system_prompt([PASSAGE], "conceptual", "es")


def test_long_responses_are_truncated_to_their_ending():
    response = "a" * 2000 + "What would you like to explore?"
    context = build_suggestions_context("q", response, "conceptual", 2)
    assert context.endswith("What would you like to explore?")
    assert "Turn 2" in context
    assert len(context) < len(response)
