"""
Tests for photo-analysis keyword extraction and follow-up questions.
"""

import random

from companion.generation.analysis import (
    DEFAULT_FOLLOW_UP,
    extract_structured_data,
    follow_up_candidates,
    generate_follow_up_question,
)


class TestExtractStructuredData:
    def test_objects_setting_mood(self):
        data = extract_structured_data("Your dog looks so peaceful at the beach, and that book!")
        assert data["objects"] == ["book", "dog"]
        assert data["setting"] == "outdoor"
        assert data["mood"] == "peaceful"

    def test_first_matching_setting_wins(self):
        data = extract_structured_data("A restaurant inside a house")
        assert data["setting"] == "cafe"

    def test_nothing_matched(self):
        data = extract_structured_data("Interesting composition.")
        assert data["objects"] == []
        assert data["setting"] is None
        assert data["mood"] is None

    def test_empty_text(self):
        assert extract_structured_data("")["objects"] == []


class TestFollowUp:
    def test_candidates_follow_structure(self):
        structured = {"objects": ["food", "pet"], "setting": "outdoor", "mood": "happy"}
        assert follow_up_candidates(structured) == [
            "Did you make this yourself?",
            "How does it taste?",
            "How's the weather?",
            "Are you having a nice time?",
            "What's their name?",
            "They look adorable! How old are they?",
            "You seem really happy! What's the occasion?",
        ]

    def test_default_when_nothing_matches(self):
        assert generate_follow_up_question({"objects": [], "setting": None, "mood": None}) == DEFAULT_FOLLOW_UP

    def test_seeded_choice_is_reproducible(self):
        structured = {"objects": ["food"], "setting": "cafe", "mood": None}
        first = generate_follow_up_question(structured, random.Random(42))
        second = generate_follow_up_question(structured, random.Random(42))
        assert first == second
        assert first in follow_up_candidates(structured)
