"""
Photo analysis post-processing: keyword extraction and follow-up questions.
"""

from __future__ import annotations
import random
from typing import Any, Dict, List, Optional

OBJECT_KEYWORDS = [
    "coffee", "food", "book", "phone", "laptop", "car",
    "pet", "dog", "cat", "flower", "tree", "building",
]

# First matching entry wins
SETTING_KEYWORDS = {
    "cafe": ["cafe", "coffee shop", "restaurant"],
    "outdoor": ["outside", "outdoor", "park", "beach", "nature"],
    "home": ["home", "room", "house"],
    "office": ["office", "desk", "workplace"],
}

MOOD_KEYWORDS = {
    "happy": ["happy", "joy", "smile", "cheerful", "bright"],
    "peaceful": ["peaceful", "calm", "relaxing", "serene"],
    "excited": ["excited", "energetic", "vibrant"],
    "cozy": ["cozy", "warm", "comfortable"],
}

DEFAULT_FOLLOW_UP = "Tell me more about this!"


def _first_match(text: str, table: Dict[str, List[str]]) -> Optional[str]:
    for label, keywords in table.items():
        if any(keyword in text for keyword in keywords):
            return label
    return None


def extract_structured_data(text: str) -> Dict[str, Any]:
    lowered = (text or "").lower()
    return {
        "objects": [obj for obj in OBJECT_KEYWORDS if obj in lowered],
        "scene": None,
        "mood": _first_match(lowered, MOOD_KEYWORDS),
        "colors": [],
        "people": None,
        "setting": _first_match(lowered, SETTING_KEYWORDS),
        "activities": [],
        "emotions": [],
    }


def follow_up_candidates(structured: Dict[str, Any]) -> List[str]:
    objects = structured.get("objects") or []
    setting = structured.get("setting")
    questions: List[str] = []

    if setting == "cafe":
        questions += ["What's your favorite thing to order there?", "Do you go there often?"]
    if "food" in objects:
        questions += ["Did you make this yourself?", "How does it taste?"]
    if setting == "outdoor":
        questions += ["How's the weather?", "Are you having a nice time?"]
    if "pet" in objects:
        questions += ["What's their name?", "They look adorable! How old are they?"]
    if structured.get("mood") == "happy":
        questions.append("You seem really happy! What's the occasion?")

    return questions


def generate_follow_up_question(
    structured: Dict[str, Any], rng: Optional[random.Random] = None
) -> str:
    """Pick one matching question, or the generic prompt when nothing matched"""
    questions = follow_up_candidates(structured)
    if not questions:
        return DEFAULT_FOLLOW_UP
    return (rng or random).choice(questions)
