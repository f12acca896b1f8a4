"""
Tests for the prompt enhancement pipeline and quick templates.
"""

from companion.generation.prompts import (
    QUALITY_MARKERS,
    STYLE_PRESETS,
    TEMPLATES,
    build_analysis_prompt,
    enhance,
    resolve_template,
)
from companion.generation.types import GenerationOptions


class TestEnhance:
    def test_clause_order(self):
        """Test prefix, appearance, outfit, pose, setting, prompt, suffix, markers."""
        options = GenerationOptions(style="anime", outfit="red dress", pose="waving", setting="a garden")
        result = enhance("smiling", options)
        assert result == (
            "anime style, detailed anime art, vibrant colors, cel shaded, "
            "attractive person with kind eyes and warm smile, "
            "wearing red dress, waving, in a garden, smiling, "
            "high quality anime artwork, expressive eyes, clean linework, "
            "masterpiece, best quality, highly detailed"
        )

    def test_optional_clauses_omitted(self):
        result = enhance("reading a book", GenerationOptions(style="artistic", companion_appearance="cute"))
        assert "wearing" not in result
        assert " in " not in result.replace("reading a book", "")
        assert result.startswith(STYLE_PRESETS["artistic"].prefix + ", cute and cheerful person")
        assert result.endswith(QUALITY_MARKERS)

    def test_unknown_keys_fall_back_to_defaults(self):
        """Test a typo in style or appearance never blocks a request."""
        result = enhance("portrait", GenerationOptions(style="steampunk", companion_appearance="gothic"))
        assert result == enhance("portrait", GenerationOptions())
        assert result.startswith(STYLE_PRESETS["realistic"].prefix)

    def test_deterministic(self):
        options = GenerationOptions(style="romantic", setting="paris at night")
        assert enhance("dinner", options) == enhance("dinner", options)

    def test_no_options(self):
        assert enhance("hello").endswith(QUALITY_MARKERS)


class TestTemplates:
    def test_all_templates_have_prompt_and_style(self):
        assert set(TEMPLATES) == {"selfie", "formal", "casual", "fantasy", "beach", "coffee"}
        for template in TEMPLATES.values():
            assert template["prompt"]
            assert template["style"] in STYLE_PRESETS

    def test_resolve_returns_copy(self):
        template = resolve_template("beach")
        template["prompt"] = "changed"
        assert TEMPLATES["beach"]["prompt"] == "enjoying the beach"

    def test_resolve_unknown(self):
        assert resolve_template("moon") is None


class TestAnalysisPrompt:
    def test_default_traits(self):
        prompt = build_analysis_prompt("Luna")
        assert prompt.system.startswith("You are Luna, a caring AI companion. ")
        # playful defaults to 0.7, which is not above the threshold
        assert "playful" not in prompt.system
        assert "deeply caring" in prompt.system
        assert "supportive and encouraging" in prompt.system
        assert prompt.system.endswith("(2-4 sentences)")
        assert "What do you see?" in prompt.user

    def test_personality_traits_toggle_sentences(self):
        prompt = build_analysis_prompt("Max", {"playful": 0.9, "caring": 0.5, "supportive": 0.6})
        assert "playful" in prompt.system
        assert "deeply caring" not in prompt.system
        assert "supportive and encouraging" not in prompt.system
