"""
Tests for the cost calculator.
"""

import pytest

from companion.generation.pricing import quote
from companion.generation.types import Capability, GenerationOptions


class TestQuote:
    """Quote arithmetic and invariants."""

    def test_default_options_price_against_dalle3(self):
        """Test hd 1024x1024 with no provider uses the DALL-E 3 multiplier."""
        result = quote(GenerationOptions())
        assert result.base_units == 50
        assert result.quality_multiplier == 1.5
        assert result.size_multiplier == 1.0
        assert result.provider_multiplier == 1.5
        assert result.total_units == 113  # 112.5 rounds half-up

    def test_no_options_is_total(self):
        assert quote().total_units == quote(GenerationOptions()).total_units

    @pytest.mark.parametrize(
        "options,expected",
        [
            (GenerationOptions(quality="standard", provider="flux"), 60),
            (GenerationOptions(quality="standard", provider="sdxl", width=512, height=512), 40),
            (GenerationOptions(quality="ultra", provider="sdxl", width=1024, height=1792), 120),
            (GenerationOptions(quality="ultra", provider="dalle3", width=1792, height=1024), 225),
            (GenerationOptions(style="anime", quality="hd"), 113),
        ],
    )
    def test_multipliers_compose(self, options, expected):
        assert quote(options).total_units == expected

    def test_size_factor_only_above_threshold(self):
        """Test exactly 1024x1024 is not a large image."""
        at_threshold = quote(GenerationOptions(quality="standard", provider="flux"))
        above = quote(GenerationOptions(quality="standard", provider="flux", width=1025, height=1024))
        assert at_threshold.size_multiplier == 1.0
        assert above.size_multiplier == 1.5

    def test_unknown_quality_and_provider_fall_back_to_one(self):
        result = quote(GenerationOptions(quality="cinematic", provider="midjourney"))
        # Unknown provider name parses to None and prices as the default provider
        assert result.quality_multiplier == 1.0
        assert result.total_units == 75

    def test_vision_and_text_ignore_image_factors(self):
        options = GenerationOptions(quality="ultra", width=2048, height=2048)
        assert quote(options, Capability.VISION).total_units == 10
        assert quote(options, Capability.TEXT).total_units == 1

    def test_quote_is_pure(self):
        options = GenerationOptions(style="fantasy", quality="ultra", provider="flux")
        assert quote(options) == quote(options)

    @pytest.mark.parametrize("quality", ["standard", "hd", "ultra"])
    @pytest.mark.parametrize("provider", [None, "dalle3", "flux", "sdxl"])
    @pytest.mark.parametrize("size", [(256, 256), (1024, 1024), (1792, 1792)])
    def test_total_always_positive(self, quality, provider, size):
        width, height = size
        options = GenerationOptions(quality=quality, provider=provider, width=width, height=height)
        assert quote(options).total_units > 0
