"""
Cost Calculator

Pure, total pricing of a generation in integer account units. Runs before any
provider call so an insufficient balance is rejected without network traffic.
Arithmetic goes through Decimal so rounding is half-up and reproducible.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from .types import Capability, CostQuote, GenerationOptions, ProviderId, Quality

# Constants
BASE_UNITS: Dict[Capability, int] = {
    Capability.IMAGE: 50,
    Capability.VISION: 10,
    Capability.TEXT: 1,
}

QUALITY_MULTIPLIERS: Dict[str, Decimal] = {
    Quality.STANDARD.value: Decimal("1"),
    Quality.HD.value: Decimal("1.5"),
    Quality.ULTRA.value: Decimal("2"),
}

LARGE_IMAGE_PIXEL_THRESHOLD = 1024 * 1024
LARGE_IMAGE_MULTIPLIER = Decimal("1.5")

# Relative provider expense
PROVIDER_MULTIPLIERS: Dict[ProviderId, Decimal] = {
    ProviderId.DALLE3: Decimal("1.5"),
    ProviderId.FLUX: Decimal("1.2"),
    ProviderId.SDXL: Decimal("0.8"),
}

DEFAULT_PRICED_PROVIDER: Dict[Capability, ProviderId] = {
    Capability.IMAGE: ProviderId.DALLE3,
}

ONE = Decimal("1")


def _provider_multiplier(capability: Capability, provider: Optional[ProviderId]) -> Decimal:
    provider = provider or DEFAULT_PRICED_PROVIDER.get(capability)
    if provider is None:
        return ONE
    return PROVIDER_MULTIPLIERS.get(provider, ONE)


def quote(
    options: Optional[GenerationOptions] = None,
    capability: Capability = Capability.IMAGE,
) -> CostQuote:
    """
    Price a request.

    base x quality x size x provider, rounded half-up, never below one unit.
    Size and quality factors only apply to image generation.
    """
    options = options or GenerationOptions()
    base = Decimal(BASE_UNITS[capability])

    if capability is Capability.IMAGE:
        quality_factor = QUALITY_MULTIPLIERS.get(options.quality, ONE)
        size_factor = (
            LARGE_IMAGE_MULTIPLIER if options.pixel_count > LARGE_IMAGE_PIXEL_THRESHOLD else ONE
        )
    else:
        quality_factor = ONE
        size_factor = ONE

    provider_factor = _provider_multiplier(capability, options.preferred_provider)

    total = (base * quality_factor * size_factor * provider_factor).quantize(
        ONE, rounding=ROUND_HALF_UP
    )

    return CostQuote(
        base_units=int(base),
        quality_multiplier=float(quality_factor),
        size_multiplier=float(size_factor),
        provider_multiplier=float(provider_factor),
        total_units=max(1, int(total)),
    )
