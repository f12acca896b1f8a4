"""
Gemini Vision Provider Adapter

Gemini takes the image inline, so the photo is downloaded first and sent
as base64 next to the personality prompt.
"""

from __future__ import annotations
import asyncio
import base64
from typing import Optional

from ..prompts import build_analysis_prompt
from ..types import (
    Capability,
    GenerationRequest,
    ProviderError,
    ProviderErrorType,
    ProviderId,
    ProviderSuccess,
)
from .base import BaseProvider

GEMINI_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro-vision:generateContent"
)


class GeminiVisionAdapter(BaseProvider):
    """Google Gemini Pro Vision photo analysis"""

    provider_id = ProviderId.GEMINI
    capability = Capability.VISION
    display_name = "Gemini Pro Vision"
    quality = "excellent"
    speed = "very_fast"
    credential_key = "GEMINI_API_KEY"
    timeout_key = "VISION_TIMEOUT_SECONDS"
    default_timeout_seconds = 30.0

    def _auth_headers(self):
        # Gemini authenticates through the key query parameter
        return {}

    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        if not request.image_url:
            raise ProviderError(
                error_type=ProviderErrorType.VALIDATION_ERROR,
                message="Vision request without an image URL",
                provider=self.provider_id,
            )

        options = request.options
        analysis_prompt = build_analysis_prompt(options.companion_name, options.companion_personality)

        image_bytes = await self._request_bytes(request.image_url)
        encoded = base64.b64encode(image_bytes).decode("ascii")

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": f"{analysis_prompt.system}\n\n{prompt or analysis_prompt.user}"},
                        {"inline_data": {"mime_type": "image/jpeg", "data": encoded}},
                    ]
                }
            ],
            "generationConfig": {"temperature": 0.7, "maxOutputTokens": 500},
        }

        data = await self._request_json(
            "POST", GEMINI_API_URL, json=payload, params={"key": self.api_key}
        )

        candidate = data["candidates"][0]
        analysis = candidate["content"]["parts"][0]["text"]

        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url=request.image_url,
            content=analysis,
            metadata={"model": "gemini-pro-vision", "safety_ratings": candidate.get("safetyRatings")},
        )
