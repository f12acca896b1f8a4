"""
GPT-4 Vision Provider Adapter

Photo understanding through the OpenAI chat completions endpoint with an
image_url content part.
"""

from __future__ import annotations
import asyncio
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

VISION_MODEL = "gpt-4-vision-preview"


class GPT4VisionAdapter(BaseProvider):
    """OpenAI GPT-4 Vision photo analysis"""

    provider_id = ProviderId.GPT4_VISION
    capability = Capability.VISION
    display_name = "GPT-4 Vision"
    quality = "excellent"
    speed = "fast"
    credential_key = "OPENAI_API_KEY"
    timeout_key = "VISION_TIMEOUT_SECONDS"
    default_timeout_seconds = 30.0

    @property
    def api_url(self) -> str:
        base = (self.config.get("OPENAI_API_BASE") or "https://api.openai.com/v1").rstrip("/")
        return f"{base}/chat/completions"

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
        payload = {
            "model": VISION_MODEL,
            "messages": [
                {"role": "system", "content": analysis_prompt.system},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt or analysis_prompt.user},
                        {"type": "image_url", "image_url": {"url": request.image_url, "detail": "high"}},
                    ],
                },
            ],
            "max_tokens": 500,
            "temperature": 0.7,
        }

        data = await self._request_json(
            "POST", self.api_url, json=payload, headers=self._auth_headers()
        )

        analysis = data["choices"][0]["message"]["content"]
        if not analysis:
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message="Empty analysis from GPT-4 Vision",
                provider=self.provider_id,
            )

        usage = data.get("usage") or {}
        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url=request.image_url,
            content=analysis,
            metadata={"model": VISION_MODEL, "tokens": usage.get("total_tokens")},
        )
