"""
DALL-E 3 Provider Adapter

Synchronous OpenAI images API: one bounded request yields the final image URL.
"""

from __future__ import annotations
import asyncio
from typing import Optional

from ..types import (
    Capability,
    GenerationRequest,
    ProviderError,
    ProviderErrorType,
    ProviderId,
    ProviderSuccess,
    Quality,
)
from .base import BaseProvider


class DallE3Adapter(BaseProvider):
    """OpenAI DALL-E 3 text-to-image"""

    provider_id = ProviderId.DALLE3
    capability = Capability.IMAGE
    display_name = "DALL-E 3"
    quality = "best"
    speed = "slow"
    credential_key = "OPENAI_API_KEY"

    @property
    def api_url(self) -> str:
        base = (self.config.get("OPENAI_API_BASE") or "https://api.openai.com/v1").rstrip("/")
        return f"{base}/images/generations"

    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        options = request.options
        payload = {
            "model": "dall-e-3",
            "prompt": prompt,
            "n": 1,
            "size": f"{options.width}x{options.height}",
            "quality": "hd" if options.quality == Quality.ULTRA.value else "standard",
            "style": "vivid" if options.style == "anime" else "natural",
        }

        data = await self._request_json(
            "POST", self.api_url, json=payload, headers=self._auth_headers()
        )

        images = data.get("data") or []
        if not images or not images[0].get("url"):
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message="No image URL in DALL-E 3 response",
                provider=self.provider_id,
            )

        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url=images[0]["url"],
            metadata={"revised_prompt": images[0].get("revised_prompt")},
        )
