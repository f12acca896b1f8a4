"""
Stable Diffusion XL Provider Adapter

Synchronous Stability text-to-image. The API returns base64 artifacts, which
are handed back as a data URL.
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

SDXL_API_URL = (
    "https://api.stability.ai/v1/generation/stable-diffusion-xl-1024-v1-0/text-to-image"
)


class SDXLAdapter(BaseProvider):
    """Stability AI SDXL text-to-image"""

    provider_id = ProviderId.SDXL
    capability = Capability.IMAGE
    display_name = "Stable Diffusion XL"
    quality = "good"
    speed = "fastest"
    credential_key = "STABILITY_API_KEY"

    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        options = request.options
        payload = {
            "text_prompts": [{"text": prompt, "weight": 1}],
            "cfg_scale": 7,
            "width": options.width,
            "height": options.height,
            "steps": 50 if options.quality == Quality.ULTRA.value else 30,
            "samples": 1,
        }
        headers = {**self._auth_headers(), "Accept": "application/json"}

        data = await self._request_json("POST", SDXL_API_URL, json=payload, headers=headers)

        artifacts = data.get("artifacts") or []
        if not artifacts or not artifacts[0].get("base64"):
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message="No artifacts in SDXL response",
                provider=self.provider_id,
            )

        # TODO: upload the artifact to object storage and return its URL instead of inlining it
        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url=f"data:image/png;base64,{artifacts[0]['base64']}",
            metadata={"seed": artifacts[0].get("seed"), "finish_reason": artifacts[0].get("finishReason")},
        )
