"""
Simulated Text Provider

Local canned replies used when no live model is configured, and as the
fixed secondary for text. Always succeeds and never touches the network.
"""

from __future__ import annotations
import asyncio
from typing import List, Optional

from ..types import Capability, GenerationRequest, ProviderId, ProviderSuccess
from .base import BaseProvider


def canned_reply(prompt: str) -> str:
    """Pick a reply deterministically from the prompt length"""
    responses: List[str] = [
        "I appreciate you sharing that with me. "
        + ("It sounds like you have a lot on your mind." if len(prompt) > 50 else "Tell me more about it."),
        "That's interesting! I'd love to hear more about your thoughts on this.",
        "I understand. Let's explore this topic together.",
        "Thank you for opening up to me. How does that make you feel?",
        "I'm here to listen and support you. What else would you like to discuss?",
    ]
    return responses[len(prompt) % len(responses)]


class SimulatedTextAdapter(BaseProvider):
    """Canned-response text generation"""

    provider_id = ProviderId.SIMULATED
    capability = Capability.TEXT
    display_name = "Simulated"
    quality = "basic"
    speed = "instant"
    credential_key = None

    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url="",
            content=canned_reply(prompt),
            metadata={"simulated": True},
        )
