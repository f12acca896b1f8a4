"""
OpenAI Chat Provider Adapter

Non-streaming chat completion through the openai SDK. The streaming path
lives in companion.streaming.sources; this adapter serves the text
capability of the fallback chain.
"""

from __future__ import annotations
import asyncio
from typing import Optional

import httpx
import openai

from ..types import (
    Capability,
    GenerationRequest,
    ProviderError,
    ProviderErrorType,
    ProviderId,
    ProviderSuccess,
)
from .base import BaseProvider


def build_client(config) -> openai.AsyncOpenAI:
    """Shared AsyncOpenAI construction; retries are left to the fallback chain"""
    return openai.AsyncOpenAI(
        api_key=config.get("OPENAI_API_KEY"),
        base_url=config.get("OPENAI_API_BASE") or "https://api.openai.com/v1",
        timeout=httpx.Timeout(float(config.get("PROVIDER_TIMEOUT_SECONDS") or 60)),
        max_retries=0,
    )


def build_messages(prompt: str, system_prompt: Optional[str]) -> list:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIChatAdapter(BaseProvider):
    """OpenAI chat completion (non-streaming)"""

    provider_id = ProviderId.OPENAI_CHAT
    capability = Capability.TEXT
    display_name = "OpenAI Chat"
    quality = "good"
    speed = "fast"
    credential_key = "OPENAI_API_KEY"

    def __init__(self, config, client: Optional[openai.AsyncOpenAI] = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = build_client(self.config)
        return self._client

    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        options = request.options
        model = options.model or self.config.get("AI_MODEL", "gpt-3.5-turbo")

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=build_messages(
                    prompt, options.system_prompt or self.config.get("AI_SYSTEM_PROMPT")
                ),
                temperature=options.temperature if options.temperature is not None
                else self.config.get("AI_TEMPERATURE", 0.7),
                max_tokens=options.max_tokens or self.config.get("AI_MAX_TOKENS", 500),
            )
        except openai.RateLimitError as e:
            raise ProviderError(
                error_type=ProviderErrorType.RATE_LIMITED,
                message=f"Rate limit exceeded: {e}",
                provider=self.provider_id,
            )
        except openai.AuthenticationError as e:
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_UNAVAILABLE,
                message=f"Authentication failed: {e}",
                provider=self.provider_id,
            )
        except openai.APITimeoutError as e:
            raise ProviderError(
                error_type=ProviderErrorType.TIMEOUT,
                message=f"Request timed out: {e}",
                provider=self.provider_id,
            )
        except openai.APIConnectionError as e:
            raise ProviderError(
                error_type=ProviderErrorType.NETWORK_ERROR,
                message=f"Connection error: {e}",
                provider=self.provider_id,
            )
        except openai.APIStatusError as e:
            raise self._map_api_error(e.status_code, {"message": str(e)})

        choice = response.choices[0]
        content = choice.message.content or ""
        usage = getattr(response, "usage", None)

        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url="",
            content=content,
            metadata={
                "model": model,
                "finish_reason": choice.finish_reason,
                "tokens": getattr(usage, "total_tokens", None),
            },
        )

    async def close(self) -> None:
        await super().close()
        if self._client is not None:
            await self._client.close()
