"""
Chat streaming entry point

Chooses the token source for one session: live OpenAI streaming when a key
is configured, word-by-word simulated replay otherwise. A live stream that
fails mid-way sends a fallback notice and finishes from the non-streaming
text chain on the same connection.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from companion.config import load_config
from companion.exceptions import AllProvidersFailedError, GenerationCancelledError, StreamUpstreamError
from companion.generation.orchestrator import FallbackOrchestrator
from companion.generation.types import Capability, GenerationOptions, GenerationRequest, ProviderId
from companion.utils.logging import get_logger
from .session import StreamSession
from .sources import LiveTokenSource, ReplayTokenSource, TokenSource

logger = get_logger(__name__)

SIMULATED_RESPONSE = (
    "Thank you for your message. As a simulated AI companion, I'm here to chat with you. "
    "This is a streaming response that demonstrates how the AI would respond in real-time. "
    "Each word appears as it's generated, creating a more natural conversation flow."
)

STREAMING_DISABLED_MESSAGE = "Streaming not available"
FALLBACK_NOTICE = "Streaming interrupted, switching to standard response"


def get_streaming_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    config = config or load_config()
    return {
        "enabled": bool(config.get("AI_STREAMING_ENABLED", True)),
        "provider": "openai" if config.get("OPENAI_API_KEY") else "simulated",
        "defaultModel": config.get("AI_MODEL", "gpt-3.5-turbo"),
        "maxTokens": config.get("AI_MAX_TOKENS", 500),
        "temperature": config.get("AI_TEMPERATURE", 0.7),
    }


def is_streaming_available(config: Optional[Dict[str, Any]] = None) -> bool:
    """Enabled; without an OpenAI key the endpoint still serves simulated replay"""
    config = config or load_config()
    return bool(config.get("AI_STREAMING_ENABLED", True))


class ChatStreamer:
    """Drives one StreamSession from prompt to terminal event"""

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        config: Optional[Dict[str, Any]] = None,
        simulated_response: str = SIMULATED_RESPONSE,
    ):
        self.orchestrator = orchestrator
        self.config = config or load_config()
        self.simulated_response = simulated_response

    @property
    def token_delay_seconds(self) -> float:
        return int(self.config.get("STREAM_TOKEN_DELAY_MS", 100)) / 1000

    @property
    def fallback_delay_seconds(self) -> float:
        return int(self.config.get("STREAM_FALLBACK_DELAY_MS", 50)) / 1000

    def live_source(self, prompt: str, options: GenerationOptions) -> TokenSource:
        return LiveTokenSource(
            self.config,
            prompt,
            system_prompt=options.system_prompt,
            model=options.model,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )

    async def stream(
        self,
        session: StreamSession,
        prompt: str,
        options: Optional[GenerationOptions] = None,
    ) -> None:
        options = options or GenerationOptions()

        if not is_streaming_available(self.config):
            await session.fail(STREAMING_DISABLED_MESSAGE)
            return

        if not self.config.get("OPENAI_API_KEY"):
            await self._replay(session, ReplayTokenSource(self.simulated_response, self.token_delay_seconds))
            if session.is_open:
                await session.complete("stop", simulated=True)
            return

        source = self.live_source(prompt, options)
        await session.start()
        try:
            async for token in source.tokens(session.cancel_event):
                await session.emit_token(token)
        except StreamUpstreamError:
            await session.notify_fallback(FALLBACK_NOTICE)
            await self._finish_from_fallback(session, prompt, options)
            return

        if session.is_open and not session.cancel_event.is_set():
            await session.complete(source.finish_reason or "stop")

    async def _replay(self, session: StreamSession, source: TokenSource) -> None:
        await session.start()
        async for token in source.tokens(session.cancel_event):
            await session.emit_token(token)

    async def _finish_from_fallback(
        self, session: StreamSession, prompt: str, options: GenerationOptions
    ) -> None:
        request = GenerationRequest(
            requester_id=session.account_id or "anonymous",
            capability=Capability.TEXT,
            raw_prompt=prompt,
            options=options,
            request_id=session.session_id,
        )
        try:
            result = await self.orchestrator.generate(
                request, prompt, session.cancel_event, exclude=(ProviderId.OPENAI_CHAT,)
            )
        except AllProvidersFailedError as e:
            await session.fail(e.user_message)
            return
        except GenerationCancelledError:
            session.mark_cancelled("cancelled during fallback")
            return

        await self._replay(session, ReplayTokenSource(result.content or "", self.fallback_delay_seconds))
        if session.is_open and not session.cancel_event.is_set():
            await session.complete("stop", fallback=True)
