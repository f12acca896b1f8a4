"""
Token sources for streamed chat.

LiveTokenSource forwards tokens from the OpenAI streaming API as they arrive.
ReplayTokenSource re-emits a finished text word by word with a fixed delay,
so simulated and fallback delivery look identical on the wire.
"""

from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai

from companion.exceptions import StreamUpstreamError
from companion.generation.poller import sleep_or_cancel
from companion.generation.providers.openai_chat import build_client, build_messages
from companion.utils.logging import get_logger

logger = get_logger(__name__)


def split_words(text: str) -> List[str]:
    """Split on single spaces keeping the separator, so the pieces join back to ``text``"""
    if not text:
        return []
    words = text.split(" ")
    pieces = [word + " " for word in words[:-1]]
    if words[-1]:
        pieces.append(words[-1])
    return pieces


class TokenSource(ABC):
    finish_reason: str = "stop"

    @abstractmethod
    def tokens(self, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[str]:
        """Yield incremental text pieces in generation order"""


class ReplayTokenSource(TokenSource):
    """Word-by-word replay of a complete response"""

    def __init__(self, text: str, delay_seconds: float = 0.1):
        self.text = text
        self.delay_seconds = delay_seconds

    async def tokens(self, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[str]:
        pieces = split_words(self.text)
        for index, piece in enumerate(pieces):
            if cancel_event is not None and cancel_event.is_set():
                return
            yield piece
            if index < len(pieces) - 1 and self.delay_seconds > 0:
                if await sleep_or_cancel(self.delay_seconds, cancel_event):
                    return


class LiveTokenSource(TokenSource):
    """OpenAI chat completion stream; any upstream failure becomes StreamUpstreamError"""

    def __init__(
        self,
        config: Dict[str, Any],
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self.config = config
        self.prompt = prompt
        self.system_prompt = system_prompt or config.get("AI_SYSTEM_PROMPT") or "You are a helpful AI companion."
        self.model = model or config.get("AI_MODEL", "gpt-3.5-turbo")
        self.temperature = temperature if temperature is not None else config.get("AI_TEMPERATURE", 0.7)
        self.max_tokens = max_tokens or config.get("AI_MAX_TOKENS", 500)
        self.client = client or build_client(config)

    async def tokens(self, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[str]:
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(self.prompt, self.system_prompt),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if cancel_event is not None and cancel_event.is_set():
                    logger.debug("Live stream cancelled, closing upstream")
                    await stream.close()
                    return
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                content = choice.delta.content if choice.delta else None
                if content:
                    yield content
                if choice.finish_reason:
                    self.finish_reason = choice.finish_reason
                    break
        except (openai.OpenAIError, httpx.HTTPError) as e:
            logger.error(f"OpenAI streaming error: {e}", extra={"event": "stream.upstream.error"})
            raise StreamUpstreamError(str(e)) from e
