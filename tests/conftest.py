"""
Shared fixtures for the generation and streaming tests.

Every test builds its own config dict so nothing reads the real environment,
and file-backed collaborators live under tmp_path.
"""

from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from companion.generation.types import (
    Capability,
    GenerationOptions,
    GenerationRequest,
    ProviderErrorType,
    ProviderFailure,
    ProviderId,
    ProviderSuccess,
)


@pytest.fixture
def config(tmp_path):
    return {
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_API_BASE": "https://api.openai.com/v1",
        "FLUX_API_KEY": "flux-test",
        "STABILITY_API_KEY": "stability-test",
        "GEMINI_API_KEY": "gemini-test",
        "AI_MODEL": "gpt-3.5-turbo",
        "AI_MAX_TOKENS": 500,
        "AI_TEMPERATURE": 0.7,
        "AI_STREAMING_ENABLED": True,
        "AI_SYSTEM_PROMPT": "You are a helpful AI companion.",
        "STREAM_TOKEN_DELAY_MS": 0,
        "STREAM_FALLBACK_DELAY_MS": 0,
        "STREAM_KEEPALIVE_EVERY": 10,
        "PROVIDER_TIMEOUT_SECONDS": 60,
        "VISION_TIMEOUT_SECONDS": 30,
        "POLL_MAX_ATTEMPTS": 3,
        "POLL_INTERVAL_MS": 0,
        "DEFAULT_IMAGE_PROVIDER": "dalle3",
        "DEFAULT_VISION_PROVIDER": "gpt4vision",
        "DEFAULT_TEXT_PROVIDER": "openai",
        "DATA_DIR": tmp_path,
        "LEDGER_DIR": tmp_path / "ledger",
        "RECORDS_PATH": tmp_path / "generations.jsonl",
        "HOST": "127.0.0.1",
        "PORT": 0,
    }


def _make_request(
    capability: Capability = Capability.IMAGE,
    prompt: str = "a walk in the park",
    requester_id: str = "acct-1",
    image_url: Optional[str] = None,
    **options,
) -> GenerationRequest:
    return GenerationRequest(
        requester_id=requester_id,
        capability=capability,
        raw_prompt=prompt,
        options=GenerationOptions(**options),
        image_url=image_url,
    )


class StubAdapter:
    """Adapter double with a scripted outcome and a call log"""

    def __init__(self, provider_id: ProviderId, succeed: bool = True, url: str = "", content: Optional[str] = None,
                 reason: ProviderErrorType = ProviderErrorType.PROVIDER_ERROR):
        self.provider_id = provider_id
        self.calls: List[str] = []
        if succeed:
            outcome = ProviderSuccess(provider_id=provider_id, resource_url=url or f"https://cdn.test/{provider_id.value}.png",
                                      content=content)
        else:
            outcome = ProviderFailure(provider_id=provider_id, reason=reason, message="stubbed failure")
        self.generate = AsyncMock(side_effect=self._record(outcome))
        self.close = AsyncMock()

    def _record(self, outcome):
        async def _generate(prompt, request, cancel_event=None):
            self.calls.append(prompt)
            return outcome
        return _generate


@pytest.fixture
def make_request():
    return _make_request


@pytest.fixture
def stub_adapter():
    return StubAdapter
