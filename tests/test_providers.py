"""
Tests for provider adapters.

HTTP is stubbed at ``_request_json`` so each test checks request shape,
response parsing and the failure mapping at the adapter boundary.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from companion.generation.providers import (
    DallE3Adapter,
    FluxAdapter,
    GeminiVisionAdapter,
    GPT4VisionAdapter,
    OpenAIChatAdapter,
    SDXLAdapter,
    SimulatedTextAdapter,
    canned_reply,
)
from companion.generation.types import Capability, ProviderErrorType, ProviderId


class TestDallE3Adapter:
    @pytest.mark.asyncio
    async def test_success(self, config, make_request):
        adapter = DallE3Adapter(config)
        adapter._request_json = AsyncMock(return_value={
            "data": [{"url": "https://oai/img.png", "revised_prompt": "revised"}]
        })

        result = await adapter.generate("enhanced", make_request(style="anime", quality="ultra"))

        assert result.success is True
        assert result.provider_id is ProviderId.DALLE3
        assert result.resource_url == "https://oai/img.png"
        assert result.metadata["revised_prompt"] == "revised"

        method, url = adapter._request_json.await_args.args
        payload = adapter._request_json.await_args.kwargs["json"]
        assert method == "POST"
        assert url == "https://api.openai.com/v1/images/generations"
        assert payload["model"] == "dall-e-3"
        assert payload["size"] == "1024x1024"
        assert payload["quality"] == "hd"
        assert payload["style"] == "vivid"
        assert adapter._request_json.await_args.kwargs["headers"] == {"Authorization": "Bearer sk-test"}

    @pytest.mark.asyncio
    async def test_standard_quality_natural_style(self, config, make_request):
        adapter = DallE3Adapter(config)
        adapter._request_json = AsyncMock(return_value={"data": [{"url": "u"}]})
        await adapter.generate("p", make_request(style="realistic", quality="hd"))
        payload = adapter._request_json.await_args.kwargs["json"]
        assert payload["quality"] == "standard"
        assert payload["style"] == "natural"

    @pytest.mark.asyncio
    async def test_missing_credentials_is_unavailable(self, config, make_request):
        """Test no network call happens without a key."""
        config["OPENAI_API_KEY"] = None
        adapter = DallE3Adapter(config)
        adapter._request_json = AsyncMock()

        result = await adapter.generate("p", make_request())

        assert result.success is False
        assert result.reason is ProviderErrorType.PROVIDER_UNAVAILABLE
        adapter._request_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_becomes_failure(self, config, make_request):
        adapter = DallE3Adapter(config)
        adapter._request_json = AsyncMock(side_effect=adapter._map_api_error(500, {"error": {"message": "boom"}}))

        result = await adapter.generate("p", make_request())

        assert result.success is False
        assert result.reason is ProviderErrorType.PROVIDER_ERROR
        assert "500" in result.message

    @pytest.mark.asyncio
    async def test_empty_data_is_provider_error(self, config, make_request):
        adapter = DallE3Adapter(config)
        adapter._request_json = AsyncMock(return_value={"data": []})
        result = await adapter.generate("p", make_request())
        assert result.reason is ProviderErrorType.PROVIDER_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc,expected",
        [
            (asyncio.TimeoutError(), ProviderErrorType.TIMEOUT),
            (aiohttp.ClientConnectionError("refused"), ProviderErrorType.NETWORK_ERROR),
            (RuntimeError("surprise"), ProviderErrorType.PROVIDER_ERROR),
        ],
    )
    async def test_exceptions_never_escape(self, config, make_request, exc, expected):
        adapter = DallE3Adapter(config)
        adapter._request_json = AsyncMock(side_effect=exc)
        result = await adapter.generate("p", make_request())
        assert result.success is False
        assert result.reason is expected


class TestErrorMapping:
    @pytest.mark.parametrize(
        "status,data,expected",
        [
            (400, {"error": {"message": "Your request was rejected by our safety system"}}, ProviderErrorType.CONTENT_FILTERED),
            (400, {"error": {"message": "size must be one of"}}, ProviderErrorType.VALIDATION_ERROR),
            (401, {}, ProviderErrorType.PROVIDER_UNAVAILABLE),
            (403, {}, ProviderErrorType.PROVIDER_UNAVAILABLE),
            (429, {}, ProviderErrorType.RATE_LIMITED),
            (502, {"message": "bad gateway"}, ProviderErrorType.PROVIDER_ERROR),
            (418, {}, ProviderErrorType.PROVIDER_ERROR),
        ],
    )
    def test_status_mapping(self, config, status, data, expected):
        error = SDXLAdapter(config)._map_api_error(status, data)
        assert error.error_type is expected
        assert error.provider is ProviderId.SDXL


class TestFluxAdapter:
    @pytest.mark.asyncio
    async def test_submit_then_poll_until_ready(self, config, make_request):
        adapter = FluxAdapter(config)
        adapter._request_json = AsyncMock(side_effect=[
            {"id": "task-1"},
            {"status": "Pending"},
            {"status": "Ready", "result": {"sample": "https://bfl/img.png"}},
        ])

        result = await adapter.generate("p", make_request(quality="ultra", width=768, height=1344))

        assert result.success is True
        assert result.resource_url == "https://bfl/img.png"
        assert result.metadata["task_id"] == "task-1"

        submit = adapter._request_json.await_args_list[0]
        assert submit.args == ("POST", "https://api.bfl.ml/v1/flux-pro")
        assert submit.kwargs["headers"] == {"X-Key": "flux-test"}
        assert submit.kwargs["json"]["steps"] == 50
        assert submit.kwargs["json"]["width"] == 768

        status_call = adapter._request_json.await_args_list[1]
        assert status_call.args == ("GET", "https://api.bfl.ml/v1/get_result")
        assert status_call.kwargs["params"] == {"id": "task-1"}

    @pytest.mark.asyncio
    async def test_poll_exhaustion_is_timeout(self, config, make_request):
        adapter = FluxAdapter(config)
        adapter._request_json = AsyncMock(side_effect=[{"id": "task-2"}] + [{"status": "Pending"}] * 3)

        result = await adapter.generate("p", make_request())

        assert result.success is False
        assert result.reason is ProviderErrorType.TIMEOUT
        # One submit plus exactly POLL_MAX_ATTEMPTS status fetches
        assert adapter._request_json.await_count == 1 + config["POLL_MAX_ATTEMPTS"]

    @pytest.mark.asyncio
    async def test_moderated_task_fails_fast(self, config, make_request):
        adapter = FluxAdapter(config)
        adapter._request_json = AsyncMock(side_effect=[{"id": "task-3"}, {"status": "Content Moderated"}])

        result = await adapter.generate("p", make_request())

        assert result.reason is ProviderErrorType.PROVIDER_ERROR
        assert adapter._request_json.await_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_request_stops_polling(self, config, make_request):
        adapter = FluxAdapter(config)
        adapter._request_json = AsyncMock(return_value={"id": "task-4"})
        cancel = asyncio.Event()
        cancel.set()

        result = await adapter.generate("p", make_request(), cancel_event=cancel)

        assert result.reason is ProviderErrorType.CANCELLED
        assert adapter._request_json.await_count == 1


class TestSDXLAdapter:
    @pytest.mark.asyncio
    async def test_artifact_returned_as_data_url(self, config, make_request):
        adapter = SDXLAdapter(config)
        adapter._request_json = AsyncMock(return_value={"artifacts": [{"base64": "QUJD", "seed": 7}]})

        result = await adapter.generate("p", make_request(quality="standard"))

        assert result.resource_url == "data:image/png;base64,QUJD"
        payload = adapter._request_json.await_args.kwargs["json"]
        assert payload["text_prompts"] == [{"text": "p", "weight": 1}]
        assert payload["steps"] == 30
        assert adapter._request_json.await_args.kwargs["headers"]["Accept"] == "application/json"


class TestVisionAdapters:
    @pytest.mark.asyncio
    async def test_gpt4_vision(self, config, make_request):
        adapter = GPT4VisionAdapter(config)
        adapter._request_json = AsyncMock(return_value={
            "choices": [{"message": {"content": "What a cozy cafe!"}}],
            "usage": {"total_tokens": 321},
        })
        request = make_request(Capability.VISION, prompt="What's this?", image_url="https://img/1.jpg",
                               companion_name="Luna")

        result = await adapter.generate(request.raw_prompt, request)

        assert result.success is True
        assert result.content == "What a cozy cafe!"
        assert result.resource_url == "https://img/1.jpg"
        assert result.metadata["tokens"] == 321
        messages = adapter._request_json.await_args.kwargs["json"]["messages"]
        assert messages[0]["content"].startswith("You are Luna")
        assert messages[1]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": "https://img/1.jpg", "detail": "high"},
        }
        assert adapter.timeout_seconds == 30

    @pytest.mark.asyncio
    async def test_vision_without_image_is_validation_error(self, config, make_request):
        adapter = GPT4VisionAdapter(config)
        adapter._request_json = AsyncMock()
        result = await adapter.generate("p", make_request(Capability.VISION))
        assert result.reason is ProviderErrorType.VALIDATION_ERROR
        adapter._request_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gemini_sends_inline_image(self, config, make_request):
        adapter = GeminiVisionAdapter(config)
        adapter._request_bytes = AsyncMock(return_value=b"img")
        adapter._request_json = AsyncMock(return_value={
            "candidates": [{"content": {"parts": [{"text": "Lovely park"}]}, "safetyRatings": []}]
        })
        request = make_request(Capability.VISION, prompt="Look", image_url="https://img/2.jpg")

        result = await adapter.generate(request.raw_prompt, request)

        assert result.content == "Lovely park"
        adapter._request_bytes.assert_awaited_once_with("https://img/2.jpg")
        kwargs = adapter._request_json.await_args.kwargs
        assert kwargs["params"] == {"key": "gemini-test"}
        inline = kwargs["json"]["contents"][0]["parts"][1]["inline_data"]
        assert inline == {"mime_type": "image/jpeg", "data": "aW1n"}


class TestTextAdapters:
    @pytest.mark.asyncio
    async def test_openai_chat(self, config, make_request):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Hi there"), finish_reason="stop")],
            usage=SimpleNamespace(total_tokens=12),
        ))
        adapter = OpenAIChatAdapter(config, client=client)

        result = await adapter.generate("hello", make_request(Capability.TEXT, prompt="hello"))

        assert result.content == "Hi there"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-3.5-turbo"
        assert kwargs["messages"][-1] == {"role": "user", "content": "hello"}
        assert kwargs["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_simulated_always_succeeds(self, config, make_request):
        config["OPENAI_API_KEY"] = None
        adapter = SimulatedTextAdapter(config)
        result = await adapter.generate("hey", make_request(Capability.TEXT, prompt="hey"))
        assert result.success is True
        assert result.content == canned_reply("hey")

    def test_canned_reply_selection(self):
        """Test the reply index is the prompt length modulo the reply count."""
        assert canned_reply("abc") == "Thank you for opening up to me. How does that make you feel?"
        assert canned_reply("abcde") == "I appreciate you sharing that with me. Tell me more about it."
        assert canned_reply("x" * 55).endswith("It sounds like you have a lot on your mind.")
