"""
HTTP surface (aiohttp.web)

Authentication happens upstream; the caller's account arrives in the
X-Account-Id header. Surfaced errors are mapped to status codes in one
middleware so handlers only deal with the happy path.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from aiohttp import web

from companion.config import load_config
from companion.exceptions import (
    AllProvidersFailedError,
    GenerationError,
    InsufficientFundsError,
    TemplateNotFoundError,
)
from companion.generation.prompts import TEMPLATES
from companion.generation.service import GenerationService, PhotoAnalysis
from companion.generation.types import Capability, GenerationOptions, GenerationRecord
from companion.streaming.chat import ChatStreamer, get_streaming_config, is_streaming_available
from companion.streaming.session import StreamSessionManager, StreamTransport
from companion.utils.logging import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/v1"
ACCOUNT_HEADER = "X-Account-Id"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

SERVICE_KEY = web.AppKey("service", GenerationService)
STREAMER_KEY = web.AppKey("streamer", ChatStreamer)
SESSIONS_KEY = web.AppKey("sessions", StreamSessionManager)
CONFIG_KEY = web.AppKey("config", dict)


class SSEResponseTransport(StreamTransport):
    """StreamTransport over an aiohttp StreamResponse"""

    def __init__(self, response: web.StreamResponse):
        self.response = response

    async def send(self, text: str) -> None:
        await self.response.write(text.encode("utf-8"))

    async def close(self) -> None:
        await self.response.write_eof()


def _error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"success": False, "message": message, **extra}, status=status)


def _account_id(request: web.Request) -> str:
    account_id = (request.headers.get(ACCOUNT_HEADER) or "").strip()
    if not account_id:
        raise web.HTTPUnauthorized(
            text='{"success": false, "message": "Missing account"}', content_type="application/json"
        )
    return account_id


async def _read_json(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text='{"success": false, "message": "Invalid JSON body"}', content_type="application/json"
        )
    return body if isinstance(body, dict) else {}


def _options(data: Dict[str, Any]) -> GenerationOptions:
    try:
        return GenerationOptions.from_dict(data)
    except (TypeError, ValueError) as e:
        raise web.HTTPBadRequest(
            text=f'{{"success": false, "message": "Invalid options: {type(e).__name__}"}}',
            content_type="application/json",
        )


def _image_payload(record: GenerationRecord) -> Dict[str, Any]:
    return {
        "id": record.record_id,
        "imageUrl": record.resource_url,
        "prompt": record.prompt,
        "enhancedPrompt": record.enhanced_prompt,
        "style": record.style,
        "quality": record.quality,
        "provider": record.provider_id.value,
        "costTokens": record.cost_units,
        "generationTimeMs": record.generation_latency_ms,
        "isPublic": record.is_public,
        "createdAt": record.created_at.isoformat(),
    }


def _analysis_payload(analysis: PhotoAnalysis) -> Dict[str, Any]:
    return {
        "id": analysis.record.record_id,
        "provider": analysis.record.provider_id.value,
        "response": analysis.response,
        "structured": analysis.structured,
        "followUpQuestion": analysis.follow_up_question,
        "costTokens": analysis.record.cost_units,
    }


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except InsufficientFundsError as e:
        return _error(402, e.user_message, cost=e.required_units, balance=e.available_units)
    except TemplateNotFoundError as e:
        return _error(404, e.user_message)
    except AllProvidersFailedError as e:
        logger.error(f"{request.path}: {e}")
        return _error(503, e.user_message)
    except GenerationError as e:
        logger.error(f"{request.path}: {e}")
        return _error(500, e.user_message)


async def generate_image(request: web.Request) -> web.Response:
    account_id = _account_id(request)
    body = await _read_json(request)
    prompt = (body.get("prompt") or "").strip()
    if not prompt:
        return _error(400, "Prompt is required")

    service = request.app[SERVICE_KEY]
    record = await service.generate_image(account_id, prompt, _options(body))
    return web.json_response({"success": True, "image": _image_payload(record)})


async def generate_from_template(request: web.Request) -> web.Response:
    account_id = _account_id(request)
    body = await _read_json(request)
    template_id = body.pop("templateId", None)
    if not template_id:
        return _error(400, "Template ID is required")

    service = request.app[SERVICE_KEY]
    record = await service.generate_from_template(account_id, template_id, body)
    return web.json_response({"success": True, "image": _image_payload(record)})


async def list_templates(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    templates = []
    for template_id, template in TEMPLATES.items():
        options = GenerationOptions.from_dict({k: v for k, v in template.items() if k != "prompt"})
        templates.append({
            "id": template_id,
            "style": options.style,
            "cost": service.estimate(options).total_units,
        })
    return web.json_response({"success": True, "templates": templates})


async def estimate_cost(request: web.Request) -> web.Response:
    account_id = _account_id(request)
    service = request.app[SERVICE_KEY]
    cost = service.estimate(_options(dict(request.query))).total_units
    balance = await service.get_balance(account_id)
    return web.json_response({
        "success": True,
        "cost": cost,
        "currentCoins": balance,
        "canAfford": balance >= cost,
    })


async def get_gallery(request: web.Request) -> web.Response:
    account_id = _account_id(request)
    query = request.query
    try:
        limit = int(query.get("limit", 50))
        offset = int(query.get("offset", 0))
    except ValueError:
        return _error(400, "limit and offset must be integers")
    is_public = None
    if "isPublic" in query:
        is_public = query["isPublic"].lower() == "true"

    service = request.app[SERVICE_KEY]
    records = await service.get_gallery(account_id, limit=limit, offset=offset, is_public=is_public)
    return web.json_response({
        "success": True,
        "images": [_image_payload(r) for r in records],
        "count": len(records),
    })


async def analyze_photo(request: web.Request) -> web.Response:
    account_id = _account_id(request)
    body = await _read_json(request)
    image_url = (body.get("imageUrl") or "").strip()
    if not image_url:
        return _error(400, "Image URL is required")

    service = request.app[SERVICE_KEY]
    analysis = await service.analyze_photo(
        account_id, image_url, _options(body), message=body.get("message")
    )
    return web.json_response({"success": True, "analysis": _analysis_payload(analysis)})


async def list_vision_providers(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    return web.json_response({"success": True, "providers": service.list_providers(Capability.VISION)})


async def stream_chat(request: web.Request) -> web.StreamResponse:
    account_id = _account_id(request)
    body = await _read_json(request)
    message = (body.get("message") or body.get("prompt") or "").strip()
    if not message:
        return _error(400, "Message is required")
    options = _options(body)

    response = web.StreamResponse(status=200, headers=SSE_HEADERS)
    await response.prepare(request)

    manager = request.app[SESSIONS_KEY]
    streamer = request.app[STREAMER_KEY]
    async with manager.open(SSEResponseTransport(response), account_id=account_id) as session:
        await streamer.stream(session, message, options)
    return response


async def stream_config(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return web.json_response({
        "success": True,
        "config": get_streaming_config(config),
        "available": is_streaming_available(config),
    })


async def _on_shutdown(app: web.Application) -> None:
    app[SESSIONS_KEY].cancel_all()


async def _on_cleanup(app: web.Application) -> None:
    await app[SERVICE_KEY].close()
    logger.info("Generation service closed")


def create_app(
    config: Optional[Dict[str, Any]] = None,
    service: Optional[GenerationService] = None,
    streamer: Optional[ChatStreamer] = None,
    sessions: Optional[StreamSessionManager] = None,
) -> web.Application:
    config = config or load_config()
    service = service or GenerationService(config)

    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    app[SERVICE_KEY] = service
    app[STREAMER_KEY] = streamer or ChatStreamer(service.orchestrator, config)
    app[SESSIONS_KEY] = sessions or StreamSessionManager(int(config.get("STREAM_KEEPALIVE_EVERY", 10)))

    app.router.add_post(f"{API_PREFIX}/ai-images/generate", generate_image)
    app.router.add_post(f"{API_PREFIX}/ai-images/template", generate_from_template)
    app.router.add_get(f"{API_PREFIX}/ai-images/templates", list_templates)
    app.router.add_get(f"{API_PREFIX}/ai-images/cost", estimate_cost)
    app.router.add_get(f"{API_PREFIX}/ai-images/gallery", get_gallery)
    app.router.add_post(f"{API_PREFIX}/photos/analyze", analyze_photo)
    app.router.add_get(f"{API_PREFIX}/photos/providers", list_vision_providers)
    app.router.add_post(f"{API_PREFIX}/ai/stream", stream_chat)
    app.router.add_get(f"{API_PREFIX}/ai/stream/config", stream_config)

    app.on_shutdown.append(_on_shutdown)
    app.on_cleanup.append(_on_cleanup)
    return app
