"""
Generation Service - end-to-end control flow for image and vision requests

quote -> reserve -> enhance -> orchestrate -> settle -> persist. A denied
reservation stops the request before any provider is contacted; a failed or
cancelled orchestration releases the reservation without charging.
"""

from __future__ import annotations
import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from companion.config import load_config
from companion.exceptions import InsufficientFundsError, TemplateNotFoundError
from companion.utils.logging import get_logger
from .analysis import extract_structured_data, generate_follow_up_question
from .ledger import FileAccountLedger, LedgerGate
from .orchestrator import FallbackOrchestrator
from .pricing import quote
from .prompts import ANALYSIS_USER_PROMPT, enhance, resolve_template
from .registry import ProviderRegistry
from .store import ResultStore
from .types import (
    Capability,
    CostQuote,
    GenerationOptions,
    GenerationRecord,
    GenerationRequest,
    ProviderSuccess,
)

logger = get_logger(__name__)


@dataclass
class PhotoAnalysis:
    """Vision result plus the companion-facing extras"""
    record: GenerationRecord
    response: str
    structured: Dict[str, Any] = field(default_factory=dict)
    follow_up_question: str = ""


class GenerationService:
    """Entry point used by the HTTP surface"""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        registry: Optional[ProviderRegistry] = None,
        gate: Optional[LedgerGate] = None,
        store: Optional[ResultStore] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or load_config()
        self.registry = registry or ProviderRegistry(self.config)
        self.orchestrator = FallbackOrchestrator(self.registry)
        self.gate = gate or LedgerGate(FileAccountLedger(self.config["LEDGER_DIR"]))
        self.store = store or ResultStore(self.config["RECORDS_PATH"])
        self.rng = rng or random.Random()

    def estimate(self, options: GenerationOptions, capability: Capability = Capability.IMAGE) -> CostQuote:
        """Quote against the provider that will be tried first"""
        preferred = options.preferred_provider
        if preferred is None or self.registry.capability_of(preferred) is not capability:
            preferred = self.registry.default_provider(capability)
        return quote(options.merged(provider=preferred.value), capability)

    async def _execute(
        self,
        request: GenerationRequest,
        prompt: str,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[ProviderSuccess, CostQuote, int]:
        account_id = request.requester_id
        cost = self.estimate(request.options, request.capability)

        reservation = await self.gate.reserve(account_id, request.request_id, cost)
        if not reservation.allowed:
            raise InsufficientFundsError(cost.total_units, reservation.available_units)

        start_time = time.monotonic()
        try:
            result = await self.orchestrator.generate(request, prompt, cancel_event)
        except BaseException:
            await self.gate.release(account_id, request.request_id)
            raise
        latency_ms = int((time.monotonic() - start_time) * 1000)

        await self.gate.settle(account_id, request.request_id, cost)
        return result, cost, latency_ms

    def _build_record(
        self,
        request: GenerationRequest,
        prompt: str,
        result: ProviderSuccess,
        cost: CostQuote,
        latency_ms: int,
    ) -> GenerationRecord:
        options = request.options
        return GenerationRecord(
            requester_id=request.requester_id,
            capability=request.capability,
            prompt=request.raw_prompt,
            enhanced_prompt=prompt,
            provider_id=result.provider_id,
            resource_url=result.resource_url,
            cost_units=cost.total_units,
            generation_latency_ms=latency_ms,
            request_id=request.request_id,
            style=options.style,
            quality=options.quality,
            width=options.width,
            height=options.height,
            companion_id=options.companion_id,
            companion_name=options.companion_name,
            is_public=options.is_public,
            metadata=dict(result.metadata),
        )

    async def generate_image(
        self,
        account_id: str,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationRecord:
        request = GenerationRequest(
            requester_id=account_id,
            capability=Capability.IMAGE,
            raw_prompt=prompt,
            options=options or GenerationOptions(),
        )
        enhanced = enhance(request.raw_prompt, request.options)

        result, cost, latency_ms = await self._execute(request, enhanced, cancel_event)

        record = self._build_record(request, enhanced, result, cost, latency_ms)
        await self.store.save_generation_record(record)

        logger.info(
            f"Image generated with {result.provider_id.value} for {cost.total_units} units",
            extra={
                "event": "generation.image.complete",
                "account_id": account_id,
                "request_id": request.request_id,
                "detail": {"provider": result.provider_id.value, "cost": cost.total_units, "latency_ms": latency_ms},
            },
        )
        return record

    async def generate_from_template(
        self,
        account_id: str,
        template_id: str,
        customization: Optional[Mapping[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationRecord:
        template = resolve_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        prompt = template.pop("prompt")
        options = GenerationOptions.from_dict({**template, **(customization or {})})
        return await self.generate_image(account_id, prompt, options, cancel_event)

    async def analyze_photo(
        self,
        account_id: str,
        image_url: str,
        options: Optional[GenerationOptions] = None,
        message: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PhotoAnalysis:
        request = GenerationRequest(
            requester_id=account_id,
            capability=Capability.VISION,
            raw_prompt=message or ANALYSIS_USER_PROMPT,
            options=options or GenerationOptions(),
            image_url=image_url,
        )

        result, cost, latency_ms = await self._execute(request, request.raw_prompt, cancel_event)

        analysis = result.content or ""
        structured = extract_structured_data(analysis)
        follow_up = generate_follow_up_question(structured, self.rng)

        record = self._build_record(request, request.raw_prompt, result, cost, latency_ms)
        await self.store.save_generation_record(record)

        return PhotoAnalysis(
            record=record,
            response=analysis,
            structured=structured,
            follow_up_question=follow_up,
        )

    async def get_gallery(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        is_public: Optional[bool] = None,
    ) -> List[GenerationRecord]:
        return await self.store.list_gallery(account_id, limit=limit, offset=offset, is_public=is_public)

    async def get_balance(self, account_id: str) -> int:
        return await self.gate.ledger.get_balance(account_id)

    def list_providers(self, capability: Capability = Capability.VISION) -> List[Dict[str, Any]]:
        return self.registry.describe(capability)

    async def close(self) -> None:
        await self.registry.close()
