"""
Fallback Orchestrator

Tries the adapters of a capability strictly in order and stops at the first
success. Adapter failures are logged and never thrown; only an exhausted
chain surfaces, as AllProvidersFailedError.
"""

from __future__ import annotations
import asyncio
from typing import Iterable, List, Optional, Sequence

from companion.exceptions import AllProvidersFailedError, GenerationCancelledError
from companion.utils.logging import get_logger
from .providers import BaseProvider
from .registry import ProviderRegistry
from .types import GenerationRequest, ProviderFailure, ProviderId, ProviderSuccess

logger = get_logger(__name__)


async def run_chain(
    adapters: Sequence[BaseProvider],
    prompt: str,
    request: GenerationRequest,
    cancel_event: Optional[asyncio.Event] = None,
) -> ProviderSuccess:
    """
    Invoke adapters in order until one succeeds.

    Raises:
        GenerationCancelledError: cancel_event was set before a result was produced
        AllProvidersFailedError: every adapter returned a failure
    """
    failures: List[ProviderFailure] = []

    for position, adapter in enumerate(adapters):
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelledError(
                f"Request {request.request_id} cancelled before {adapter.provider_id.value}"
            )

        result = await adapter.generate(prompt, request, cancel_event)
        if result.success:
            if failures:
                logger.info(
                    f"Fallback provider {result.provider_id.value} succeeded after {len(failures)} failure(s)",
                    extra={
                        "event": "generation.orchestrator.recovered",
                        "account_id": request.requester_id,
                        "request_id": request.request_id,
                    },
                )
            return result

        failures.append(result)
        next_adapter = adapters[position + 1] if position + 1 < len(adapters) else None
        logger.warning(
            f"{result.provider_id.value} failed ({result.reason.value})"
            + (f", falling back to {next_adapter.provider_id.value}" if next_adapter else ""),
            extra={
                "event": "generation.orchestrator.fallback",
                "account_id": request.requester_id,
                "request_id": request.request_id,
                "detail": {
                    "failed_provider": result.provider_id.value,
                    "reason": result.reason.value,
                    "next_provider": next_adapter.provider_id.value if next_adapter else None,
                },
            },
        )

    if cancel_event is not None and cancel_event.is_set():
        raise GenerationCancelledError(f"Request {request.request_id} cancelled after {len(failures)} attempt(s)")

    logger.error(
        f"All {request.capability.value} providers failed",
        extra={
            "event": "generation.orchestrator.exhausted",
            "account_id": request.requester_id,
            "request_id": request.request_id,
            "detail": {"failures": [f"{f.provider_id.value}:{f.reason.value}" for f in failures]},
        },
    )
    raise AllProvidersFailedError(request.capability.value, failures)


class FallbackOrchestrator:
    """Capability-level entry point over the provider registry"""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def generate(
        self,
        request: GenerationRequest,
        prompt: str,
        cancel_event: Optional[asyncio.Event] = None,
        exclude: Iterable[ProviderId] = (),
    ) -> ProviderSuccess:
        adapters = self.registry.chain(
            request.capability, request.options.preferred_provider, exclude=exclude
        )
        if not adapters:
            raise AllProvidersFailedError(request.capability.value, [])
        return await run_chain(adapters, prompt, request, cancel_event)
