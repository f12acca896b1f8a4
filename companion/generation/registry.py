"""
Provider Registry

Fixed table of adapters keyed by capability. Fallback chains are built from
this table only, so the set of providers a request can reach is statically
enumerable.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from companion.utils.logging import get_logger
from .providers import (
    BaseProvider,
    DallE3Adapter,
    FluxAdapter,
    GeminiVisionAdapter,
    GPT4VisionAdapter,
    OpenAIChatAdapter,
    SDXLAdapter,
    SimulatedTextAdapter,
)
from .types import Capability, ProviderId

logger = get_logger(__name__)

PROVIDER_TABLE: Dict[Capability, Dict[ProviderId, Type[BaseProvider]]] = {
    Capability.IMAGE: {
        ProviderId.DALLE3: DallE3Adapter,
        ProviderId.FLUX: FluxAdapter,
        ProviderId.SDXL: SDXLAdapter,
    },
    Capability.VISION: {
        ProviderId.GPT4_VISION: GPT4VisionAdapter,
        ProviderId.GEMINI: GeminiVisionAdapter,
    },
    Capability.TEXT: {
        ProviderId.OPENAI_CHAT: OpenAIChatAdapter,
        ProviderId.SIMULATED: SimulatedTextAdapter,
    },
}

# Secondaries are synchronous so a chain always ends on a short call
SECONDARY_ORDER: Dict[Capability, Tuple[ProviderId, ...]] = {
    Capability.IMAGE: (ProviderId.DALLE3, ProviderId.SDXL),
    Capability.VISION: (ProviderId.GPT4_VISION, ProviderId.GEMINI),
    Capability.TEXT: (ProviderId.SIMULATED,),
}

DEFAULT_PROVIDER_KEYS: Dict[Capability, str] = {
    Capability.IMAGE: "DEFAULT_IMAGE_PROVIDER",
    Capability.VISION: "DEFAULT_VISION_PROVIDER",
    Capability.TEXT: "DEFAULT_TEXT_PROVIDER",
}

FALLBACK_DEFAULTS: Dict[Capability, ProviderId] = {
    Capability.IMAGE: ProviderId.DALLE3,
    Capability.VISION: ProviderId.GPT4_VISION,
    Capability.TEXT: ProviderId.OPENAI_CHAT,
}


class ProviderRegistry:
    """
    Owns one adapter instance per provider

    Adapters are created lazily and reused, so their HTTP sessions are pooled
    across requests. Tests inject ready-made adapters through ``adapters``.
    """

    def __init__(self, config: Dict[str, Any], adapters: Optional[Iterable[BaseProvider]] = None):
        self.config = config
        self._adapters: Dict[ProviderId, BaseProvider] = {}
        for adapter in adapters or ():
            self._adapters[adapter.provider_id] = adapter

    def capability_of(self, provider_id: ProviderId) -> Optional[Capability]:
        for capability, table in PROVIDER_TABLE.items():
            if provider_id in table:
                return capability
        return None

    def get(self, provider_id: ProviderId) -> BaseProvider:
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            capability = self.capability_of(provider_id)
            if capability is None:
                raise KeyError(f"Unknown provider: {provider_id}")
            adapter = PROVIDER_TABLE[capability][provider_id](self.config)
            self._adapters[provider_id] = adapter
        return adapter

    def describe(self, capability: Capability) -> List[Dict[str, Any]]:
        """Catalogue entries for one capability, read from the adapter classes"""
        entries = []
        for provider_id, adapter_cls in PROVIDER_TABLE[capability].items():
            key = adapter_cls.credential_key
            entries.append({
                "id": provider_id.value,
                "name": adapter_cls.display_name,
                "quality": adapter_cls.quality,
                "speed": adapter_cls.speed,
                "configured": key is None or bool(self.config.get(key)),
            })
        return entries

    def default_provider(self, capability: Capability) -> ProviderId:
        configured = ProviderId.parse(self.config.get(DEFAULT_PROVIDER_KEYS[capability]))
        if configured is not None and configured in PROVIDER_TABLE[capability]:
            return configured
        return FALLBACK_DEFAULTS[capability]

    def chain_ids(
        self,
        capability: Capability,
        preferred: Optional[ProviderId] = None,
        exclude: Iterable[ProviderId] = (),
    ) -> List[ProviderId]:
        """
        Preferred provider first, then the first fixed secondary that differs.

        A preference naming a provider of another capability is ignored.
        """
        excluded = set(exclude)
        if preferred is None or preferred not in PROVIDER_TABLE[capability]:
            if preferred is not None:
                logger.warning(f"Ignoring {preferred.value} for {capability.value} requests")
            preferred = self.default_provider(capability)

        chain: List[ProviderId] = []
        if preferred not in excluded:
            chain.append(preferred)
        for secondary in SECONDARY_ORDER[capability]:
            if secondary != preferred and secondary not in excluded:
                chain.append(secondary)
                break
        return chain

    def chain(
        self,
        capability: Capability,
        preferred: Optional[ProviderId] = None,
        exclude: Iterable[ProviderId] = (),
    ) -> List[BaseProvider]:
        return [self.get(pid) for pid in self.chain_ids(capability, preferred, exclude)]

    async def close(self) -> None:
        """Close every adapter that was created"""
        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()
