"""
Core types and data models for the generation subsystem

Requests are immutable once built; provider outcomes are a closed
success/failure pair so the orchestrator never has to inspect exceptions.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
import uuid


class Capability(Enum):
    """Logical kinds of generation request"""
    IMAGE = "image"
    VISION = "vision"
    TEXT = "text"


class ProviderId(Enum):
    """Known inference providers"""
    DALLE3 = "dalle3"
    FLUX = "flux"
    SDXL = "sdxl"
    GPT4_VISION = "gpt4vision"
    GEMINI = "gemini"
    OPENAI_CHAT = "openai"
    SIMULATED = "simulated"

    @classmethod
    def parse(cls, value: Union[str, "ProviderId", None]) -> Optional["ProviderId"]:
        """Lenient lookup; unknown names yield None so callers fall back to defaults"""
        if isinstance(value, ProviderId):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Quality(Enum):
    STANDARD = "standard"
    HD = "hd"
    ULTRA = "ultra"


class ProviderErrorType(Enum):
    """Categorized provider failure reasons"""
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout_error"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"
    CONTENT_FILTERED = "content_filtered"
    VALIDATION_ERROR = "validation_error"
    CANCELLED = "cancelled"


@dataclass
class ProviderError(Exception):
    """Structured adapter-internal error; never escapes an adapter boundary"""
    error_type: ProviderErrorType
    message: str
    user_message: str = "The generation service is temporarily unavailable."
    provider: Optional[ProviderId] = None
    retry_after_seconds: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.error_type.value}: {self.message}"


# Accepted request keys from the HTTP surface (camelCase) mapped to option fields
_OPTION_ALIASES = {
    "provider": "provider",
    "providerPreference": "provider",
    "companionId": "companion_id",
    "companionName": "companion_name",
    "companionAppearance": "companion_appearance",
    "companionPersonality": "companion_personality",
    "systemPrompt": "system_prompt",
    "maxTokens": "max_tokens",
    "isPublic": "is_public",
}


@dataclass(frozen=True)
class GenerationOptions:
    """Caller options; every field has a default so missing keys never fail"""
    style: str = "realistic"
    quality: str = Quality.HD.value
    width: int = 1024
    height: int = 1024
    provider: Optional[str] = None

    # Companion metadata
    companion_id: Optional[str] = None
    companion_name: str = "companion"
    companion_appearance: str = "default"
    companion_personality: Mapping[str, float] = field(default_factory=dict)
    setting: str = ""
    outfit: str = ""
    pose: str = ""
    is_public: bool = False

    # Chat parameters
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def preferred_provider(self) -> Optional[ProviderId]:
        return ProviderId.parse(self.provider)

    def merged(self, **overrides: Any) -> GenerationOptions:
        """Return a copy with the non-None overrides applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> GenerationOptions:
        """Build options from a loose mapping, ignoring unknown keys"""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known and value is not None:
                values[name] = value
        for int_key in ("width", "height", "max_tokens"):
            if int_key in values:
                values[int_key] = int(values[int_key])
        if "temperature" in values:
            values["temperature"] = float(values["temperature"])
        return cls(**values)


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable request for any capability"""
    requester_id: str
    capability: Capability
    raw_prompt: str
    options: GenerationOptions = field(default_factory=GenerationOptions)
    image_url: Optional[str] = None  # subject of a vision request
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class CostQuote:
    """Price of one generation in account currency units"""
    base_units: int
    quality_multiplier: float
    size_multiplier: float
    provider_multiplier: float
    total_units: int

    def __post_init__(self) -> None:
        if self.total_units <= 0:
            raise ValueError(f"CostQuote total must be positive, got {self.total_units}")


@dataclass
class ProviderSuccess:
    """Uniform successful adapter outcome"""
    provider_id: ProviderId
    resource_url: str
    content: Optional[str] = None  # textual output (vision analysis, chat reply)
    metadata: Dict[str, Any] = field(default_factory=dict)
    latency_ms: int = 0

    @property
    def success(self) -> bool:
        return True


@dataclass
class ProviderFailure:
    """Uniform failed adapter outcome"""
    provider_id: ProviderId
    reason: ProviderErrorType
    message: str = ""
    latency_ms: int = 0

    @property
    def success(self) -> bool:
        return False


ProviderResult = Union[ProviderSuccess, ProviderFailure]


@dataclass(frozen=True)
class TaskHandle:
    """Reference to provider-side asynchronous work; lives for one generation only"""
    provider_id: ProviderId
    external_task_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TaskState(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class TaskStatus:
    """One observation of a provider task"""
    state: TaskState
    payload: Any = None
    reason: str = ""

    @classmethod
    def pending(cls) -> TaskStatus:
        return cls(TaskState.PENDING)

    @classmethod
    def succeeded(cls, payload: Any) -> TaskStatus:
        return cls(TaskState.SUCCEEDED, payload=payload)

    @classmethod
    def failed(cls, reason: str) -> TaskStatus:
        return cls(TaskState.FAILED, reason=reason)


@dataclass
class PollResult:
    """Outcome of a bounded polling loop"""
    success: bool
    attempts: int
    payload: Any = None
    reason: Optional[ProviderErrorType] = None
    message: str = ""


@dataclass(frozen=True)
class GenerationRecord:
    """Persisted result of a successful, settled generation; never mutated"""
    requester_id: str
    capability: Capability
    prompt: str
    enhanced_prompt: str
    provider_id: ProviderId
    resource_url: str
    cost_units: int
    generation_latency_ms: int
    request_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Request snapshot
    style: str = "realistic"
    quality: str = Quality.HD.value
    width: int = 1024
    height: int = 1024
    companion_id: Optional[str] = None
    companion_name: Optional[str] = None
    is_public: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize record for JSON storage"""
        return {
            "record_id": self.record_id,
            "request_id": self.request_id,
            "requester_id": self.requester_id,
            "capability": self.capability.value,
            "prompt": self.prompt,
            "enhanced_prompt": self.enhanced_prompt,
            "provider_id": self.provider_id.value,
            "resource_url": self.resource_url,
            "cost_units": self.cost_units,
            "generation_latency_ms": self.generation_latency_ms,
            "created_at": self.created_at.isoformat(),
            "style": self.style,
            "quality": self.quality,
            "width": self.width,
            "height": self.height,
            "companion_id": self.companion_id,
            "companion_name": self.companion_name,
            "is_public": self.is_public,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GenerationRecord:
        """Deserialize record from JSON storage"""
        data = dict(data)
        data["capability"] = Capability(data["capability"])
        data["provider_id"] = ProviderId(data["provider_id"])
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        return cls(**data)
