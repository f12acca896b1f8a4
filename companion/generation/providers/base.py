"""
Base Provider Interface

Abstract base classes defining the contract for generation providers.
``generate`` always resolves to a ProviderResult: every internal error is
caught at this boundary and converted to a ProviderFailure, so the
orchestrator can fall back without inspecting exceptions.
"""

from __future__ import annotations
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from companion.utils.logging import get_logger
from ..poller import poll
from ..types import (
    Capability,
    GenerationRequest,
    ProviderError,
    ProviderErrorType,
    ProviderFailure,
    ProviderId,
    ProviderResult,
    ProviderSuccess,
    TaskHandle,
    TaskStatus,
)

USER_AGENT = "Companion-GenAI/1.0"


class BaseProvider(ABC):
    """
    Abstract base class for provider adapters

    Standardizes credential checks, HTTP session handling, error mapping and
    structured logging across all adapters.
    """

    provider_id: ProviderId
    capability: Capability
    display_name: str = ""
    quality: str = "standard"
    speed: str = "moderate"
    credential_key: Optional[str] = None
    timeout_key: str = "PROVIDER_TIMEOUT_SECONDS"
    default_timeout_seconds: float = 60.0
    is_async: bool = False

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.logger = get_logger(f"{__name__}.{self.provider_id.value}")
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def timeout_seconds(self) -> float:
        return float(self.config.get(self.timeout_key) or self.default_timeout_seconds)

    @property
    def api_key(self) -> Optional[str]:
        if not self.credential_key:
            return None
        return self.config.get(self.credential_key)

    def is_configured(self) -> bool:
        return self.credential_key is None or bool(self.api_key)

    def _ensure_configured(self) -> None:
        """Missing credentials are a fallback trigger, not a crash"""
        if not self.is_configured():
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_UNAVAILABLE,
                message=f"{self.credential_key} not configured",
                provider=self.provider_id,
            )

    async def generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProviderResult:
        """
        Run one generation against this provider

        Args:
            prompt: Provider-ready prompt (already enhanced)
            request: Originating request
            cancel_event: Owner's cancellation signal

        Returns:
            ProviderSuccess or ProviderFailure; never raises except on task cancellation
        """
        start_time = time.monotonic()
        self._log_request_start(request)

        try:
            self._ensure_configured()
            result = await self._generate(prompt, request, cancel_event)
            result.latency_ms = self._elapsed_ms(start_time)
            self._log_request_complete(request, result)
            return result

        except ProviderError as e:
            error = e
        except asyncio.TimeoutError:
            error = ProviderError(
                error_type=ProviderErrorType.TIMEOUT,
                message=f"{self.display_name} request timed out after {self.timeout_seconds:.0f}s",
                provider=self.provider_id,
            )
        except aiohttp.ClientError as e:
            error = ProviderError(
                error_type=ProviderErrorType.NETWORK_ERROR,
                message=f"Network error: {e}",
                provider=self.provider_id,
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            error = ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message=f"Unexpected {self.display_name} response shape: {e!r}",
                provider=self.provider_id,
            )
        except Exception as e:
            error = ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message=f"Unexpected {self.display_name} error: {e}",
                provider=self.provider_id,
            )

        latency_ms = self._elapsed_ms(start_time)
        self._log_request_error(request, error, latency_ms)
        return ProviderFailure(
            provider_id=self.provider_id,
            reason=error.error_type,
            message=error.message,
            latency_ms=latency_ms,
        )

    @abstractmethod
    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        """Provider-specific call; raise ProviderError on failure"""

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the pooled HTTP session"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT},
                connector=aiohttp.TCPConnector(limit=10),
            )
        return self.session

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Issue one bounded HTTP call and return the decoded JSON body"""
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with session.request(
            method, url, json=json, params=params, headers=headers, timeout=timeout
        ) as resp:
            if resp.status == 200:
                return await resp.json(content_type=None)
            error_data = (
                await resp.json(content_type=None)
                if resp.content_type == "application/json"
                else {"message": await resp.text()}
            )
            raise self._map_api_error(resp.status, error_data or {})

    async def _request_bytes(self, url: str) -> bytes:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with session.get(url, timeout=timeout) as resp:
            if resp.status != 200:
                raise self._map_api_error(resp.status, {})
            return await resp.read()

    def _map_api_error(self, status_code: int, error_data: Dict[str, Any]) -> ProviderError:
        """Map HTTP failures to ProviderError"""
        error_message = self._extract_error_message(error_data)
        lowered = error_message.lower()

        if status_code == 400:
            if any(word in lowered for word in ("inappropriate", "violation", "safety", "moderat")):
                return ProviderError(
                    error_type=ProviderErrorType.CONTENT_FILTERED,
                    message=f"Content filtered: {error_message}",
                    user_message="Your prompt was blocked by content safety filters. Please try a different prompt.",
                    provider=self.provider_id,
                )
            return ProviderError(
                error_type=ProviderErrorType.VALIDATION_ERROR,
                message=f"Invalid request: {error_message}",
                provider=self.provider_id,
            )

        if status_code in (401, 403):
            return ProviderError(
                error_type=ProviderErrorType.PROVIDER_UNAVAILABLE,
                message=f"Authentication failed with {self.display_name}",
                provider=self.provider_id,
            )

        if status_code == 429:
            return ProviderError(
                error_type=ProviderErrorType.RATE_LIMITED,
                message="Rate limit exceeded",
                provider=self.provider_id,
                retry_after_seconds=60,
            )

        if status_code >= 500:
            return ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message=f"{self.display_name} server error {status_code}: {error_message}",
                provider=self.provider_id,
                retry_after_seconds=30,
            )

        return ProviderError(
            error_type=ProviderErrorType.PROVIDER_ERROR,
            message=f"{self.display_name} API error {status_code}: {error_message}",
            provider=self.provider_id,
        )

    @staticmethod
    def _extract_error_message(error_data: Dict[str, Any]) -> str:
        error = error_data.get("error")
        if isinstance(error, dict):
            return str(error.get("message", "Unknown API error"))
        if error:
            return str(error)
        return str(error_data.get("message") or error_data.get("detail") or "Unknown API error")

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)

    def _log_request_start(self, request: GenerationRequest) -> None:
        self.logger.info(
            f"Starting {self.display_name} request",
            extra={
                "event": "generation.provider.request.start",
                "account_id": request.requester_id,
                "request_id": request.request_id,
                "detail": {
                    "provider": self.provider_id.value,
                    "capability": request.capability.value,
                    "dimensions": f"{request.options.width}x{request.options.height}"
                    if request.capability is Capability.IMAGE else None,
                    "async": self.is_async,
                },
            },
        )

    def _log_request_complete(self, request: GenerationRequest, result: ProviderSuccess) -> None:
        self.logger.info(
            f"{self.display_name} request completed",
            extra={
                "event": "generation.provider.request.complete",
                "account_id": request.requester_id,
                "request_id": request.request_id,
                "detail": {
                    "provider": self.provider_id.value,
                    "latency_ms": result.latency_ms,
                },
            },
        )

    def _log_request_error(self, request: GenerationRequest, error: ProviderError, latency_ms: int) -> None:
        self.logger.error(
            f"{self.display_name} request failed: {error.message}",
            extra={
                "event": "generation.provider.request.error",
                "account_id": request.requester_id,
                "request_id": request.request_id,
                "detail": {
                    "provider": self.provider_id.value,
                    "error_type": error.error_type.value,
                    "error_message": error.message,
                    "latency_ms": latency_ms,
                    "retry_after": error.retry_after_seconds,
                },
            },
        )

    async def close(self) -> None:
        """Clean up resources"""
        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug(f"Closed {self.display_name} HTTP session")


class AsyncTaskProvider(BaseProvider):
    """
    Provider whose initial call returns a task handle instead of a result

    ``_generate`` submits, then delegates resolution to the Async Task Poller;
    poller exhaustion becomes a TIMEOUT failure.
    """

    is_async = True

    @property
    def max_poll_attempts(self) -> int:
        return int(self.config.get("POLL_MAX_ATTEMPTS") or 30)

    @property
    def poll_interval_seconds(self) -> float:
        return int(self.config.get("POLL_INTERVAL_MS", 2000)) / 1000

    async def _generate(
        self,
        prompt: str,
        request: GenerationRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> ProviderSuccess:
        handle = await self._submit(prompt, request)
        self.logger.debug(f"Submitted task {handle.external_task_id} to {self.display_name}")

        outcome = await poll(
            handle,
            self._fetch_status,
            max_attempts=self.max_poll_attempts,
            interval_seconds=self.poll_interval_seconds,
            cancel_event=cancel_event,
        )

        if not outcome.success:
            raise ProviderError(
                error_type=outcome.reason or ProviderErrorType.PROVIDER_ERROR,
                message=f"{self.display_name} task {handle.external_task_id}: {outcome.message}",
                user_message="Generation is taking too long. Please try again.",
                provider=self.provider_id,
            )

        return self._to_success(handle, outcome.payload, request)

    @abstractmethod
    async def _submit(self, prompt: str, request: GenerationRequest) -> TaskHandle:
        """Start provider-side work and return its handle"""

    @abstractmethod
    async def _fetch_status(self, handle: TaskHandle) -> TaskStatus:
        """Observe the task once"""

    @abstractmethod
    def _to_success(self, handle: TaskHandle, payload: Any, request: GenerationRequest) -> ProviderSuccess:
        """Convert a terminal-success payload into the uniform result"""
