"""
Flux Pro Provider Adapter

Black Forest Labs returns a task id; the result is fetched through the Async
Task Poller until it reports Ready.
"""

from __future__ import annotations
from typing import Any, Dict

from ..types import (
    Capability,
    GenerationRequest,
    ProviderError,
    ProviderErrorType,
    ProviderId,
    ProviderSuccess,
    Quality,
    TaskHandle,
    TaskStatus,
)
from .base import AsyncTaskProvider

FLUX_BASE_URL = "https://api.bfl.ml/v1"

READY_STATUS = "Ready"
FAILED_STATUSES = {"Error", "Content Moderated", "Request Moderated", "Task not found"}


class FluxAdapter(AsyncTaskProvider):
    """Black Forest Labs Flux Pro text-to-image"""

    provider_id = ProviderId.FLUX
    capability = Capability.IMAGE
    display_name = "Flux Pro"
    quality = "excellent"
    speed = "fast"
    credential_key = "FLUX_API_KEY"

    def _auth_headers(self) -> Dict[str, str]:
        return {"X-Key": self.api_key or ""}

    async def _submit(self, prompt: str, request: GenerationRequest) -> TaskHandle:
        options = request.options
        payload = {
            "prompt": prompt,
            "width": options.width,
            "height": options.height,
            "steps": 50 if options.quality == Quality.ULTRA.value else 30,
            "guidance": 7.5,
            "safety_tolerance": 2,
        }

        data = await self._request_json(
            "POST", f"{FLUX_BASE_URL}/flux-pro", json=payload, headers=self._auth_headers()
        )

        task_id = data.get("id")
        if not task_id:
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message="No task id returned from Flux",
                provider=self.provider_id,
            )
        return TaskHandle(provider_id=self.provider_id, external_task_id=str(task_id))

    async def _fetch_status(self, handle: TaskHandle) -> TaskStatus:
        data = await self._request_json(
            "GET",
            f"{FLUX_BASE_URL}/get_result",
            params={"id": handle.external_task_id},
            headers=self._auth_headers(),
        )

        status = data.get("status")
        if status == READY_STATUS:
            return TaskStatus.succeeded(data.get("result") or {})
        if status in FAILED_STATUSES:
            return TaskStatus.failed(f"Flux task {status}")
        return TaskStatus.pending()

    def _to_success(self, handle: TaskHandle, payload: Any, request: GenerationRequest) -> ProviderSuccess:
        sample = payload.get("sample") if isinstance(payload, dict) else None
        if not sample:
            raise ProviderError(
                error_type=ProviderErrorType.PROVIDER_ERROR,
                message=f"Flux task {handle.external_task_id} finished without a sample",
                provider=self.provider_id,
            )
        return ProviderSuccess(
            provider_id=self.provider_id,
            resource_url=sample,
            metadata={"task_id": handle.external_task_id},
        )
