"""Async client that tool handlers use to call back into the platform's core API."""

from __future__ import annotations

from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from apphost.core.backend.types import CommunicationChannel, Workplace
from apphost.core.config.schema import BackendConfig
from apphost.core.runtime.isolation import BackendCredentials, current_backend_credentials


class CoreApiError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return f"Core API error ({status_code})"


class CoreClient:
    """Credentials are read from the active invocation scope, so one client can be shared across tenants."""

    def __init__(self, config: BackendConfig | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config or BackendConfig()
        self.transport = transport

    def _credentials(self) -> BackendCredentials:
        scoped = current_backend_credentials()
        if scoped is not None and scoped.base_url:
            return scoped
        return BackendCredentials(base_url=self.config.base_url, api_token=self.config.api_token)

    @staticmethod
    def _headers(credentials: BackendCredentials) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if credentials.api_token:
            headers["Authorization"] = f"Bearer {credentials.api_token}"
        return headers

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        credentials = self._credentials()
        if not credentials.base_url:
            raise CoreApiError("Core API base URL is not configured")

        body: dict[str, Any] = {"method": method}
        if params is not None:
            body["params"] = params
        async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self.transport) as client:
            resp = await client.post(
                f"{credentials.base_url.rstrip('/')}/core",
                json=body,
                headers=self._headers(credentials),
            )

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if resp.is_error:
            raise CoreApiError(_error_message(payload, resp.status_code), status_code=resp.status_code)
        return payload if isinstance(payload, dict) else {}

    async def list_workplaces(self, filter: dict[str, Any] | None = None) -> list[Workplace]:
        payload = await self.call("workplace.list", {"filter": filter} if filter else None)
        return [Workplace.model_validate(item) for item in payload.get("workplaces") or []]

    async def get_workplace(self, workplace_id: str) -> Workplace:
        payload = await self.call("workplace.get", {"id": workplace_id})
        if not payload.get("workplace"):
            raise CoreApiError(f"Workplace not found: {workplace_id}", status_code=404)
        return Workplace.model_validate(payload["workplace"])

    async def list_communication_channels(self, filter: dict[str, Any] | None = None) -> list[CommunicationChannel]:
        payload = await self.call("communicationChannel.list", {"filter": filter} if filter else None)
        return [CommunicationChannel.model_validate(item) for item in payload.get("channels") or []]

    async def get_communication_channel(self, channel_id: str) -> CommunicationChannel:
        payload = await self.call("communicationChannel.get", {"id": channel_id})
        if not payload.get("channel"):
            raise CoreApiError(f"Channel not found: {channel_id}", status_code=404)
        return CommunicationChannel.model_validate(payload["channel"])
