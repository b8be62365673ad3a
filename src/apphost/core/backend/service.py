from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from apphost.core.backend.types import CommunicationChannel, CommunicationService, Message
from apphost.core.runtime.invoke import call_handler
from apphost.core.webhooks.base import WebhookRequest, WebhookResponse

CoreResult = tuple[int, Any]
CoreWebhookHandler = Callable[[WebhookRequest], Any]

NO_RESPONSE = "Core API service did not respond"


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return value


def _respond(result: Any, *, missing_status: int = 500, missing_error: str = NO_RESPONSE) -> CoreResult:
    if result is None or result is False:
        return missing_status, {"error": missing_error}
    return 200, _dump(result)


def _require_id(params: Mapping[str, Any]) -> str | None:
    value = params.get("id")
    return value if isinstance(value, str) and value else None


class CoreApiService:
    """Pass-through from the ``/core`` route to an app-registered communication service."""

    def __init__(self) -> None:
        self._service: CommunicationService | None = None
        self._webhook_handler: CoreWebhookHandler | None = None
        self._methods: dict[str, Callable[[CommunicationService, Mapping[str, Any]], Awaitable[CoreResult]]] = {
            "createCommunicationChannel": self._create_channel,
            "updateCommunicationChannel": self._update_channel,
            "deleteCommunicationChannel": self._delete_channel,
            "getCommunicationChannel": self._get_channel,
            "getCommunicationChannels": self._list_channels,
            "communicationChannel.list": self._list_channels,
            "communicationChannel.get": self._get_channel,
            "workplace.list": self._list_workplaces,
            "workplace.get": self._get_workplace,
            "sendMessage": self._send_message,
        }

    def register(self, service: CommunicationService) -> None:
        self._service = service

    def get_service(self) -> CommunicationService | None:
        return self._service

    def set_webhook_handler(self, handler: CoreWebhookHandler) -> None:
        self._webhook_handler = handler

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    async def dispatch_webhook(self, request: WebhookRequest) -> WebhookResponse:
        if self._webhook_handler is None:
            return WebhookResponse(status=404)
        return WebhookResponse.coerce(await call_handler(self._webhook_handler, request))

    async def handle_method(self, method: str, params: Mapping[str, Any] | None) -> CoreResult:
        service = self._service
        if service is None:
            return 404, {"error": "Core API service not configured"}
        handler = self._methods.get(method)
        if handler is None:
            return 400, {"error": "Unknown core method"}
        try:
            return await handler(service, params if isinstance(params, Mapping) else {})
        except PydanticValidationError as exc:
            return 400, {"error": f"Invalid params: {exc.error_count()} validation error(s)"}

    async def _create_channel(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        if not params.get("channel"):
            return 400, {"error": "channel is required"}
        channel = CommunicationChannel.model_validate(params["channel"])
        return _respond(await call_handler(service.create_communication_channel, channel))

    async def _update_channel(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        if not params.get("channel"):
            return 400, {"error": "channel is required"}
        channel = CommunicationChannel.model_validate(params["channel"])
        return _respond(await call_handler(service.update_communication_channel, channel))

    async def _delete_channel(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        channel_id = _require_id(params)
        if channel_id is None:
            return 400, {"error": "id is required"}
        return _respond(await call_handler(service.delete_communication_channel, channel_id))

    async def _get_channel(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        channel_id = _require_id(params)
        if channel_id is None:
            return 400, {"error": "id is required"}
        result = await call_handler(service.get_communication_channel, channel_id)
        return _respond(result, missing_status=404, missing_error="Channel not found")

    async def _list_channels(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        return _respond(await call_handler(service.get_communication_channels))

    async def _get_workplace(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        workplace_id = _require_id(params)
        if workplace_id is None:
            return 400, {"error": "id is required"}
        result = await call_handler(service.get_workplace, workplace_id)
        return _respond(result, missing_status=404, missing_error="Workplace not found")

    async def _list_workplaces(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        return _respond(await call_handler(service.list_workplaces))

    async def _send_message(self, service: CommunicationService, params: Mapping[str, Any]) -> CoreResult:
        if not params.get("message") or not params.get("communicationChannel"):
            return 400, {"error": "message and communicationChannel are required"}
        message = Message.model_validate(params["message"])
        channel = CommunicationChannel.model_validate(params["communicationChannel"])
        return _respond(await call_handler(service.send_message, message, channel))
