"""Path/method routing shared by the continuous server and the function handler.

Both surfaces translate their native request into an ``HttpRequest`` and hand it
to ``HostRouter.handle``; everything after that point is common, which keeps
the two surfaces' responses identical.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from apphost.core.backend.service import CoreApiService
from apphost.core.config.schema import HostConfig
from apphost.core.protocol.http import HttpRequest, HttpResponse, empty_response, json_response
from apphost.core.protocol.rpc import (
    PROTOCOL_VERSION,
    RpcRequest,
    encode_tool_result,
    parse_tool_call_params,
    plain_error,
    rpc_error,
    rpc_result,
)
from apphost.core.runtime.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    AppHostError,
    TransportError,
    ValidationError,
)
from apphost.core.runtime.quota import RequestState
from apphost.core.tools.executor import ToolDispatcher
from apphost.core.tools.registry import AppRegistry
from apphost.core.webhooks.base import WebhookRequest
from apphost.core.webhooks.dispatcher import WebhookDispatcher

WEBHOOK_PREFIX = "/webhooks/"

RpcMethod = Callable[[RpcRequest, str], Awaitable[Any]]


class HostRouter:
    def __init__(
        self,
        *,
        cfg: HostConfig,
        registry: AppRegistry,
        state: RequestState,
        tools: ToolDispatcher,
        webhooks: WebhookDispatcher,
        core: CoreApiService,
        logger,
    ) -> None:
        self.cfg = cfg
        self.registry = registry
        self.state = state
        self.tools = tools
        self.webhooks = webhooks
        self.core = core
        self.logger = logger
        self._rpc_methods: dict[str, RpcMethod] = {
            "initialize": self._rpc_initialize,
            "ping": self._rpc_ping,
            "tools/list": self._rpc_tools_list,
            "tools/call": self._rpc_tools_call,
            "webhooks/list": self._rpc_webhooks_list,
        }

    @property
    def cors_headers(self) -> dict[str, str]:
        cors = self.cfg.cors
        return {
            "Access-Control-Allow-Origin": cors.allow_origin,
            "Access-Control-Allow-Methods": cors.allow_methods,
            "Access-Control-Allow-Headers": cors.allow_headers,
        }

    async def handle(self, request: HttpRequest, request_id: str | None = None) -> HttpResponse:
        request_id = request_id or uuid.uuid4().hex
        try:
            response = await self._route(request, request_id)
        except AppHostError as exc:
            response = json_response(exc.http_status, plain_error(exc.rpc_code, exc.message))
        except Exception:  # noqa: BLE001
            self.logger.exception("router_unhandled_error", path=request.path, method=request.method)
            response = json_response(500, rpc_error(None, INTERNAL_ERROR, "Internal error"))
        return response.with_default_headers(self.cors_headers)

    async def _route(self, request: HttpRequest, request_id: str) -> HttpResponse:
        method = request.method
        path = request.path.rstrip("/") or "/"

        if method == "OPTIONS":
            return self.options()
        if path == "/health" and method == "GET":
            return self.health()
        if path.startswith(WEBHOOK_PREFIX):
            return await self.webhook(path[len(WEBHOOK_PREFIX):], request, request_id)
        if path == "/estimate" and method == "POST":
            return await self.estimate(request, request_id)
        if path == "/core" and method == "POST":
            return await self.core_method(request)
        if path == "/core/webhook" and method == "POST":
            return await self.core_webhook(request)
        if path == "/mcp" and method == "POST":
            return await self.mcp(request, request_id)
        return self.not_found()

    def options(self) -> HttpResponse:
        return json_response(200, {"message": "OK"})

    def not_found(self) -> HttpResponse:
        return json_response(404, rpc_error(None, METHOD_NOT_FOUND, "Not Found"))

    def health(self) -> HttpResponse:
        return json_response(200, self.state.health_status(self.registry.tool_names()))

    async def webhook(self, route: str, request: HttpRequest, request_id: str) -> HttpResponse:
        try:
            return await self.webhooks.call_webhook(route, request, request_id=request_id)
        except ValidationError as exc:
            return json_response(400, {"error": exc.message})

    async def estimate(self, request: HttpRequest, request_id: str) -> HttpResponse:
        try:
            body = request.json()
        except TransportError:
            return json_response(400, plain_error(PARSE_ERROR, "Parse error"))
        if not isinstance(body, dict) or not isinstance(body.get("name"), str) or not body.get("name"):
            return json_response(400, plain_error(INVALID_PARAMS, "Missing tool name"))

        try:
            result = await self.tools.call_tool(
                body["name"],
                inputs=body.get("inputs"),
                context=body.get("context"),
                env=body.get("env"),
                estimate=True,
                request_id=request_id,
            )
        except AppHostError as exc:
            status = 400 if exc.rpc_code == INVALID_PARAMS else exc.http_status
            return json_response(status, plain_error(exc.rpc_code, exc.message))
        return json_response(200, {"billing": result.billing.to_dict()})

    async def core_method(self, request: HttpRequest) -> HttpResponse:
        try:
            body = request.json()
        except TransportError:
            return json_response(400, plain_error(PARSE_ERROR, "Parse error"))
        if not isinstance(body, dict) or not body.get("method"):
            return json_response(400, plain_error(INVALID_PARAMS, "Missing method"))
        status, payload = await self.core.handle_method(str(body["method"]), body.get("params"))
        return json_response(status, payload)

    async def core_webhook(self, request: HttpRequest) -> HttpResponse:
        try:
            body = request.json()
        except TransportError:
            return json_response(400, {"status": "parse-error"})
        webhook_request = WebhookRequest(
            method=request.method,
            url=request.url,
            path=request.path,
            headers=dict(request.headers),
            query=dict(request.query),
            body=body,
            raw_body=request.body or None,
        )
        response = await self.core.dispatch_webhook(webhook_request)
        return json_response(response.status, response.body if response.body is not None else {})

    async def mcp(self, request: HttpRequest, request_id: str) -> HttpResponse:
        try:
            body = request.json()
        except TransportError:
            return json_response(400, rpc_error(None, PARSE_ERROR, "Parse error"))
        try:
            envelope = RpcRequest.model_validate(body)
        except PydanticValidationError:
            rpc_id = body.get("id") if isinstance(body, dict) else None
            return json_response(400, rpc_error(rpc_id, INVALID_REQUEST, "Invalid Request"))

        if envelope.is_notification:
            self.logger.info("rpc_notification", method=envelope.method)
            return empty_response(202)

        handler = self._rpc_methods.get(envelope.method)
        if handler is None:
            return json_response(200, rpc_error(envelope.id, METHOD_NOT_FOUND, f"Method not found: {envelope.method}"))

        try:
            result = await handler(envelope, request_id)
        except AppHostError as exc:
            status = 200 if exc.rpc_code == INVALID_PARAMS else exc.http_status
            data = {"issues": exc.issues} if isinstance(exc, ValidationError) and exc.issues else None
            return json_response(status, rpc_error(envelope.id, exc.rpc_code, exc.message, data))
        except Exception:  # noqa: BLE001
            self.logger.exception("rpc_method_failed", method=envelope.method)
            return json_response(500, rpc_error(envelope.id, INTERNAL_ERROR, "Internal error"))
        return json_response(200, rpc_result(envelope.id, result))

    async def _rpc_initialize(self, envelope: RpcRequest, request_id: str) -> dict[str, Any]:
        params = envelope.params or {}
        return {
            "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.cfg.metadata.name, "version": self.cfg.metadata.version},
        }

    async def _rpc_ping(self, envelope: RpcRequest, request_id: str) -> dict[str, Any]:
        return {}

    async def _rpc_tools_list(self, envelope: RpcRequest, request_id: str) -> dict[str, Any]:
        return {"tools": [m.model_dump(exclude_none=True) for m in self.registry.tool_metadata()]}

    async def _rpc_webhooks_list(self, envelope: RpcRequest, request_id: str) -> dict[str, Any]:
        return {"webhooks": [m.model_dump() for m in self.registry.webhook_metadata()]}

    async def _rpc_tools_call(self, envelope: RpcRequest, request_id: str) -> dict[str, Any]:
        params = parse_tool_call_params(envelope.params)
        result = await self.tools.call_tool(
            params.name,
            inputs=params.inputs,
            context=params.context,
            env=params.env,
            estimate=params.estimate,
            request_id=request_id,
        )
        return encode_tool_result(result)
