from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from time import perf_counter
from typing import Any

import structlog

from apphost.core.config.schema import BackendConfig
from apphost.core.context.execution import AppInfo, parse_app, parse_workplace
from apphost.core.protocol.http import (
    JSON_CONTENT_TYPE,
    HttpRequest,
    HttpResponse,
    has_header,
    json_dumps,
    json_response,
    lower_headers,
    parse_body,
)
from apphost.core.runtime.errors import HandlerError, ValidationError
from apphost.core.runtime.invoke import call_handler
from apphost.core.runtime.isolation import BackendCredentials, backend_scope, merge_env
from apphost.core.telemetry.tracing import TraceContext, trace_event
from apphost.core.tools.registry import AppRegistry
from apphost.core.webhooks.base import (
    InstallationWebhookContext,
    ProvisionWebhookContext,
    WebhookContext,
    WebhookRequest,
    WebhookResponse,
)

APP_ID_HEADER = "x-app-id"
APP_VERSION_HEADER = "x-app-version-id"
ENVELOPE_KEYS = ("env", "request", "context")


def _envelope_payload(request: HttpRequest) -> dict[str, Any] | None:
    if not request.body:
        return None
    try:
        payload = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(payload, dict) and all(key in payload for key in ENVELOPE_KEYS):
        return payload
    return None


def encode_webhook_response(response: WebhookResponse) -> HttpResponse:
    headers = dict(response.headers)
    if not has_header(headers, "content-type"):
        headers["Content-Type"] = JSON_CONTENT_TYPE
    body = response.body
    if body is None:
        text = ""
    elif isinstance(body, str):
        text = body
    elif isinstance(body, bytes):
        text = body.decode("utf-8", errors="replace")
    else:
        text = json_dumps(body)
    return HttpResponse(status=response.status, headers=headers, body=text)


class WebhookDispatcher:
    def __init__(
        self,
        registry: AppRegistry,
        logger,
        *,
        base_env: Mapping[str, str] | None = None,
        backend: BackendConfig | None = None,
        surface: str = "dedicated",
    ) -> None:
        self.registry = registry
        self.logger = logger
        self.base_env = dict(base_env or {})
        self.backend = backend or BackendConfig()
        self.surface = surface

    async def call_webhook(self, route: str, request: HttpRequest, request_id: str | None = None) -> HttpResponse:
        webhook = self.registry.resolve_webhook(route)
        if webhook is None:
            return json_response(404, {"error": f"Webhook handler '{route}' not found"})
        if request.method not in webhook.methods:
            return json_response(405, {"error": f"Method {request.method} not allowed"})

        webhook_request, ctx = self.decode(request)
        trace = TraceContext(
            request_id=request_id or uuid.uuid4().hex,
            surface=self.surface,
            kind="webhook",
            target=webhook.route,
        )
        credentials = BackendCredentials.from_env(ctx.env, self.backend)
        started = perf_counter()
        with backend_scope(credentials), structlog.contextvars.bound_contextvars(
            request_id=trace.request_id, webhook=webhook.route
        ):
            try:
                raw = await call_handler(webhook.handler, webhook_request, ctx)
                response = WebhookResponse.coerce(raw)
            except Exception as exc:  # noqa: BLE001
                failure = HandlerError(webhook.route, exc)
                trace_event(
                    self.logger,
                    trace,
                    event="webhook_call",
                    status="error",
                    extra={"detail": failure.summary()},
                )
                self.logger.exception("webhook_handler_failed", webhook=failure.target)
                return json_response(500, {"error": "Webhook handler error"})

        trace_event(
            self.logger,
            trace,
            event="webhook_call",
            status="ok",
            extra={
                "latency_ms": round((perf_counter() - started) * 1000, 3),
                "http_status": response.status,
                "context": ctx.kind,
            },
        )
        return encode_webhook_response(response)

    def decode(self, request: HttpRequest) -> tuple[WebhookRequest, WebhookContext]:
        envelope = _envelope_payload(request)
        if envelope is not None:
            return self._from_envelope(request, envelope)
        return self._direct(request)

    def _direct(self, request: HttpRequest) -> tuple[WebhookRequest, WebhookContext]:
        app_id = request.headers.get(APP_ID_HEADER)
        version_id = request.headers.get(APP_VERSION_HEADER)
        if not app_id or not version_id:
            issues = {h: ["required"] for h, v in ((APP_ID_HEADER, app_id), (APP_VERSION_HEADER, version_id)) if not v}
            raise ValidationError(f"Missing app identity headers: {', '.join(issues)}", issues)

        webhook_request = WebhookRequest(
            method=request.method,
            url=request.url,
            path=request.path,
            headers=dict(request.headers),
            query=dict(request.query),
            body=parse_body(request.body, request.content_type),
            raw_body=request.body,
        )
        ctx = ProvisionWebhookContext(
            app=AppInfo(id=app_id, version_id=version_id),
            env=merge_env(self.base_env, None),
        )
        return webhook_request, ctx

    def _from_envelope(
        self, request: HttpRequest, envelope: dict[str, Any]
    ) -> tuple[WebhookRequest, WebhookContext]:
        inner = envelope.get("request")
        if not isinstance(inner, Mapping):
            raise ValidationError("Webhook envelope 'request' must be an object", {"request": ["must be an object"]})
        for key in ("headers", "query"):
            value = inner.get(key)
            if value is not None and not isinstance(value, Mapping):
                raise ValidationError(
                    f"Webhook envelope 'request.{key}' must be an object", {f"request.{key}": ["must be an object"]}
                )
        headers = lower_headers(inner.get("headers"))
        raw = inner.get("body")
        if raw is None:
            body, raw_body = None, None
        elif isinstance(raw, str):
            body, raw_body = parse_body(raw, headers.get("content-type", "")), raw.encode("utf-8")
        else:
            body, raw_body = raw, json_dumps(raw).encode("utf-8")

        webhook_request = WebhookRequest(
            method=str(inner.get("method") or request.method).upper(),
            url=str(inner.get("url") or request.url),
            path=str(inner.get("path") or request.path),
            headers=headers,
            query={str(k): str(v) for k, v in (inner.get("query") or {}).items()},
            body=body,
            raw_body=raw_body,
        )

        env_overlay = envelope.get("env")
        env = merge_env(self.base_env, env_overlay if isinstance(env_overlay, Mapping) else None)
        raw_ctx = envelope.get("context")
        raw_ctx = raw_ctx if isinstance(raw_ctx, Mapping) else {}
        app = parse_app(raw_ctx.get("app"))
        installation_id = raw_ctx.get("appInstallationId")
        workplace = parse_workplace(raw_ctx.get("workplace"))

        ctx: WebhookContext
        if installation_id and workplace is not None:
            registration = raw_ctx.get("registration")
            ctx = InstallationWebhookContext(
                app=app,
                env=env,
                app_installation_id=str(installation_id),
                workplace=workplace,
                registration=dict(registration) if isinstance(registration, Mapping) else {},
            )
        else:
            ctx = ProvisionWebhookContext(app=app, env=env)
        return webhook_request, ctx
