from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from numbers import Real
from time import perf_counter
from typing import Any

import structlog

from apphost.core.config.schema import BackendConfig
from apphost.core.context.execution import build_execution_context, describe_context
from apphost.core.runtime.errors import HandlerError, NotFoundError, compact_error_summary
from apphost.core.runtime.invoke import call_handler
from apphost.core.runtime.isolation import BackendCredentials, backend_scope, merge_env
from apphost.core.runtime.quota import RequestState
from apphost.core.telemetry.tracing import TraceContext, trace_event
from apphost.core.tools.base import BillingInfo, ToolCallResult, ToolDefinition, ToolResult
from apphost.core.tools.registry import AppRegistry
from apphost.core.tools.schemas import validate_inputs, validate_output


def normalize_billing(billing: Any) -> BillingInfo:
    if isinstance(billing, BillingInfo):
        credits = billing.credits
    elif isinstance(billing, Mapping):
        credits = billing.get("credits")
    else:
        return BillingInfo(credits=0)
    if isinstance(credits, bool) or not isinstance(credits, Real):
        return BillingInfo(credits=0)
    return BillingInfo(credits=credits)


def _coerce_result(raw: Any) -> ToolResult:
    if isinstance(raw, ToolResult):
        return raw
    if isinstance(raw, Mapping) and "output" in raw:
        return ToolResult(output=raw.get("output"), billing=raw.get("billing"), effect=raw.get("effect"))
    return ToolResult(output=raw)


class ToolDispatcher:
    def __init__(
        self,
        registry: AppRegistry,
        logger,
        state: RequestState,
        *,
        base_env: Mapping[str, str] | None = None,
        backend: BackendConfig | None = None,
        on_recycle: Callable[[], None] | None = None,
        surface: str = "dedicated",
    ) -> None:
        self.registry = registry
        self.logger = logger
        self.state = state
        self.base_env = dict(base_env or {})
        self.backend = backend or BackendConfig()
        self.on_recycle = on_recycle
        self.surface = surface

    def resolve(self, identifier: str) -> ToolDefinition:
        tool = self.registry.resolve_tool(str(identifier))
        if tool is None:
            raise NotFoundError(f'Tool "{identifier}" not found')
        return tool

    async def call_tool(
        self,
        identifier: str,
        *,
        inputs: Any = None,
        context: Mapping[str, Any] | None = None,
        env: Mapping[str, Any] | None = None,
        estimate: bool = False,
        request_id: str | None = None,
    ) -> ToolCallResult:
        """Run one tool call.

        Resolution, input and context validation errors are raised before the
        handler runs. Anything the handler raises is folded into the result.
        """
        tool = self.resolve(identifier)
        validated = validate_inputs(tool.input_schema, inputs)
        mode = "estimate" if estimate else "execute"
        merged_env = merge_env(self.base_env, env)
        exec_ctx = build_execution_context(context, env=merged_env, mode=mode)

        trace = TraceContext(
            request_id=request_id or uuid.uuid4().hex,
            surface=self.surface,
            kind="tool",
            target=tool.name,
        )
        if not estimate and self.state.record_request():
            self._signal_recycle(trace)

        credentials = BackendCredentials.from_env(merged_env, self.backend)
        started = perf_counter()
        with backend_scope(credentials), structlog.contextvars.bound_contextvars(
            request_id=trace.request_id, tool=tool.name
        ):
            try:
                raw = await call_handler(tool.handler, validated, exec_ctx)
            except Exception as exc:  # noqa: BLE001
                failure = HandlerError(tool.name, exc)
                elapsed_ms = round((perf_counter() - started) * 1000, 3)
                trace_event(
                    self.logger,
                    trace,
                    event="tool_call",
                    status="error",
                    extra={"detail": failure.summary(), "latency_ms": elapsed_ms, "mode": mode},
                )
                self.logger.exception("tool_handler_failed", tool=failure.target)
                return ToolCallResult(
                    output=None,
                    billing=BillingInfo(credits=0),
                    error=failure.message,
                    error_details=failure.details,
                )

            result = _coerce_result(raw)
            billing = normalize_billing(result.billing)
            elapsed_ms = round((perf_counter() - started) * 1000, 3)
            try:
                validate_output(tool.output_schema, result.output)
            except Exception as exc:  # noqa: BLE001
                trace_event(
                    self.logger,
                    trace,
                    event="tool_call",
                    status="invalid_output",
                    extra={"detail": compact_error_summary(exc), "latency_ms": elapsed_ms, "mode": mode},
                )
                return ToolCallResult(output=None, billing=billing, error=str(exc))

        trace_event(
            self.logger,
            trace,
            event="tool_call",
            status="ok",
            extra={"latency_ms": elapsed_ms, "credits": billing.credits, **describe_context(exec_ctx)},
        )
        effect = result.effect if isinstance(result.effect, Mapping) else None
        return ToolCallResult(output=result.output, billing=billing, effect=dict(effect) if effect else None)

    def _signal_recycle(self, trace: TraceContext) -> None:
        trace_event(
            self.logger,
            trace,
            event="recycle_signal",
            status="max_requests_reached",
            extra={"requests": self.state.request_count, "max_requests": self.state.max_requests},
        )
        if self.on_recycle is not None:
            self.on_recycle()
