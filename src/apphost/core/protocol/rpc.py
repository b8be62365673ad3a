"""JSON-RPC 2.0 envelopes and the tool-call wire format."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from apphost.core.protocol.http import json_dumps
from apphost.core.runtime.errors import ValidationError
from apphost.core.tools.base import ToolCallResult
from apphost.core.tools.executor import normalize_billing

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
EFFECT_KEY = "__effect"
WRAPPED_ARGUMENT_KEYS = ("inputs", "context", "env", "estimate")


class RpcRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"]
    method: str
    id: str | int | None = None
    params: dict[str, Any] | None = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


def rpc_result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def rpc_error(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


def plain_error(code: int, message: str) -> dict[str, Any]:
    """Error body used by the non-RPC routes (/estimate, /core)."""
    return {"error": {"code": code, "message": message}}


@dataclass(slots=True)
class ToolCallParams:
    name: str
    inputs: Any = None
    context: dict[str, Any] | None = None
    env: dict[str, Any] | None = None
    estimate: bool = False


def parse_tool_call_params(params: Mapping[str, Any] | None) -> ToolCallParams:
    """Accept both ``arguments`` shapes: flat tool inputs, or the wrapper carrying inputs/context/env."""
    if not isinstance(params, Mapping):
        raise ValidationError("Invalid params", {"params": ["must be an object"]})
    name = params.get("name")
    if not name or not isinstance(name, str):
        raise ValidationError("Missing tool name", {"params.name": ["required"]})
    arguments = params.get("arguments")
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise ValidationError("Invalid arguments", {"params.arguments": ["must be an object"]})

    if not any(key in arguments for key in WRAPPED_ARGUMENT_KEYS):
        return ToolCallParams(name=name, inputs=dict(arguments))

    context = arguments.get("context")
    env = arguments.get("env")
    return ToolCallParams(
        name=name,
        inputs=arguments.get("inputs"),
        context=dict(context) if isinstance(context, Mapping) else None,
        env=dict(env) if isinstance(env, Mapping) else None,
        estimate=arguments.get("estimate") is True,
    )


def encode_tool_result(result: ToolCallResult) -> dict[str, Any]:
    """Render a tool result as a ``tools/call`` payload.

    The effect rides inside ``structuredContent`` under ``__effect`` because some
    transports drop unknown top-level result fields.
    """
    billing = result.billing.to_dict()
    if result.is_error:
        error_payload: dict[str, Any] = {"error": result.error, **(result.error_details or {})}
        return {
            "content": [{"type": "text", "text": json_dumps(error_payload)}],
            "structuredContent": error_payload,
            "isError": True,
            "billing": billing,
        }

    structured = dict(result.output) if isinstance(result.output, Mapping) else None
    if result.effect:
        structured = {**(structured or {}), EFFECT_KEY: result.effect}
    payload: dict[str, Any] = {
        "content": [{"type": "text", "text": json_dumps(result.output)}],
        "billing": billing,
    }
    if structured is not None:
        payload["structuredContent"] = structured
    return payload


def _content_value(payload: Mapping[str, Any]) -> Any:
    for item in payload.get("content") or []:
        if isinstance(item, Mapping) and item.get("type") == "text":
            try:
                return json.loads(item.get("text") or "null")
            except json.JSONDecodeError:
                return item.get("text")
    return None


def decode_tool_result(payload: Mapping[str, Any]) -> ToolCallResult:
    """Inverse of ``encode_tool_result`` for clients of ``tools/call``."""
    structured = payload.get("structuredContent")
    structured = dict(structured) if isinstance(structured, Mapping) else {}
    billing = normalize_billing(payload.get("billing"))

    if payload.get("isError"):
        details = {k: structured[k] for k in ("code", "field") if k in structured}
        return ToolCallResult(
            output=None,
            billing=billing,
            error=str(structured.get("error") or "Tool call failed"),
            error_details=details or None,
        )

    effect = structured.pop(EFFECT_KEY, None)
    return ToolCallResult(
        output=_content_value(payload),
        billing=billing,
        effect=dict(effect) if isinstance(effect, Mapping) else None,
    )
