from __future__ import annotations

import base64
import json

import pytest

from apphost.apps.function_handler import FunctionHandler, create_function_handler, request_from_event


def _event(path: str, method: str = "POST", body=None, **extra) -> dict:
    event = {
        "path": path,
        "httpMethod": method,
        "headers": {"Host": "fn.example", "Content-Type": "application/json"},
        "queryStringParameters": None,
        "body": json.dumps(body) if body is not None else None,
    }
    event.update(extra)
    return event


@pytest.fixture
def handler(registry, host_cfg):
    return create_function_handler(registry, cfg=host_cfg)


def test_tool_call_through_event(handler):
    rpc = {"jsonrpc": "2.0", "id": "a", "method": "tools/call", "params": {"name": "echo", "arguments": {"message": "hi"}}}
    result = handler(_event("/mcp", body=rpc))
    assert result["statusCode"] == 200
    assert result["headers"]["Access-Control-Allow-Origin"] == "*"
    body = json.loads(result["body"])
    assert body["id"] == "a"
    assert body["result"]["structuredContent"] == {"echoed": "hi"}


def test_health_reports_serverless_runtime(handler):
    handler(_event("/estimate", body={"name": "echo", "inputs": {"message": "x"}}))
    health = json.loads(handler(_event("/health", method="GET"))["body"])
    assert health["runtime"] == "serverless"
    assert health["requests"] == 0


def test_base64_body_is_decoded(handler):
    rpc = {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "echo", "arguments": {"message": "b64"}}}
    encoded = base64.b64encode(json.dumps(rpc).encode()).decode()
    result = handler(_event("/mcp", body=None, isBase64Encoded=True) | {"body": encoded})
    assert json.loads(result["body"])["result"]["structuredContent"] == {"echoed": "b64"}


def test_invalid_base64_is_a_parse_error(handler):
    result = handler(_event("/mcp", isBase64Encoded=True) | {"body": "%%%"})
    assert result["statusCode"] == 400
    assert json.loads(result["body"])["error"]["code"] == -32700


def test_banner_logged_once(registry, host_cfg, capsys):
    fn = FunctionHandler(registry, cfg=host_cfg)
    fn(_event("/health", method="GET"))
    fn(_event("/health", method="GET"))
    out = capsys.readouterr().out
    assert out.count('"event": "server_starting"') == 1


def test_quota_signal_only_logs(registry, host_cfg):
    fn = FunctionHandler(registry, cfg=host_cfg.model_copy(update={"max_requests": 1}))
    rpc = {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "echo", "arguments": {"message": "x"}}}
    for _ in range(2):
        assert fn(_event("/mcp", body=rpc))["statusCode"] == 200
    assert fn.runtime.state.request_count == 2


@pytest.mark.asyncio
async def test_async_handle_and_webhook_envelope(handler):
    envelope = {
        "env": {"TENANT": "acme"},
        "request": {"method": "POST", "headers": {"content-type": "application/json"}, "body": '{"k": 1}'},
        "context": {"app": {"id": "app_1", "versionId": "v1"}, "appInstallationId": "i1", "workplace": {"id": "w1"}},
    }
    result = await handler.handle(_event("/webhooks/inbound", body=envelope))
    assert result["statusCode"] == 200
    assert json.loads(result["body"]) == {"received": {"k": 1}, "kind": "installation"}


def test_request_from_event_normalizes_shape():
    request = request_from_event(
        {
            "rawPath": "/health",
            "requestContext": {"http": {"method": "get"}},
            "headers": {"X-Forwarded-Proto": "http", "Host": "h"},
            "queryStringParameters": {"a": "1", "b": None},
        }
    )
    assert request.method == "GET"
    assert request.path == "/health"
    assert request.query == {"a": "1"}
    assert request.url == "http://h/health?a=1"
    assert request.body == b""
