from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from apphost.apps.api_server import create_app
from apphost.apps.function_handler import FunctionHandler

INSTALL = {"appInstallationId": "inst_1", "workplace": {"id": "wp_1"}, "app": {"id": "app_1", "versionId": "v1"}}

CASES = [
    ("POST", "/mcp", {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}),
    ("POST", "/mcp", {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "echo", "arguments": {"message": "p"}}}),
    (
        "POST",
        "/mcp",
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "whoami", "arguments": {"inputs": {}, "context": INSTALL, "env": {"TENANT": "t"}}},
        },
    ),
    ("POST", "/mcp", {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "explode"}}),
    ("POST", "/mcp", {"jsonrpc": "2.0", "id": 5, "method": "nope"}),
    ("POST", "/mcp", {"jsonrpc": "2.0", "id": 6, "method": "webhooks/list"}),
    ("POST", "/estimate", {"name": "echo", "inputs": {"message": "p"}}),
    ("POST", "/estimate", {"name": "missing"}),
    ("POST", "/core", {"method": "workplace.list"}),
    ("POST", "/webhooks/inbound", {"env": {}, "request": {"body": "x"}, "context": {}}),
    ("GET", "/webhooks/inbound", None),
    ("POST", "/webhooks/inbound", {"env": {}, "request": {"body": "x", "query": ["q"]}, "context": {}}),
    ("POST", "/estimate", {"name": "echo", "inputs": {"message": "p"}, "context": "abc"}),
    ("GET", "/unknown", None),
    ("HEAD", "/mcp", None),
    ("OPTIONS", "/mcp", None),
]


@pytest.mark.parametrize("method,path,body", CASES)
def test_surfaces_respond_identically(registry, host_cfg, method, path, body):
    app = create_app(registry, cfg=host_cfg)
    fn = FunctionHandler(registry, cfg=host_cfg)

    with TestClient(app) as client:
        continuous = client.request(method, path, content=json.dumps(body) if body is not None else None)

    single = fn(
        {
            "path": path,
            "httpMethod": method,
            "headers": {"content-type": "application/json"},
            "body": json.dumps(body) if body is not None else None,
        }
    )

    assert continuous.status_code == single["statusCode"]
    if method != "HEAD" and (continuous.content or single["body"]):
        assert continuous.json() == json.loads(single["body"])
    for header in ("access-control-allow-origin", "access-control-allow-methods", "access-control-allow-headers"):
        assert continuous.headers[header] == {k.lower(): v for k, v in single["headers"].items()}[header]


def test_health_differs_only_in_runtime(registry, host_cfg):
    app = create_app(registry, cfg=host_cfg)
    fn = FunctionHandler(registry, cfg=host_cfg)
    with TestClient(app) as client:
        continuous = client.get("/health").json()
    single = json.loads(fn({"path": "/health", "httpMethod": "GET", "headers": {}, "body": None})["body"])

    for payload in (continuous, single):
        payload.pop("lastRequestTime")
    assert continuous.pop("runtime") == "dedicated"
    assert single.pop("runtime") == "serverless"
    assert continuous == single
