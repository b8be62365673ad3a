from __future__ import annotations

import pytest

from apphost.core.tools.base import ToolDefinition
from apphost.core.tools.registry import AppRegistry
from apphost.core.webhooks.base import WebhookDefinition


def _noop(inputs, ctx):
    return {"output": None}


def test_tool_resolves_by_key_and_by_name(registry):
    by_key = registry.resolve_tool("whoamiTool")
    by_name = registry.resolve_tool("whoami")
    assert by_key is not None
    assert by_key is by_name
    assert registry.resolve_tool("missing") is None


def test_name_defaults_to_key():
    defn = ToolDefinition(key="lookup", handler=_noop)
    assert defn.name == "lookup"


def test_colliding_tool_identifiers_are_rejected():
    registry = AppRegistry()
    registry.register_tool(ToolDefinition(key="a", name="alpha", handler=_noop))
    with pytest.raises(ValueError):
        registry.register_tool(ToolDefinition(key="alpha", handler=_noop))
    with pytest.raises(ValueError):
        registry.register_tool(ToolDefinition(key="b", name="a", handler=_noop))


def test_duplicate_webhook_route_is_rejected():
    registry = AppRegistry()
    registry.register_webhook(WebhookDefinition(route="hook", handler=_noop))
    with pytest.raises(ValueError):
        registry.register_webhook(WebhookDefinition(route="hook", handler=_noop))


def test_webhook_definition_validates_route_and_methods():
    with pytest.raises(ValueError):
        WebhookDefinition(route="a/b", handler=_noop)
    with pytest.raises(ValueError):
        WebhookDefinition(route="hook", handler=_noop, methods=("FETCH",))
    defn = WebhookDefinition(route="hook", handler=_noop, methods=("get", "post"))
    assert defn.methods == ("GET", "POST")
    assert defn.name == "hook"


def test_tool_metadata_uses_empty_object_schema_without_model(registry):
    meta = {m.name: m for m in registry.tool_metadata()}
    assert meta["whoami"].inputSchema == {"type": "object", "properties": {}}
    assert meta["echo"].inputSchema["properties"]["message"]["type"] == "string"
    assert meta["echo"].outputSchema is not None
    assert meta["whoami"].outputSchema is None


def test_webhook_metadata_reports_methods_and_type(registry):
    meta = {m.name: m for m in registry.webhook_metadata()}
    assert meta["inbound"].methods == ["POST", "PUT"]
    assert meta["inbound"].type == "WEBHOOK"
    assert meta["plain"].type == "CALLBACK"
    assert registry.resolve_webhook("inbound").lifecycle_hooks.declared() == ["on_install"]
