from __future__ import annotations

from apphost.core.tools.base import ToolDefinition, ToolMetadata
from apphost.core.tools.schemas import EMPTY_OBJECT_SCHEMA, json_schema_for
from apphost.core.webhooks.base import WebhookDefinition, WebhookMetadata


class AppRegistry:
    """In-memory catalogue of tools and webhooks. Read-only once serving starts."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._tool_names: dict[str, str] = {}
        self._webhooks: dict[str, WebhookDefinition] = {}

    def register_tool(self, definition: ToolDefinition) -> ToolDefinition:
        for identifier in {definition.key, definition.name}:
            if identifier in self._tools or identifier in self._tool_names:
                raise ValueError(f"Tool identifier already registered: {identifier}")
        self._tools[definition.key] = definition
        self._tool_names[definition.name] = definition.key
        return definition

    def register_webhook(self, definition: WebhookDefinition) -> WebhookDefinition:
        if definition.route in self._webhooks:
            raise ValueError(f"Webhook route already registered: {definition.route}")
        self._webhooks[definition.route] = definition
        return definition

    def resolve_tool(self, identifier: str) -> ToolDefinition | None:
        tool = self._tools.get(identifier)
        if tool is not None:
            return tool
        key = self._tool_names.get(identifier)
        return self._tools.get(key) if key is not None else None

    def resolve_webhook(self, route: str) -> WebhookDefinition | None:
        return self._webhooks.get(route)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def list_webhooks(self) -> list[WebhookDefinition]:
        return list(self._webhooks.values())

    def tool_names(self) -> list[str]:
        return [t.name for t in self._tools.values()]

    def webhook_routes(self) -> list[str]:
        return list(self._webhooks)

    def tool_metadata(self) -> list[ToolMetadata]:
        return [
            ToolMetadata(
                name=t.name,
                description=t.description,
                inputSchema=json_schema_for(t.input_schema) or dict(EMPTY_OBJECT_SCHEMA),
                outputSchema=json_schema_for(t.output_schema),
            )
            for t in self._tools.values()
        ]

    def webhook_metadata(self) -> list[WebhookMetadata]:
        return [
            WebhookMetadata(name=w.name, description=w.description, methods=list(w.methods), type=w.type)
            for w in self._webhooks.values()
        ]
