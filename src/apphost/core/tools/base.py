from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel

from apphost.core.context.execution import ExecutionContext

ToolHandler = Callable[[dict[str, Any], ExecutionContext], Union["ToolResult", dict[str, Any], Awaitable[Any]]]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    key: str
    handler: ToolHandler
    description: str = ""
    name: str = ""
    input_schema: type[BaseModel] | None = None
    output_schema: type[BaseModel] | None = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("Tool key must not be empty")
        if not callable(self.handler):
            raise ValueError(f"Tool {self.key!r} handler is not callable")
        if not self.name:
            object.__setattr__(self, "name", self.key)


@dataclass(slots=True)
class BillingInfo:
    credits: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {"credits": self.credits}


@dataclass(slots=True)
class ToolResult:
    """What a handler returns. Handlers may also return the equivalent dict."""

    output: Any = None
    billing: BillingInfo | dict[str, Any] | None = None
    effect: dict[str, Any] | None = None


@dataclass(slots=True)
class ToolCallResult:
    output: Any
    billing: BillingInfo = field(default_factory=BillingInfo)
    error: str | None = None
    effect: dict[str, Any] | None = None
    error_details: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class ToolMetadata(BaseModel):
    name: str
    description: str
    inputSchema: dict[str, Any]
    outputSchema: dict[str, Any] | None = None
