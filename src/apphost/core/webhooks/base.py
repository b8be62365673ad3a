from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Union

from pydantic import BaseModel, Field

from apphost.core.context.execution import AppInfo, Workplace

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
WebhookType = Literal["WEBHOOK", "CALLBACK"]


@dataclass(slots=True)
class WebhookRequest:
    method: str
    url: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    body: Any = None
    raw_body: bytes | None = None


@dataclass(slots=True)
class WebhookResponse:
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def coerce(cls, value: Any) -> WebhookResponse:
        if isinstance(value, WebhookResponse):
            return value
        if value is None:
            return cls()
        if isinstance(value, Mapping):
            return cls(
                status=int(value.get("status") or 200),
                headers={str(k): str(v) for k, v in (value.get("headers") or {}).items()},
                body=value.get("body"),
            )
        raise TypeError(f"Webhook handler returned unsupported value: {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class ProvisionWebhookContext:
    kind: ClassVar[str] = "provision"
    app: AppInfo | None
    env: Mapping[str, str]


@dataclass(frozen=True, slots=True)
class InstallationWebhookContext:
    kind: ClassVar[str] = "installation"
    app: AppInfo | None
    env: Mapping[str, str]
    app_installation_id: str
    workplace: Workplace
    registration: dict[str, Any] = field(default_factory=dict)


WebhookContext = Union[ProvisionWebhookContext, InstallationWebhookContext]

WebhookHandler = Callable[[WebhookRequest, WebhookContext], Union[WebhookResponse, dict[str, Any], Awaitable[Any]]]
LifecycleHook = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class LifecycleHooks:
    """Callbacks an external orchestrator may run; the runtime only stores them."""

    on_install: LifecycleHook | None = None
    on_uninstall: LifecycleHook | None = None
    on_provision: LifecycleHook | None = None
    on_deprovision: LifecycleHook | None = None
    on_channel_change: LifecycleHook | None = None

    def declared(self) -> list[str]:
        return [name for name in self.__slots__ if getattr(self, name) is not None]


@dataclass(frozen=True, slots=True)
class WebhookDefinition:
    route: str
    handler: WebhookHandler
    description: str = ""
    name: str = ""
    methods: tuple[str, ...] = ("POST",)
    type: WebhookType = "WEBHOOK"
    lifecycle_hooks: LifecycleHooks | None = None

    def __post_init__(self) -> None:
        if not self.route or "/" in self.route:
            raise ValueError(f"Invalid webhook route: {self.route!r}")
        if not callable(self.handler):
            raise ValueError(f"Webhook {self.route!r} handler is not callable")
        methods = tuple(m.upper() for m in self.methods) or ("POST",)
        unknown = [m for m in methods if m not in HTTP_METHODS]
        if unknown:
            raise ValueError(f"Webhook {self.route!r} has unsupported methods: {unknown}")
        object.__setattr__(self, "methods", methods)
        if not self.name:
            object.__setattr__(self, "name", self.route)


class WebhookMetadata(BaseModel):
    name: str
    description: str
    methods: list[str] = Field(default_factory=lambda: ["POST"])
    type: str = "WEBHOOK"
