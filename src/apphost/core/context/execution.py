"""Typed execution contexts handed to tool handlers.

A context is one of six frozen dataclasses, discriminated by the class-level
``trigger`` tag. ``build_execution_context`` turns the loose ``context`` object
sent by the caller into exactly one of them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Union

from apphost.core.runtime.errors import ValidationError

Mode = Literal["execute", "estimate"]

TRIGGERS = ("agent", "field_change", "page_action", "form_submit", "workflow", "provision")


@dataclass(frozen=True, slots=True)
class AppInfo:
    id: str
    version_id: str


@dataclass(frozen=True, slots=True)
class Workplace:
    id: str
    subdomain: str | None = None


@dataclass(frozen=True, slots=True)
class RequestInfo:
    url: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class FieldChange:
    handle: str
    type: str
    page_handle: str
    value: Any = None
    previous_value: Any = None


@dataclass(frozen=True, slots=True)
class SubmittedValues:
    handle: str
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProvisionContext:
    trigger: ClassVar[str] = "provision"
    app: AppInfo | None
    env: Mapping[str, str]
    mode: Mode = "execute"


@dataclass(frozen=True, slots=True)
class _InstalledContext:
    app: AppInfo | None
    env: Mapping[str, str]
    mode: Mode
    app_installation_id: str
    workplace: Workplace
    request: RequestInfo


@dataclass(frozen=True, slots=True)
class AgentContext(_InstalledContext):
    trigger: ClassVar[str] = "agent"


@dataclass(frozen=True, slots=True)
class WorkflowContext(_InstalledContext):
    trigger: ClassVar[str] = "workflow"


@dataclass(frozen=True, slots=True)
class FieldChangeContext(_InstalledContext):
    trigger: ClassVar[str] = "field_change"
    field: FieldChange


@dataclass(frozen=True, slots=True)
class PageActionContext(_InstalledContext):
    trigger: ClassVar[str] = "page_action"
    page: SubmittedValues


@dataclass(frozen=True, slots=True)
class FormSubmitContext(_InstalledContext):
    trigger: ClassVar[str] = "form_submit"
    form: SubmittedValues


ExecutionContext = Union[
    AgentContext,
    FieldChangeContext,
    PageActionContext,
    FormSubmitContext,
    WorkflowContext,
    ProvisionContext,
]


def parse_app(raw: Any) -> AppInfo | None:
    if not isinstance(raw, Mapping) or not raw.get("id"):
        return None
    return AppInfo(id=str(raw["id"]), version_id=str(raw.get("versionId") or ""))


def parse_workplace(raw: Any) -> Workplace | None:
    if not isinstance(raw, Mapping) or not raw.get("id"):
        return None
    subdomain = raw.get("subdomain")
    return Workplace(id=str(raw["id"]), subdomain=str(subdomain) if subdomain else None)


def _parse_request(raw: Any) -> RequestInfo:
    if not isinstance(raw, Mapping):
        return RequestInfo()
    return RequestInfo(
        url=str(raw.get("url") or ""),
        params=dict(raw.get("params") or {}),
        query=dict(raw.get("query") or {}),
    )


def infer_trigger(raw: Mapping[str, Any]) -> str:
    explicit = raw.get("trigger")
    if explicit:
        if explicit not in TRIGGERS:
            raise ValidationError(f"Unknown trigger: {explicit}", {"trigger": [f"must be one of {', '.join(TRIGGERS)}"]})
        return str(explicit)
    if raw.get("field"):
        return "field_change"
    if raw.get("page") or raw.get("fieldValues"):
        return "page_action"
    if raw.get("form"):
        return "form_submit"
    return "agent"


def _require_mapping(raw: Mapping[str, Any], key: str, trigger: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if not isinstance(value, Mapping):
        raise ValidationError(f"{trigger} context requires '{key}'", {f"context.{key}": ["required"]})
    return value


def _field_change(raw: Mapping[str, Any]) -> FieldChange:
    data = _require_mapping(raw, "field", "field_change")
    missing = [k for k in ("handle", "type", "pageHandle") if not data.get(k)]
    if missing:
        raise ValidationError(
            "field_change context is missing field attributes",
            {f"context.field.{k}": ["required"] for k in missing},
        )
    return FieldChange(
        handle=str(data["handle"]),
        type=str(data["type"]),
        page_handle=str(data["pageHandle"]),
        value=data.get("value"),
        previous_value=data.get("previousValue"),
    )


def _submitted(raw: Mapping[str, Any], key: str, trigger: str) -> SubmittedValues:
    if key == "page" and not raw.get("page") and raw.get("fieldValues"):
        return SubmittedValues(handle=str(raw.get("handle") or ""), values=dict(raw["fieldValues"]))
    data = _require_mapping(raw, key, trigger)
    if not data.get("handle"):
        raise ValidationError(f"{trigger} context is missing '{key}.handle'", {f"context.{key}.handle": ["required"]})
    return SubmittedValues(handle=str(data["handle"]), values=dict(data.get("values") or {}))


def build_execution_context(
    raw: Mapping[str, Any] | None,
    *,
    env: Mapping[str, str],
    mode: Mode = "execute",
) -> ExecutionContext:
    """Build the context variant matching the caller's trigger.

    A call with no context at all is unattributed and gets a ``ProvisionContext``.
    Any other trigger needs ``appInstallationId`` and ``workplace``; missing
    either raises ``ValidationError`` instead of producing a partial context.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValidationError("context must be an object", {"context": ["must be an object"]})
    app = parse_app(raw.get("app"))
    if not raw:
        return ProvisionContext(app=app, env=env, mode=mode)

    trigger = infer_trigger(raw)
    if trigger == "provision":
        return ProvisionContext(app=app, env=env, mode=mode)

    installation_id = raw.get("appInstallationId")
    workplace = parse_workplace(raw.get("workplace"))
    issues: dict[str, list[str]] = {}
    if not installation_id:
        issues["context.appInstallationId"] = ["required"]
    if workplace is None:
        issues["context.workplace"] = ["required"]
    if issues:
        raise ValidationError(f"{trigger} context requires appInstallationId and workplace", issues)

    base = dict(
        app=app,
        env=env,
        mode=mode,
        app_installation_id=str(installation_id),
        workplace=workplace,
        request=_parse_request(raw.get("request")),
    )
    match trigger:
        case "agent":
            return AgentContext(**base)
        case "workflow":
            return WorkflowContext(**base)
        case "field_change":
            return FieldChangeContext(**base, field=_field_change(raw))
        case "page_action":
            return PageActionContext(**base, page=_submitted(raw, "page", trigger))
        case "form_submit":
            return FormSubmitContext(**base, form=_submitted(raw, "form", trigger))
    raise ValidationError(f"Unknown trigger: {trigger}")


def describe_context(ctx: ExecutionContext) -> dict[str, Any]:
    """Log-safe summary of a context (never includes env values)."""
    summary: dict[str, Any] = {"trigger": ctx.trigger, "mode": ctx.mode}
    if ctx.app is not None:
        summary["app_id"] = ctx.app.id
    match ctx:
        case ProvisionContext():
            pass
        case FieldChangeContext(field=f):
            summary.update(installation=ctx.app_installation_id, workplace=ctx.workplace.id, handle=f.handle)
        case PageActionContext(page=p) | FormSubmitContext(form=p):
            summary.update(installation=ctx.app_installation_id, workplace=ctx.workplace.id, handle=p.handle)
        case AgentContext() | WorkflowContext():
            summary.update(installation=ctx.app_installation_id, workplace=ctx.workplace.id)
    return summary
