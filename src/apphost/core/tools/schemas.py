from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from apphost.core.runtime.errors import ValidationError

EMPTY_OBJECT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def json_schema_for(model: type[BaseModel] | None) -> dict[str, Any] | None:
    if model is None:
        return None
    return model.model_json_schema()


def _issues_from(exc: PydanticValidationError, prefix: str = "") -> dict[str, list[str]]:
    issues: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "_root"
        issues.setdefault(f"{prefix}{loc}", []).append(err.get("msg", "invalid"))
    return issues


def _summarize(issues: dict[str, list[str]]) -> str:
    return "; ".join(f"{loc}: {', '.join(msgs)}" for loc, msgs in issues.items())


def validate_inputs(model: type[BaseModel] | None, inputs: Any) -> dict[str, Any]:
    if inputs is None:
        inputs = {}
    if model is None:
        if not isinstance(inputs, dict):
            raise ValidationError("Tool inputs must be an object", {"_root": ["expected an object"]})
        return dict(inputs)
    try:
        return model.model_validate(inputs).model_dump()
    except PydanticValidationError as exc:
        issues = _issues_from(exc)
        raise ValidationError(f"Invalid arguments: {_summarize(issues)}", issues) from exc


def validate_output(model: type[BaseModel] | None, output: Any) -> None:
    if model is None or output is None:
        return
    try:
        model.model_validate(output)
    except PydanticValidationError as exc:
        issues = _issues_from(exc, prefix="output.")
        raise ValidationError(f"Invalid tool output: {_summarize(issues)}", issues) from exc
