"""Transport-neutral request/response shapes shared by both hosting surfaces."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from apphost.core.runtime.errors import TransportError

JSON_CONTENT_TYPE = "application/json"


def json_dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def lower_headers(headers: Any) -> dict[str, str]:
    if not headers:
        return {}
    out: dict[str, str] = {}
    for key, value in dict(headers).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
        out[str(key).lower()] = str(value)
    return out


def has_header(headers: dict[str, str], name: str) -> bool:
    target = name.lower()
    return any(key.lower() == target for key in headers)


def parse_body(raw: bytes | str | None, content_type: str) -> Any:
    """JSON bodies are decoded when the content type says so; everything else stays text."""
    if raw is None:
        return None
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if JSON_CONTENT_TYPE in (content_type or "").lower():
        if not text:
            return {}
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


def build_url(headers: dict[str, str], path: str, query: dict[str, str], default_scheme: str = "https") -> str:
    scheme = headers.get("x-forwarded-proto") or default_scheme
    host = headers.get("host") or "localhost"
    qs = f"?{urlencode(query)}" if query else ""
    return f"{scheme}://{host}{path}{qs}"


@dataclass(slots=True)
class HttpRequest:
    method: str
    path: str
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = lower_headers(self.headers)
        if not self.url:
            self.url = build_url(self.headers, self.path, self.query)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode a JSON body; an empty body is an empty object."""
        if not self.body:
            return {}
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransportError("Parse error") from exc


@dataclass(slots=True)
class HttpResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def with_default_headers(self, defaults: dict[str, str]) -> HttpResponse:
        merged = {k: v for k, v in defaults.items() if not has_header(self.headers, k)}
        merged.update(self.headers)
        return HttpResponse(status=self.status, headers=merged, body=self.body)


def json_response(status: int, payload: Any, headers: dict[str, str] | None = None) -> HttpResponse:
    return HttpResponse(
        status=status,
        headers={"Content-Type": JSON_CONTENT_TYPE, **(headers or {})},
        body=json_dumps(payload),
    )


def empty_response(status: int) -> HttpResponse:
    return HttpResponse(status=status, headers={}, body="")
