"""Per-invocation isolation of backend credentials and environment.

Credentials live in a ContextVar so that interleaved invocations on one event
loop (or in ``asyncio.to_thread`` workers, which copy the context) only see
their own values. Environment is never written back to ``os.environ``; each
invocation gets its own merged, read-only mapping instead.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from types import MappingProxyType

from apphost.core.config.schema import BackendConfig
from apphost.core.runtime.errors import ValidationError

API_URL_ENV = "APPHOST_API_URL"
API_TOKEN_ENV = "APPHOST_API_TOKEN"


@dataclass(frozen=True, slots=True)
class BackendCredentials:
    base_url: str
    api_token: str

    @classmethod
    def from_env(cls, env: Mapping[str, str], fallback: BackendConfig | None = None) -> BackendCredentials:
        fallback = fallback or BackendConfig()
        return cls(
            base_url=env.get(API_URL_ENV) or fallback.base_url,
            api_token=env.get(API_TOKEN_ENV) or fallback.api_token,
        )


_backend_credentials: ContextVar[BackendCredentials | None] = ContextVar("apphost_backend_credentials", default=None)


def current_backend_credentials() -> BackendCredentials | None:
    return _backend_credentials.get()


@contextmanager
def backend_scope(credentials: BackendCredentials) -> Iterator[BackendCredentials]:
    token = _backend_credentials.set(credentials)
    try:
        yield credentials
    finally:
        _backend_credentials.reset(token)


def merge_env(base: Mapping[str, str], overlay: Mapping[str, object] | None) -> Mapping[str, str]:
    if overlay is not None and not isinstance(overlay, Mapping):
        raise ValidationError("env must be an object", {"env": ["must be an object"]})
    merged = dict(base)
    for key, value in (overlay or {}).items():
        if value is None:
            continue
        merged[str(key)] = str(value)
    return MappingProxyType(merged)
