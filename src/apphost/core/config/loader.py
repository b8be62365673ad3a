from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from apphost.core.config.schema import HostConfig


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    content = yaml.safe_load(path.read_text(encoding="utf-8"))
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return content


def _parse_int_env(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _parse_json_env(name: str) -> dict[str, str]:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def load_runtime_env() -> dict[str, str]:
    """Process env overlaid with the baked MCP_ENV_JSON map, then the MCP_ENV runtime map."""
    baked = _parse_json_env("MCP_ENV_JSON")
    runtime = _parse_json_env("MCP_ENV")
    return {**os.environ, **baked, **runtime}


def load_host_config(
    defaults_path: str | Path = "config/defaults.yaml",
    instance_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> HostConfig:
    defaults = _load_yaml(Path(defaults_path))

    explicit_instance = instance_path or os.getenv("APPHOST_CONFIG_FILE")
    instance = _load_yaml(Path(explicit_instance)) if explicit_instance else {}

    merged = _deep_merge(defaults, instance)

    max_requests = _parse_int_env("MCP_MAX_REQUESTS")
    if max_requests is not None:
        merged["max_requests"] = max_requests if max_requests > 0 else None

    ttl_extend = _parse_int_env("MCP_TTL_EXTEND")
    if ttl_extend is not None:
        merged["ttl_extend_seconds"] = ttl_extend

    port = _parse_int_env("PORT")
    if port is not None:
        merged["default_port"] = port

    backend_env = {
        key: value
        for key, value in (("base_url", os.getenv("APPHOST_API_URL")), ("api_token", os.getenv("APPHOST_API_TOKEN")))
        if value
    }
    if backend_env:
        merged = _deep_merge(merged, {"backend": backend_env})

    if overrides:
        merged = _deep_merge(merged, overrides)

    try:
        return HostConfig.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid apphost configuration: {exc}") from exc
