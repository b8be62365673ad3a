"""Startup banner shared by both hosting surfaces."""

from __future__ import annotations

import os
from datetime import datetime, timezone

from apphost.core.config.schema import HostConfig

MAX_TOOLS_SHOWN = 10
MAX_WEBHOOKS_SHOWN = 5


def _preview(items: list[str], limit: int) -> list[str]:
    if len(items) <= limit:
        return list(items)
    return [*items[:limit], f"... and {len(items) - limit} more"]


def log_startup_banner(
    logger,
    cfg: HostConfig,
    *,
    tool_names: list[str],
    webhook_routes: list[str],
    port: int | None = None,
) -> None:
    fields = {
        "server": cfg.metadata.name,
        "version": cfg.metadata.version,
        "compute": cfg.compute_layer,
        "executable": os.getenv("APPHOST_EXECUTABLE_ID") or "local",
        "tool_count": len(tool_names),
        "tools": _preview(tool_names, MAX_TOOLS_SHOWN),
        "webhook_count": len(webhook_routes),
        "webhooks": _preview([f"/webhooks/{r}" for r in webhook_routes], MAX_WEBHOOKS_SHOWN),
        "max_requests": cfg.max_requests if cfg.max_requests is not None else "unlimited",
        "ttl_extend": f"{cfg.ttl_extend_seconds}s",
        "ready_at": datetime.now(timezone.utc).isoformat(),
    }
    if port is not None:
        fields["port"] = port
    logger.info("server_starting", **fields)
