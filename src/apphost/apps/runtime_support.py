from __future__ import annotations

import importlib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from apphost.core.backend.service import CoreApiService
from apphost.core.config.loader import load_host_config, load_runtime_env
from apphost.core.config.schema import HostConfig
from apphost.core.protocol.router import HostRouter
from apphost.core.runtime.quota import RequestState
from apphost.core.telemetry.banner import log_startup_banner
from apphost.core.telemetry.logging import configure_logging, get_logger
from apphost.core.tools.executor import ToolDispatcher
from apphost.core.tools.registry import AppRegistry
from apphost.core.webhooks.dispatcher import WebhookDispatcher

DEFAULTS_PATH = Path("config/defaults.yaml")


@dataclass(slots=True)
class HostRuntime:
    cfg: HostConfig
    registry: AppRegistry
    state: RequestState
    tools: ToolDispatcher
    webhooks: WebhookDispatcher
    core: CoreApiService
    router: HostRouter
    base_env: Mapping[str, str]
    logger: Any

    def log_banner(self, port: int | None = None) -> None:
        log_startup_banner(
            self.logger,
            self.cfg,
            tool_names=self.registry.tool_names(),
            webhook_routes=self.registry.webhook_routes(),
            port=port,
        )


def build_host_runtime(
    registry: AppRegistry,
    *,
    surface: str,
    config_path: str | None = None,
    cfg: HostConfig | None = None,
    core: CoreApiService | None = None,
    on_recycle: Callable[[], None] | None = None,
    overrides: dict[str, Any] | None = None,
) -> HostRuntime:
    if cfg is None:
        cfg = load_host_config(
            defaults_path=DEFAULTS_PATH,
            instance_path=config_path,
            overrides={"compute_layer": surface, **(overrides or {})},
        )
    configure_logging(log_level=cfg.telemetry.log_level, json_logs=cfg.telemetry.json_logs)
    logger = get_logger(f"apphost.{surface}")

    base_env = load_runtime_env()
    state = RequestState(max_requests=cfg.max_requests, ttl_extend_seconds=cfg.ttl_extend_seconds, runtime=surface)
    tools = ToolDispatcher(
        registry,
        logger,
        state,
        base_env=base_env,
        backend=cfg.backend,
        on_recycle=on_recycle,
        surface=surface,
    )
    webhooks = WebhookDispatcher(registry, logger, base_env=base_env, backend=cfg.backend, surface=surface)
    core = core or CoreApiService()
    router = HostRouter(
        cfg=cfg,
        registry=registry,
        state=state,
        tools=tools,
        webhooks=webhooks,
        core=core,
        logger=logger,
    )
    return HostRuntime(
        cfg=cfg,
        registry=registry,
        state=state,
        tools=tools,
        webhooks=webhooks,
        core=core,
        router=router,
        base_env=base_env,
        logger=logger,
    )


def load_registry(target: str) -> AppRegistry:
    """Import ``module:attribute``; the attribute is a registry or a zero-arg factory returning one."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Expected module:attribute, got {target!r}")
    obj = getattr(importlib.import_module(module_name), attr)
    if callable(obj) and not isinstance(obj, AppRegistry):
        obj = obj()
    if not isinstance(obj, AppRegistry):
        raise TypeError(f"{target} is not an AppRegistry")
    return obj
