from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from apphost.apps.runtime_support import HostRuntime, build_host_runtime, load_registry
from apphost.cli import base_parser
from apphost.core.backend.service import CoreApiService
from apphost.core.config.schema import HostConfig
from apphost.core.protocol.http import HttpRequest
from apphost.core.tools.registry import AppRegistry

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class RecycleController:
    """Asks uvicorn to exit gracefully once the request quota is reached."""

    def __init__(self, grace_seconds: float, logger) -> None:
        self.grace_seconds = grace_seconds
        self.logger = logger
        self.server: uvicorn.Server | None = None
        self.scheduled = False

    def attach(self, server: uvicorn.Server) -> None:
        self.server = server

    def trigger(self) -> None:
        if self.scheduled:
            return
        self.scheduled = True
        self.logger.warning("recycle_scheduled", grace_seconds=self.grace_seconds)
        asyncio.get_running_loop().call_later(self.grace_seconds, self._exit)

    def _exit(self) -> None:
        if self.server is None:
            self.logger.warning("recycle_skipped", reason="no_server_attached")
            return
        self.logger.info("recycle_exit")
        self.server.should_exit = True


def create_app(
    registry: AppRegistry,
    config_path: str | None = None,
    *,
    cfg: HostConfig | None = None,
    core: CoreApiService | None = None,
    overrides: dict[str, Any] | None = None,
) -> FastAPI:
    runtime = build_host_runtime(
        registry,
        surface="dedicated",
        config_path=config_path,
        cfg=cfg,
        core=core,
        overrides=overrides,
    )
    recycle = RecycleController(runtime.cfg.recycle_grace_seconds, runtime.logger)
    runtime.tools.on_recycle = recycle.trigger

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime.log_banner(port=getattr(app.state, "port", None))
        yield
        runtime.logger.info("server_stopped", requests=runtime.state.request_count)

    app = FastAPI(title=runtime.cfg.metadata.name, version=runtime.cfg.metadata.version, lifespan=lifespan)
    app.state.runtime = runtime
    app.state.recycle = recycle

    async def dispatch(request: Request) -> Response:
        http_request = HttpRequest(
            method=request.method,
            path=request.url.path,
            url=str(request.url),
            headers=dict(request.headers),
            query=dict(request.query_params),
            body=await request.body(),
        )
        result = await runtime.router.handle(http_request)
        return Response(content=result.body, status_code=result.status, headers=result.headers)

    app.add_api_route("/health", dispatch, methods=["GET", "OPTIONS"])
    app.add_api_route("/mcp", dispatch, methods=["POST", "OPTIONS"])
    app.add_api_route("/estimate", dispatch, methods=["POST", "OPTIONS"])
    app.add_api_route("/core", dispatch, methods=["POST", "OPTIONS"])
    app.add_api_route("/core/webhook", dispatch, methods=["POST", "OPTIONS"])
    app.add_api_route("/webhooks/{route}", dispatch, methods=ALL_METHODS)
    app.add_api_route("/{path:path}", dispatch, methods=ALL_METHODS, include_in_schema=False)
    return app


def runtime_of(app: FastAPI) -> HostRuntime:
    return app.state.runtime


def main(argv: list[str] | None = None) -> int:
    parser = base_parser("apphost-serve", "Serve registered tools and webhooks over HTTP")
    parser.add_argument("--app", required=True, help="Registry to serve, as module:attribute")
    parser.add_argument("--config", default=None, help="Config file path")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args(argv)

    api = create_app(load_registry(args.app), config_path=args.config)
    runtime = runtime_of(api)
    port = args.port or runtime.cfg.default_port
    api.state.port = port
    server = uvicorn.Server(
        uvicorn.Config(api, host=args.host, port=port, log_level=runtime.cfg.telemetry.log_level.lower())
    )
    api.state.recycle.attach(server)
    server.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
