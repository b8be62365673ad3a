"""Single-invocation surface: one API-Gateway-style event in, one response dict out."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import sys
import uuid
from pathlib import Path
from typing import Any

from apphost.apps.runtime_support import HostRuntime, build_host_runtime, load_registry
from apphost.cli import base_parser
from apphost.core.backend.service import CoreApiService
from apphost.core.config.schema import HostConfig
from apphost.core.protocol.http import HttpRequest, HttpResponse, build_url, json_dumps, json_response, lower_headers
from apphost.core.protocol.rpc import rpc_error
from apphost.core.runtime.errors import PARSE_ERROR, TransportError
from apphost.core.tools.registry import AppRegistry


def _event_method(event: dict[str, Any]) -> str:
    method = event.get("httpMethod")
    if not method:
        method = ((event.get("requestContext") or {}).get("http") or {}).get("method")
    return str(method or "GET").upper()


def _event_body(event: dict[str, Any]) -> bytes:
    body = event.get("body")
    if body is None:
        return b""
    if isinstance(body, (dict, list)):
        return json_dumps(body).encode("utf-8")
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TransportError("Invalid base64 body") from exc
    return str(body).encode("utf-8")


def request_from_event(event: dict[str, Any]) -> HttpRequest:
    headers = lower_headers(event.get("headers"))
    path = event.get("path") or event.get("rawPath") or "/"
    query = {str(k): str(v) for k, v in (event.get("queryStringParameters") or {}).items() if v is not None}
    return HttpRequest(
        method=_event_method(event),
        path=path,
        url=build_url(headers, path, query),
        headers=headers,
        query=query,
        body=_event_body(event),
    )


def response_to_result(response: HttpResponse) -> dict[str, Any]:
    return {"statusCode": response.status, "headers": dict(response.headers), "body": response.body}


class FunctionHandler:
    def __init__(
        self,
        registry: AppRegistry,
        config_path: str | None = None,
        *,
        cfg: HostConfig | None = None,
        core: CoreApiService | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        self.runtime: HostRuntime = build_host_runtime(
            registry,
            surface="serverless",
            config_path=config_path,
            cfg=cfg,
            core=core,
            on_recycle=self._on_recycle,
            overrides=overrides,
        )
        self._banner_logged = False

    def _on_recycle(self) -> None:
        # The platform owns the function lifecycle; nothing to shut down here.
        self.runtime.logger.info("recycle_not_applicable", surface="serverless", requests=self.runtime.state.request_count)

    async def handle(self, event: dict[str, Any]) -> dict[str, Any]:
        if not self._banner_logged:
            self.runtime.log_banner()
            self._banner_logged = True

        request_id = (event.get("requestContext") or {}).get("requestId") or uuid.uuid4().hex
        try:
            request = request_from_event(event)
        except TransportError as exc:
            response = json_response(400, rpc_error(None, PARSE_ERROR, exc.message))
            return response_to_result(response.with_default_headers(self.runtime.router.cors_headers))
        response = await self.runtime.router.handle(request, request_id=request_id)
        return response_to_result(response)

    def __call__(self, event: dict[str, Any], lambda_context: Any = None) -> dict[str, Any]:
        return asyncio.run(self.handle(event))


def create_function_handler(registry: AppRegistry, config_path: str | None = None, **kwargs: Any) -> FunctionHandler:
    return FunctionHandler(registry, config_path, **kwargs)


def main(argv: list[str] | None = None) -> int:
    parser = base_parser("apphost-invoke", "Run one event through the single-invocation handler")
    parser.add_argument("--app", required=True, help="Registry to serve, as module:attribute")
    parser.add_argument("--config", default=None, help="Config file path")
    parser.add_argument("event", help="Path to an event JSON file, or - for stdin")
    args = parser.parse_args(argv)

    raw = sys.stdin.read() if args.event == "-" else Path(args.event).read_text(encoding="utf-8")
    handler = create_function_handler(load_registry(args.app), config_path=args.config)
    result = handler(json.loads(raw))
    print(json.dumps(result, indent=2))
    return 0 if result["statusCode"] < 500 else 1


if __name__ == "__main__":
    raise SystemExit(main())
