from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ServerMetadata(BaseModel):
    name: str = "apphost"
    version: str = "0.0.0"


class CorsConfig(BaseModel):
    allow_origin: str = "*"
    allow_methods: str = "GET, POST, OPTIONS"
    allow_headers: str = "Content-Type"


class TelemetryConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = True


class BackendConfig(BaseModel):
    base_url: str = ""
    api_token: str = ""
    timeout_seconds: float = 10.0


class HostConfig(BaseModel):
    metadata: ServerMetadata = Field(default_factory=ServerMetadata)
    compute_layer: Literal["dedicated", "serverless"] = "dedicated"
    default_port: int = 3000
    max_requests: int | None = Field(default=None, ge=1)
    ttl_extend_seconds: int = 3600
    recycle_grace_seconds: float = 1.0
    cors: CorsConfig = Field(default_factory=CorsConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
