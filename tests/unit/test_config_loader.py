from __future__ import annotations

import pytest

from apphost.core.config.loader import load_host_config, load_runtime_env

ENV_KEYS = (
    "MCP_MAX_REQUESTS",
    "MCP_TTL_EXTEND",
    "PORT",
    "APPHOST_API_URL",
    "APPHOST_API_TOKEN",
    "APPHOST_CONFIG_FILE",
    "MCP_ENV_JSON",
    "MCP_ENV",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_config_loader_merges_defaults_and_instance(tmp_path):
    defaults = tmp_path / "defaults.yaml"
    defaults.write_text(
        """
metadata:
  name: apphost
  version: 0.1.0
cors:
  allow_origin: "*"
  allow_headers: Content-Type
""".strip(),
        encoding="utf-8",
    )
    instance = tmp_path / "instance.yaml"
    instance.write_text(
        """
metadata:
  version: 2.0.0
cors:
  allow_origin: https://app.example
max_requests: 10
""".strip(),
        encoding="utf-8",
    )

    cfg = load_host_config(defaults_path=defaults, instance_path=instance)
    assert cfg.metadata.name == "apphost"
    assert cfg.metadata.version == "2.0.0"
    assert cfg.cors.allow_origin == "https://app.example"
    assert cfg.cors.allow_headers == "Content-Type"
    assert cfg.max_requests == 10
    assert cfg.ttl_extend_seconds == 3600
    assert cfg.default_port == 3000


def test_env_overrides_apply_after_files(tmp_path, monkeypatch):
    instance = tmp_path / "instance.yaml"
    instance.write_text("max_requests: 10\n", encoding="utf-8")
    monkeypatch.setenv("APPHOST_CONFIG_FILE", str(instance))
    monkeypatch.setenv("MCP_MAX_REQUESTS", "3")
    monkeypatch.setenv("MCP_TTL_EXTEND", "120")
    monkeypatch.setenv("PORT", "8081")
    monkeypatch.setenv("APPHOST_API_URL", "https://core.example")

    cfg = load_host_config(defaults_path=tmp_path / "missing.yaml")
    assert cfg.max_requests == 3
    assert cfg.ttl_extend_seconds == 120
    assert cfg.default_port == 8081
    assert cfg.backend.base_url == "https://core.example"


def test_programmatic_overrides_win(tmp_path, monkeypatch):
    monkeypatch.setenv("MCP_MAX_REQUESTS", "3")
    cfg = load_host_config(defaults_path=tmp_path / "missing.yaml", overrides={"max_requests": 9})
    assert cfg.max_requests == 9


def test_non_positive_max_requests_means_unlimited(tmp_path, monkeypatch):
    monkeypatch.setenv("MCP_MAX_REQUESTS", "0")
    assert load_host_config(defaults_path=tmp_path / "missing.yaml").max_requests is None


def test_config_loader_validation_error_is_clear(tmp_path):
    defaults = tmp_path / "defaults.yaml"
    defaults.write_text("default_port: bad", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid apphost configuration"):
        load_host_config(defaults_path=defaults)


def test_runtime_env_merges_baked_then_runtime(monkeypatch):
    monkeypatch.setenv("MCP_ENV_JSON", '{"A": "baked", "B": "baked"}')
    monkeypatch.setenv("MCP_ENV", '{"B": "runtime"}')
    env = load_runtime_env()
    assert env["A"] == "baked"
    assert env["B"] == "runtime"


def test_runtime_env_ignores_invalid_json(monkeypatch):
    monkeypatch.setenv("MCP_ENV_JSON", "{not json")
    monkeypatch.setenv("MCP_ENV", '["list"]')
    env = load_runtime_env()
    assert env["MCP_ENV_JSON"] == "{not json"
