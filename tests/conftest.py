from __future__ import annotations

import pytest

from apphost.core.config.schema import HostConfig
from apphost.core.runtime.quota import RequestState
from apphost.core.telemetry.logging import get_logger
from apphost.core.tools.executor import ToolDispatcher
from apphost.core.webhooks.dispatcher import WebhookDispatcher
from tests.sample_app import build_registry


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def host_cfg():
    return HostConfig.model_validate({"metadata": {"name": "sample-app", "version": "1.2.3"}, "max_requests": 5})


@pytest.fixture
def logger():
    return get_logger("apphost.tests")


@pytest.fixture
def dispatcher(registry, logger):
    return ToolDispatcher(registry, logger, RequestState(max_requests=5), base_env={"REGION": "eu"})


@pytest.fixture
def webhook_dispatcher(registry, logger):
    return WebhookDispatcher(registry, logger, base_env={"REGION": "eu"})
