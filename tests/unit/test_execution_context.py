from __future__ import annotations

from types import MappingProxyType

import pytest

from apphost.core.context.execution import (
    AgentContext,
    FieldChangeContext,
    FormSubmitContext,
    PageActionContext,
    ProvisionContext,
    WorkflowContext,
    build_execution_context,
    describe_context,
)
from apphost.core.runtime.errors import ValidationError

ENV = MappingProxyType({"SECRET": "s3cr3t"})
INSTALL = {
    "app": {"id": "app_1", "versionId": "v_1"},
    "appInstallationId": "inst_1",
    "workplace": {"id": "wp_1", "subdomain": "acme"},
    "request": {"url": "https://acme.example/run", "params": {"a": 1}, "query": {"q": "x"}},
}


@pytest.mark.parametrize("raw", [None, {}])
def test_missing_context_is_provision_level(raw):
    ctx = build_execution_context(raw, env=ENV)
    assert isinstance(ctx, ProvisionContext)
    assert ctx.trigger == "provision"
    assert not hasattr(ctx, "workplace")


def test_agent_is_the_default_trigger():
    ctx = build_execution_context(INSTALL, env=ENV, mode="estimate")
    assert isinstance(ctx, AgentContext)
    assert ctx.mode == "estimate"
    assert ctx.workplace.subdomain == "acme"
    assert ctx.request.params == {"a": 1}
    assert ctx.app.version_id == "v_1"


def test_explicit_trigger_wins_over_payload():
    ctx = build_execution_context({**INSTALL, "trigger": "workflow", "form": {"handle": "f"}}, env=ENV)
    assert isinstance(ctx, WorkflowContext)


def test_field_change_is_inferred():
    raw = {**INSTALL, "field": {"handle": "status", "type": "select", "pageHandle": "deal", "value": "won"}}
    ctx = build_execution_context(raw, env=ENV)
    assert isinstance(ctx, FieldChangeContext)
    assert ctx.field.page_handle == "deal"
    assert ctx.field.previous_value is None


def test_legacy_field_values_become_page_action():
    ctx = build_execution_context({**INSTALL, "fieldValues": {"name": "Ada"}}, env=ENV)
    assert isinstance(ctx, PageActionContext)
    assert ctx.page.values == {"name": "Ada"}


def test_form_submit_requires_handle():
    with pytest.raises(ValidationError) as err:
        build_execution_context({**INSTALL, "form": {"values": {}}}, env=ENV)
    assert "context.form.handle" in err.value.issues
    ctx = build_execution_context({**INSTALL, "form": {"handle": "signup", "values": {"x": 1}}}, env=ENV)
    assert isinstance(ctx, FormSubmitContext)


def test_installation_fields_are_required_outside_provision():
    with pytest.raises(ValidationError) as err:
        build_execution_context({"trigger": "agent", "app": {"id": "app_1"}}, env=ENV)
    assert set(err.value.issues) == {"context.appInstallationId", "context.workplace"}


def test_unknown_trigger_is_rejected():
    with pytest.raises(ValidationError):
        build_execution_context({**INSTALL, "trigger": "cron"}, env=ENV)


def test_describe_context_omits_env_values():
    ctx = build_execution_context(INSTALL, env=ENV)
    summary = describe_context(ctx)
    assert summary["installation"] == "inst_1"
    assert "s3cr3t" not in repr(summary)


@pytest.mark.parametrize("raw", ["abc", ["appInstallationId"], 7])
def test_non_object_context_is_rejected(raw):
    with pytest.raises(ValidationError) as excinfo:
        build_execution_context(raw, env=ENV)
    assert excinfo.value.issues == {"context": ["must be an object"]}
