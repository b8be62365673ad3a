from __future__ import annotations

import json

import pytest

from apphost.core.protocol.rpc import RpcRequest, decode_tool_result, encode_tool_result, parse_tool_call_params
from apphost.core.runtime.errors import ValidationError
from apphost.core.tools.base import BillingInfo, ToolCallResult


def test_effect_survives_the_wire():
    result = ToolCallResult(output={"id": "rec_1"}, billing=BillingInfo(credits=3), effect={"navigate": "/r/1"})
    payload = encode_tool_result(result)
    assert payload["structuredContent"] == {"id": "rec_1", "__effect": {"navigate": "/r/1"}}
    assert json.loads(payload["content"][0]["text"]) == {"id": "rec_1"}

    decoded = decode_tool_result(json.loads(json.dumps(payload)))
    assert decoded.output == {"id": "rec_1"}
    assert decoded.effect == {"navigate": "/r/1"}
    assert decoded.billing.credits == 3


def test_non_object_output_omits_structured_content():
    payload = encode_tool_result(ToolCallResult(output="done"))
    assert "structuredContent" not in payload
    assert payload["content"][0]["text"] == '"done"'
    assert "isError" not in payload


def test_effect_on_non_object_output_is_still_carried():
    payload = encode_tool_result(ToolCallResult(output=[1, 2], effect={"toast": "saved"}))
    assert payload["structuredContent"] == {"__effect": {"toast": "saved"}}
    decoded = decode_tool_result(payload)
    assert decoded.output == [1, 2]
    assert decoded.effect == {"toast": "saved"}


def test_error_result_carries_details():
    result = ToolCallResult(
        output=None,
        error="apiKey is required",
        error_details={"code": "MISSING_REQUIRED_FIELD", "field": "apiKey"},
    )
    payload = encode_tool_result(result)
    assert payload["isError"] is True
    assert payload["structuredContent"] == {
        "error": "apiKey is required",
        "code": "MISSING_REQUIRED_FIELD",
        "field": "apiKey",
    }
    assert payload["billing"] == {"credits": 0}
    decoded = decode_tool_result(payload)
    assert decoded.is_error
    assert decoded.error_details == {"code": "MISSING_REQUIRED_FIELD", "field": "apiKey"}


def test_flat_arguments_are_inputs():
    params = parse_tool_call_params({"name": "echo", "arguments": {"message": "hi"}})
    assert params.inputs == {"message": "hi"}
    assert params.context is None and params.env is None and params.estimate is False


def test_wrapped_arguments_are_unpacked():
    params = parse_tool_call_params(
        {
            "name": "echo",
            "arguments": {
                "inputs": {"message": "hi"},
                "context": {"trigger": "provision"},
                "env": {"TENANT": "acme"},
                "estimate": True,
            },
        }
    )
    assert params.inputs == {"message": "hi"}
    assert params.context == {"trigger": "provision"}
    assert params.env == {"TENANT": "acme"}
    assert params.estimate is True


@pytest.mark.parametrize("params", [None, {}, {"name": "echo", "arguments": [1]}])
def test_bad_tool_call_params(params):
    with pytest.raises(ValidationError):
        parse_tool_call_params(params)


def test_notification_detection():
    assert RpcRequest.model_validate({"jsonrpc": "2.0", "method": "ping"}).is_notification
    assert not RpcRequest.model_validate({"jsonrpc": "2.0", "method": "ping", "id": None}).is_notification
