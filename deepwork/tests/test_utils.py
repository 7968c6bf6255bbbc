"""
Tests for JSON-from-text parsing and the fail-open meta-work helper.
"""

import pytest

from ..core.types import ParseResult
from ..core.utils import Timer, as_string_list, fail_open_call, parse_json_object, strip_code_fences
from ..llm.gateway import ModelRequest, ModelResponse, ModelTier
from .conftest import FakeGateway


class TestParseJsonObject:
    """Test typed parse results"""

    def test_plain_object(self):
        result = parse_json_object('{"a": 1}', default={})
        assert isinstance(result, ParseResult)
        assert result.ok
        assert result.value == {"a": 1}

    def test_fenced_object(self):
        text = '```json\n{"sufficient": true}\n```'
        assert strip_code_fences(text) == '{"sufficient": true}'
        assert parse_json_object(text, default=None).value == {"sufficient": True}

    def test_invalid_json_returns_default(self):
        result = parse_json_object("not json at all", default={"fallback": True})
        assert not result.ok
        assert result.value == {"fallback": True}
        assert "invalid JSON" in result.error

    def test_empty_text(self):
        result = parse_json_object("   ", default="d")
        assert not result.ok
        assert result.value == "d"

    def test_non_object_rejected(self):
        result = parse_json_object("[1, 2, 3]", default=None)
        assert not result.ok
        assert result.value is None


class TestAsStringList:

    def test_filters_blank_and_nested(self):
        assert as_string_list(["a", " ", None, {"x": 1}, ["y"], 3]) == ["a", "3"]

    def test_single_string(self):
        assert as_string_list("one query") == ["one query"]

    def test_non_list(self):
        assert as_string_list(42) == []
        assert as_string_list(None) == []


class TestFailOpenCall:
    """Meta-work calls always come back with a usable value"""

    @pytest.fixture
    def request_for(self):
        def build(phase):
            return ModelRequest(system_prompt="s", user_message="u", tier=ModelTier.CHEAP,
                                caller_context={"phase": phase})
        return build

    @pytest.mark.asyncio
    async def test_success(self, request_for):
        gateway = FakeGateway().queue("probe", {"items": ["x", "y"]})
        result = await fail_open_call(gateway, request_for("probe"), parse=lambda d: d["items"], default=[])
        assert result.ok
        assert result.value == ["x", "y"]
        assert result.error is None

    @pytest.mark.asyncio
    async def test_gateway_error(self, request_for):
        gateway = FakeGateway().queue("probe", ModelResponse.failure("rate limited"))
        result = await fail_open_call(gateway, request_for("probe"), parse=lambda d: d, default="default")
        assert not result.ok
        assert result.value == "default"
        assert result.error == "rate limited"

    @pytest.mark.asyncio
    async def test_gateway_exception(self, request_for):
        gateway = FakeGateway().queue("probe", ConnectionError("reset"))
        result = await fail_open_call(gateway, request_for("probe"), parse=lambda d: d, default="default")
        assert not result.ok
        assert result.value == "default"
        assert "ConnectionError" in result.error

    @pytest.mark.asyncio
    async def test_malformed_json(self, request_for):
        gateway = FakeGateway().queue("probe", "Sure! Here are some ideas")
        result = await fail_open_call(gateway, request_for("probe"), parse=lambda d: d, default=[])
        assert not result.ok
        assert result.value == []

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, request_for):
        gateway = FakeGateway().queue("probe", {"other": 1})
        result = await fail_open_call(gateway, request_for("probe"), parse=lambda d: d["missing"], default=[])
        assert not result.ok
        assert result.value == []


def test_timer_measures_elapsed():
    with Timer("test", log=False) as timer:
        sum(range(1000))
    assert timer.elapsed >= 0
    assert timer.elapsed_ms == int(timer.elapsed * 1000)
