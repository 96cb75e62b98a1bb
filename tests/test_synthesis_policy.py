"""Tests for the attempt / validate / retry-once / default policy."""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from mirror_lens.llm.base import GenerationError
from mirror_lens.synthesis.policy import synthesize
from mirror_lens.synthesis.result import Defaulted, Repaired, Valid

pytestmark = pytest.mark.asyncio


def _llm(*responses):
    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=list(responses))
    return llm


def _repair(data):
    notes = [] if "value" in data else ["value: missing, defaulted"]
    return data.get("value", 0), notes


def _default():
    return -1


async def _run(llm, **kwargs):
    return await synthesize(
        llm,
        "prompt",
        task="test",
        temperature=0.5,
        repair=kwargs.pop("repair", _repair),
        default=_default,
        **kwargs,
    )


async def test_valid_output_is_tagged_valid():
    llm = _llm(json.dumps({"value": 7}))
    result = await _run(llm)
    assert result == Valid(7)
    assert llm.complete.await_count == 1


async def test_requests_structured_output_at_task_temperature():
    llm = _llm(json.dumps({"value": 1}))
    await _run(llm, system="sys", model="m")
    kwargs = llm.complete.await_args.kwargs
    assert kwargs["json_output"] is True
    assert kwargs["temperature"] == 0.5
    assert kwargs["system"] == "sys"
    assert kwargs["model"] == "m"


async def test_repaired_output_carries_notes():
    result = await _run(_llm(json.dumps({"other": 1})))
    assert isinstance(result, Repaired)
    assert result.value == 0
    assert result.notes == ("value: missing, defaulted",)


async def test_malformed_then_valid_retries_once():
    llm = _llm("not json", json.dumps({"value": 3}))
    result = await _run(llm)
    assert result == Valid(3)
    assert llm.complete.await_count == 2


async def test_two_malformed_answers_fall_back_to_default():
    llm = _llm("nope", "[1, 2]", json.dumps({"value": 9}))
    result = await _run(llm)
    assert isinstance(result, Defaulted)
    assert result.value == -1
    assert llm.complete.await_count == 2


async def test_missing_required_key_triggers_retry():
    llm = _llm(json.dumps({"value": 1}), json.dumps({"value": 2, "feed": []}))
    result = await _run(llm, required_keys=("feed",))
    assert result == Valid(2)
    assert llm.complete.await_count == 2


async def test_empty_object_counts_as_missing_shape():
    llm = _llm("{}", "{}")
    result = await _run(llm)
    assert isinstance(result, Defaulted)


async def test_fenced_json_is_accepted():
    result = await _run(_llm('```json\n{"value": 5}\n```'))
    assert result == Valid(5)


async def test_unreachable_service_defaults_without_retry():
    llm = _llm(GenerationError("connection refused"))
    result = await _run(llm)
    assert isinstance(result, Defaulted)
    assert "unreachable" in result.reason
    assert llm.complete.await_count == 1


async def test_any_adapter_exception_defaults():
    result = await _run(_llm(RuntimeError("boom")))
    assert isinstance(result, Defaulted)


async def test_timeout_defaults():
    async def _hang(*args, **kwargs):
        await asyncio.sleep(10)

    llm = MagicMock()
    llm.complete = _hang
    result = await _run(llm, timeout=0.01)
    assert isinstance(result, Defaulted)
    assert result.reason == "timeout"


async def test_repair_error_counts_as_unsalvageable():
    def _strict(data):
        if data.get("value") == "bad":
            raise ValueError("bad value")
        return data["value"], []

    llm = _llm(json.dumps({"value": "bad"}), json.dumps({"value": 4}))
    result = await _run(llm, repair=_strict)
    assert result == Valid(4)
    assert llm.complete.await_count == 2


async def test_any_repair_exception_is_retried_then_defaulted():
    def _explode(data):
        raise OverflowError("int too large to convert to float")

    llm = _llm(json.dumps({"value": 1}), json.dumps({"value": 2}))
    result = await _run(llm, repair=_explode)
    assert isinstance(result, Defaulted)
    assert "int too large" in result.reason
    assert llm.complete.await_count == 2


async def test_deeply_nested_output_counts_as_unparseable():
    llm = _llm("[" * 100_000, json.dumps({"value": 6}))
    result = await _run(llm)
    assert result == Valid(6)


async def test_huge_integer_literal_is_repaired_not_raised():
    from mirror_lens.synthesis.repair import as_number, bounded

    assert as_number(10**400) is None
    notes = []
    assert bounded(10**400, 0.5, notes, "x") == 0.5
    assert notes
