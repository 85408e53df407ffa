"""Tests for folding streamed fragments into one response."""

from __future__ import annotations

import copy
from functools import reduce

from chatwire.llm.merge import merge_response
from chatwire.types import ChatResponse


def _fragment(
    content: str = "",
    finish_reason: str | None = None,
    usage: dict | None = None,
    tool_calls: list | None = None,
    role: str | None = None,
    index: int = 0,
    extra_choices: list[dict] | None = None,
) -> ChatResponse:
    delta: dict = {"content": content}
    if role:
        delta["role"] = role
    if tool_calls:
        delta["tool_calls"] = tool_calls
    raw: dict = {
        "id": "gen-1",
        "model": "test-model",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "choices": [
            {"index": index, "delta": delta, "finish_reason": finish_reason},
            *(extra_choices or []),
        ],
    }
    if usage:
        raw["usage"] = usage
    return ChatResponse.from_dict(raw)


def _fold(fragments: list[ChatResponse]) -> ChatResponse | None:
    return reduce(merge_response, fragments, None)


# ---------------------------------------------------------------------------
# First fragment
# ---------------------------------------------------------------------------

class TestFirstFragment:
    def test_chunk_suffix_stripped(self):
        merged = merge_response(None, _fragment("Hi", role="assistant"))
        assert merged.object == "chat.completion"

    def test_delta_becomes_message(self):
        merged = merge_response(None, _fragment("Hi", role="assistant"))
        choice = merged.choices[0]
        assert choice.delta is None
        assert choice.message is not None
        assert choice.message.content == "Hi"
        assert choice.message.role == "assistant"

    def test_missing_role_defaults_to_assistant(self):
        merged = merge_response(None, _fragment("Hi"))
        assert merged.choices[0].message.role == "assistant"

    def test_metadata_copied(self):
        merged = merge_response(None, _fragment("Hi"))
        assert merged.id == "gen-1"
        assert merged.model == "test-model"
        assert merged.created == 1700000000


# ---------------------------------------------------------------------------
# Subsequent fragments
# ---------------------------------------------------------------------------

class TestFold:
    def test_content_concatenated(self):
        merged = _fold([_fragment("Hel", role="assistant"), _fragment("lo"), _fragment("!")])
        assert merged.choices[0].message.content == "Hello!"

    def test_prefix_folds_agree(self):
        fragments = [_fragment("a", role="assistant"), _fragment("b"), _fragment("c", "stop")]
        step = None
        for i, fragment in enumerate(fragments, start=1):
            step = merge_response(step, fragment)
            assert step == _fold(fragments[:i])

    def test_finish_reason_first_writer_wins(self):
        merged = _fold([
            _fragment("a", role="assistant"),
            _fragment("", "tool_calls"),
            _fragment("", "stop"),
            _fragment("", "length"),
        ])
        assert merged.choices[0].finish_reason == "tool_calls"

    def test_empty_finish_reason_does_not_reset(self):
        merged = _fold([_fragment("a", "stop"), _fragment("b", "")])
        assert merged.choices[0].finish_reason == "stop"

    def test_usage_adopted_once(self):
        merged = _fold([
            _fragment("a"),
            _fragment("b", usage={"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}),
            _fragment("", usage={"prompt_tokens": 9, "completion_tokens": 9, "total_tokens": 18}),
        ])
        assert merged.usage is not None
        assert merged.usage.total_tokens == 3

    def test_inputs_not_mutated(self):
        first = _fragment("a", role="assistant")
        second = _fragment("b", "stop")
        first_before = copy.deepcopy(first)
        second_before = copy.deepcopy(second)

        base = merge_response(None, first)
        base_before = copy.deepcopy(base)
        merge_response(base, second)

        assert first == first_before
        assert second == second_before
        assert base == base_before

    def test_choices_matched_by_position(self):
        merged = _fold([
            _fragment("A", extra_choices=[{"index": 1, "delta": {"content": "X"}}]),
            _fragment("B", extra_choices=[{"index": 1, "delta": {"content": "Y"}}]),
        ])
        assert [c.message.content for c in merged.choices] == ["AB", "XY"]

    def test_extra_choice_appended(self):
        merged = _fold([
            _fragment("A"),
            _fragment("B", extra_choices=[{"index": 1, "delta": {"content": "X"}}]),
        ])
        assert len(merged.choices) == 2
        assert merged.choices[1].message.content == "X"

    def test_fragment_without_choices(self):
        usage_only = ChatResponse.from_dict({
            "choices": [],
            "usage": {"prompt_tokens": 4, "completion_tokens": 5, "total_tokens": 9},
        })
        merged = _fold([_fragment("hi", "stop"), usage_only])
        assert merged.choices[0].message.content == "hi"
        assert merged.usage.total_tokens == 9

    def test_error_adopted_first_writer_wins(self):
        err1 = ChatResponse.from_dict({"choices": [], "error": {"message": "overloaded", "code": 502}})
        err2 = ChatResponse.from_dict({"choices": [], "error": {"message": "other", "code": 500}})
        merged = _fold([_fragment("a"), err1, err2])
        assert merged.error_message == "overloaded"
        assert merged.code == 502


# ---------------------------------------------------------------------------
# Tool-call deltas
# ---------------------------------------------------------------------------

class TestToolCallDeltas:
    def test_arguments_concatenated_by_index(self):
        merged = _fold([
            _fragment(role="assistant", tool_calls=[{
                "index": 0, "id": "call_1", "type": "function",
                "function": {"name": "weather", "arguments": '{"ci'},
            }]),
            _fragment(tool_calls=[{"index": 0, "function": {"arguments": 'ty": "Oslo"}'}}]),
            _fragment(finish_reason="tool_calls"),
        ])
        calls = merged.choices[0].message.tool_calls
        assert len(calls) == 1
        assert calls[0].id == "call_1"
        assert calls[0].name == "weather"
        assert calls[0].arguments == '{"city": "Oslo"}'
        assert merged.choices[0].finish_reason == "tool_calls"

    def test_parallel_calls_kept_in_order(self):
        merged = _fold([
            _fragment(tool_calls=[
                {"index": 0, "id": "a", "function": {"name": "one", "arguments": "{}"}},
            ]),
            _fragment(tool_calls=[
                {"index": 1, "id": "b", "function": {"name": "two", "arguments": "{"}},
            ]),
            _fragment(tool_calls=[{"index": 1, "function": {"arguments": "}"}}]),
        ])
        calls = merged.choices[0].message.tool_calls
        assert [(c.id, c.name, c.arguments) for c in calls] == [
            ("a", "one", "{}"),
            ("b", "two", "{}"),
        ]
