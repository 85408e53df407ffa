"""Fold streamed chat-completion fragments into one cumulative response.

Providers stream a completion as a sequence of ``chat.completion.chunk``
objects whose choices carry ``delta`` messages.  ``merge_response`` folds
them, one at a time, into a response whose choices carry full ``message``
objects, as a non-streaming call would have returned.
"""

from __future__ import annotations

import dataclasses

from chatwire.types import ChatResponse, Choice, Message, ToolCall

DONE_SENTINEL = "[DONE]"

_CHUNK_SUFFIX = ".chunk"


def _merge_tool_calls(
    base: tuple[ToolCall, ...],
    deltas: tuple[ToolCall, ...],
) -> tuple[ToolCall, ...]:
    """Fold tool-call deltas into *base*, matching on ``index``.

    The first delta for an index carries its id and name; later ones only
    carry argument fragments to concatenate.
    """
    if not deltas:
        return base
    merged = list(base)
    for delta in deltas:
        for pos, call in enumerate(merged):
            if call.index == delta.index:
                merged[pos] = dataclasses.replace(
                    call,
                    id=call.id or delta.id,
                    name=call.name or delta.name,
                    arguments=call.arguments + delta.arguments,
                )
                break
        else:
            merged.append(delta)
    return tuple(merged)


def _start_choice(choice: Choice) -> Choice:
    delta = choice.delta or Message(role="assistant")
    message = dataclasses.replace(
        delta,
        role=delta.role or "assistant",
        tool_calls=_merge_tool_calls((), delta.tool_calls),
    )
    return dataclasses.replace(choice, message=message, delta=None)


def _extend_choice(base: Choice, update: Choice) -> Choice:
    message = base.message or Message(role="assistant")
    if update.delta is not None:
        message = dataclasses.replace(
            message,
            content=message.content + update.delta.content,
            tool_calls=_merge_tool_calls(message.tool_calls, update.delta.tool_calls),
        )
    return dataclasses.replace(
        base,
        message=message,
        finish_reason=base.finish_reason or update.finish_reason,
    )


def merge_response(base: ChatResponse | None, update: ChatResponse) -> ChatResponse:
    """Return the fold of *base* with the fragment *update*.

    Neither argument is modified.  Once a choice has a finish reason,
    later fragments cannot change it; usage and errors are likewise taken
    from the first fragment that supplies them.
    """
    if base is None:
        obj = update.object
        if obj.endswith(_CHUNK_SUFFIX):
            obj = obj[: -len(_CHUNK_SUFFIX)]
        usage = update.usage
        if usage is not None:
            usage = dataclasses.replace(usage)
        return dataclasses.replace(
            update,
            object=obj,
            choices=[_start_choice(c) for c in update.choices],
            usage=usage,
        )

    choices = list(base.choices)
    for pos, choice in enumerate(update.choices):
        if pos < len(choices):
            choices[pos] = _extend_choice(choices[pos], choice)
        else:
            choices.append(_start_choice(choice))

    merged = dataclasses.replace(base, choices=choices)
    if merged.usage is None and update.usage is not None:
        merged.usage = dataclasses.replace(update.usage)
    if not merged.has_error and update.has_error:
        merged.error_message = update.error_message
        merged.code = update.code
    return merged
