"""Chat message model and streaming chunk concatenation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable


class RoleType(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ChatMessagePartType(str, Enum):
    TEXT = "text"
    IMAGE_URL = "image_url"
    AUDIO_URL = "audio_url"
    VIDEO_URL = "video_url"
    FILE_URL = "file_url"


@dataclass
class MediaURL:
    """URL (or Base64 data) of an image/audio/video/file part."""

    url: str = ""
    uri: str = ""
    mime_type: str = ""
    detail: str = ""


@dataclass
class ChatMessagePart:
    type: ChatMessagePartType
    text: str = ""
    image_url: MediaURL | None = None
    audio_url: MediaURL | None = None
    video_url: MediaURL | None = None
    file_url: MediaURL | None = None


@dataclass
class FunctionCall:
    name: str = ""
    arguments: str = ""


@dataclass
class ToolCall:
    """A tool call requested by the model.

    ``index`` identifies the call across stream chunks; chunks with the same
    index are merged by :func:`concat_messages`.
    """

    id: str = ""
    function: FunctionCall = field(default_factory=FunctionCall)
    type: str = "function"
    index: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class PromptTokenDetails:
    cached_tokens: int = 0


@dataclass
class CompletionTokensDetails:
    reasoning_tokens: int = 0


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    prompt_token_details: PromptTokenDetails = field(default_factory=PromptTokenDetails)
    completion_tokens_details: CompletionTokensDetails = field(default_factory=CompletionTokensDetails)


@dataclass
class ResponseMeta:
    finish_reason: str = ""
    usage: TokenUsage | None = None


@dataclass
class Message:
    role: RoleType
    content: str = ""
    multi_content: list[ChatMessagePart] = field(default_factory=list)
    name: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str = ""
    tool_name: str = ""
    reasoning_content: str = ""
    response_meta: ResponseMeta | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=RoleType.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=RoleType.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role=RoleType.ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, content: str, tool_call_id: str, tool_name: str = "") -> "Message":
        return cls(role=RoleType.TOOL, content=content, tool_call_id=tool_call_id, tool_name=tool_name)


# Per-key merge functions for ``Message.extra`` values, registered by adapters
# that put non-trivial objects in ``extra``.
_EXTRA_CONCAT_FUNCS: dict[str, Callable[[list[Any]], Any]] = {}


def register_extra_concat(key: str, func: Callable[[list[Any]], Any]) -> None:
    """Register how chunk values stored under ``extra[key]`` are merged."""
    _EXTRA_CONCAT_FUNCS[key] = func


def _concat_extra(chunks: list[dict[str, Any]]) -> dict[str, Any]:
    values: dict[str, list[Any]] = {}
    for extra in chunks:
        for key, value in extra.items():
            values.setdefault(key, []).append(value)
    merged: dict[str, Any] = {}
    for key, items in values.items():
        func = _EXTRA_CONCAT_FUNCS.get(key)
        merged[key] = func(items) if func else items[-1]
    return merged


def _concat_tool_calls(chunks: Iterable[ToolCall]) -> list[ToolCall]:
    merged: list[ToolCall] = []
    by_index: dict[int, ToolCall] = {}
    for call in chunks:
        if call.index is None:
            merged.append(call)
            continue
        current = by_index.get(call.index)
        if current is None:
            current = ToolCall(
                id=call.id,
                function=FunctionCall(name=call.function.name, arguments=call.function.arguments),
                type=call.type,
                index=call.index,
                extra=dict(call.extra),
            )
            by_index[call.index] = current
            merged.append(current)
            continue
        if call.id and not current.id:
            current.id = call.id
        if call.function.name and not current.function.name:
            current.function.name = call.function.name
        if call.type and not current.type:
            current.type = call.type
        current.function.arguments += call.function.arguments
        current.extra.update(call.extra)
    return merged


def _concat_usage(usages: list[TokenUsage]) -> TokenUsage | None:
    if not usages:
        return None
    out = TokenUsage()
    for usage in usages:
        out.prompt_tokens = max(out.prompt_tokens, usage.prompt_tokens)
        out.completion_tokens = max(out.completion_tokens, usage.completion_tokens)
        out.total_tokens = max(out.total_tokens, usage.total_tokens)
        out.prompt_token_details.cached_tokens = max(
            out.prompt_token_details.cached_tokens, usage.prompt_token_details.cached_tokens
        )
        out.completion_tokens_details.reasoning_tokens = max(
            out.completion_tokens_details.reasoning_tokens,
            usage.completion_tokens_details.reasoning_tokens,
        )
    return out


def concat_messages(chunks: list[Message]) -> Message:
    """Merge streamed message chunks into one message.

    Raises:
        ValueError: If the chunk list is empty or the chunks disagree on
            role, name or tool call id.
    """
    chunks = [c for c in chunks if c is not None]
    if not chunks:
        raise ValueError("no messages to concat")

    role = None
    name = ""
    tool_call_id = ""
    tool_name = ""
    contents: list[str] = []
    reasoning: list[str] = []
    multi_content: list[ChatMessagePart] = []
    tool_calls: list[ToolCall] = []
    usages: list[TokenUsage] = []
    finish_reason = ""
    extras: list[dict[str, Any]] = []

    for chunk in chunks:
        if chunk.role:
            if role is None:
                role = chunk.role
            elif role != chunk.role:
                raise ValueError(f"cannot concat messages with different roles: '{role}' '{chunk.role}'")
        if chunk.name:
            if name and name != chunk.name:
                raise ValueError(f"cannot concat messages with different names: '{name}' '{chunk.name}'")
            name = chunk.name
        if chunk.tool_call_id:
            if tool_call_id and tool_call_id != chunk.tool_call_id:
                raise ValueError(
                    f"cannot concat messages with different tool call ids: '{tool_call_id}' '{chunk.tool_call_id}'"
                )
            tool_call_id = chunk.tool_call_id
        if chunk.tool_name:
            tool_name = chunk.tool_name
        contents.append(chunk.content)
        reasoning.append(chunk.reasoning_content)
        multi_content.extend(chunk.multi_content)
        tool_calls.extend(chunk.tool_calls)
        if chunk.response_meta is not None:
            if chunk.response_meta.finish_reason:
                finish_reason = chunk.response_meta.finish_reason
            if chunk.response_meta.usage is not None:
                usages.append(chunk.response_meta.usage)
        if chunk.extra:
            extras.append(chunk.extra)

    meta = None
    usage = _concat_usage(usages)
    if finish_reason or usage is not None:
        meta = ResponseMeta(finish_reason=finish_reason, usage=usage)

    return Message(
        role=role or RoleType.ASSISTANT,
        content="".join(contents),
        multi_content=multi_content,
        name=name,
        tool_calls=_concat_tool_calls(tool_calls),
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        reasoning_content="".join(reasoning),
        response_meta=meta,
        extra=_concat_extra(extras),
    )


__all__ = [
    "RoleType",
    "ChatMessagePartType",
    "MediaURL",
    "ChatMessagePart",
    "FunctionCall",
    "ToolCall",
    "PromptTokenDetails",
    "CompletionTokensDetails",
    "TokenUsage",
    "ResponseMeta",
    "Message",
    "register_extra_concat",
    "concat_messages",
]
