"""Agentic messages: role plus a list of typed content blocks.

Agentic chat models (e.g. the OpenAI Responses API) produce output items that
do not fit the plain :class:`~connectors.schema.message.Message` shape:
reasoning summaries, server-side tool calls, MCP calls and approvals. Each of
those becomes one :class:`ContentBlock`. When streaming, every block chunk
carries a :class:`StreamingMeta` index and :func:`concat_agentic_messages`
merges chunks sharing the same index.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from .message import TokenUsage
from .tool import ToolChoice


class AgenticRoleType(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ContentBlockType(str, Enum):
    USER_INPUT_TEXT = "user_input_text"
    USER_INPUT_IMAGE = "user_input_image"
    USER_INPUT_FILE = "user_input_file"
    ASSISTANT_GEN_TEXT = "assistant_gen_text"
    REASONING = "reasoning"
    FUNCTION_TOOL_CALL = "function_tool_call"
    FUNCTION_TOOL_RESULT = "function_tool_result"
    SERVER_TOOL_CALL = "server_tool_call"
    SERVER_TOOL_RESULT = "server_tool_result"
    MCP_TOOL_CALL = "mcp_tool_call"
    MCP_TOOL_RESULT = "mcp_tool_result"
    MCP_LIST_TOOLS_RESULT = "mcp_list_tools_result"
    MCP_TOOL_APPROVAL_REQUEST = "mcp_tool_approval_request"
    MCP_TOOL_APPROVAL_RESPONSE = "mcp_tool_approval_response"


@dataclass
class UserInputText:
    text: str = ""


@dataclass
class UserInputImage:
    url: str = ""
    base64_data: str = ""
    mime_type: str = ""
    detail: str = ""


@dataclass
class UserInputFile:
    url: str = ""
    name: str = ""
    base64_data: str = ""
    mime_type: str = ""


@dataclass
class TextAnnotation:
    """A citation attached to generated text.

    ``index`` orders annotations within one text block; ``data`` keeps the
    vendor fields (file_id, url, start_index, ...).
    """

    type: str
    index: int = 0
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class AssistantGenText:
    text: str = ""
    refusal: str = ""
    annotations: list[TextAnnotation] = field(default_factory=list)


@dataclass
class Reasoning:
    text: str = ""
    signature: str = ""


@dataclass
class FunctionToolCall:
    call_id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class FunctionToolResult:
    call_id: str = ""
    name: str = ""
    result: str = ""


@dataclass
class ServerToolCall:
    name: str = ""
    call_id: str = ""
    arguments: Any = None


@dataclass
class ServerToolResult:
    name: str = ""
    call_id: str = ""
    result: Any = None


@dataclass
class MCPToolCall:
    server_label: str = ""
    approval_request_id: str = ""
    call_id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class MCPToolCallError:
    code: int | None = None
    message: str = ""


@dataclass
class MCPToolResult:
    server_label: str = ""
    call_id: str = ""
    name: str = ""
    result: str = ""
    error: MCPToolCallError | None = None


@dataclass
class MCPListToolsItem:
    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] | None = None


@dataclass
class MCPListToolsResult:
    server_label: str = ""
    tools: list[MCPListToolsItem] = field(default_factory=list)
    error: str = ""


@dataclass
class MCPToolApprovalRequest:
    id: str = ""
    name: str = ""
    arguments: str = ""
    server_label: str = ""


@dataclass
class MCPToolApprovalResponse:
    approval_request_id: str = ""
    approve: bool = False
    reason: str = ""


_PAYLOAD_TYPES: dict[type, ContentBlockType] = {
    UserInputText: ContentBlockType.USER_INPUT_TEXT,
    UserInputImage: ContentBlockType.USER_INPUT_IMAGE,
    UserInputFile: ContentBlockType.USER_INPUT_FILE,
    AssistantGenText: ContentBlockType.ASSISTANT_GEN_TEXT,
    Reasoning: ContentBlockType.REASONING,
    FunctionToolCall: ContentBlockType.FUNCTION_TOOL_CALL,
    FunctionToolResult: ContentBlockType.FUNCTION_TOOL_RESULT,
    ServerToolCall: ContentBlockType.SERVER_TOOL_CALL,
    ServerToolResult: ContentBlockType.SERVER_TOOL_RESULT,
    MCPToolCall: ContentBlockType.MCP_TOOL_CALL,
    MCPToolResult: ContentBlockType.MCP_TOOL_RESULT,
    MCPListToolsResult: ContentBlockType.MCP_LIST_TOOLS_RESULT,
    MCPToolApprovalRequest: ContentBlockType.MCP_TOOL_APPROVAL_REQUEST,
    MCPToolApprovalResponse: ContentBlockType.MCP_TOOL_APPROVAL_RESPONSE,
}


@dataclass
class StreamingMeta:
    index: int


@dataclass
class ContentBlock:
    """One typed block of an agentic message.

    Use :meth:`of` to build a block from its payload; ``type`` is derived
    from the payload class.
    """

    type: ContentBlockType
    payload: Any
    streaming_meta: StreamingMeta | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, payload: Any, streaming_meta: StreamingMeta | None = None) -> "ContentBlock":
        block_type = _PAYLOAD_TYPES.get(type(payload))
        if block_type is None:
            raise TypeError(f"unsupported content block payload: {type(payload).__name__}")
        return cls(type=block_type, payload=payload, streaming_meta=streaming_meta)

    @classmethod
    def chunk(cls, payload: Any, index: int) -> "ContentBlock":
        return cls.of(payload, StreamingMeta(index=index))


@dataclass
class AgenticResponseMeta:
    token_usage: TokenUsage | None = None
    extension: Any = None


@dataclass
class AgenticMessage:
    role: AgenticRoleType
    content_blocks: list[ContentBlock] = field(default_factory=list)
    response_meta: AgenticResponseMeta | None = None

    @classmethod
    def system(cls, text: str) -> "AgenticMessage":
        return cls(role=AgenticRoleType.SYSTEM, content_blocks=[ContentBlock.of(UserInputText(text=text))])

    @classmethod
    def user(cls, text: str) -> "AgenticMessage":
        return cls(role=AgenticRoleType.USER, content_blocks=[ContentBlock.of(UserInputText(text=text))])


@dataclass
class MCPAllowedTool:
    server_label: str
    name: str = ""


@dataclass
class AllowedTool:
    """Exactly one of the fields identifies the tool."""

    function_name: str = ""
    mcp_tool: MCPAllowedTool | None = None
    server_tool_name: str = ""


@dataclass
class AgenticToolChoice:
    type: ToolChoice
    tools: list[AllowedTool] | None = None


def _first(values: list[Any]) -> Any:
    for value in values:
        if value:
            return value
    return values[0] if values else None


def _last(values: list[Any]) -> Any:
    for value in reversed(values):
        if value:
            return value
    return values[-1] if values else None


def _single(values: list[Any], what: str) -> Any:
    present = [v for v in values if v is not None]
    if len(present) > 1:
        raise ValueError(f"cannot concat multiple {what}")
    return present[0] if present else None


def _concat_payloads(block_type: ContentBlockType, payloads: list[Any]) -> Any:
    if block_type == ContentBlockType.ASSISTANT_GEN_TEXT:
        annotations: dict[int, TextAnnotation] = {}
        for p in payloads:
            for anno in p.annotations:
                annotations[anno.index] = anno
        return AssistantGenText(
            text="".join(p.text for p in payloads),
            refusal="".join(p.refusal for p in payloads),
            annotations=[annotations[i] for i in sorted(annotations)],
        )
    if block_type == ContentBlockType.REASONING:
        return Reasoning(
            text="".join(p.text for p in payloads),
            signature=_last([p.signature for p in payloads]),
        )
    if block_type == ContentBlockType.FUNCTION_TOOL_CALL:
        return FunctionToolCall(
            call_id=_first([p.call_id for p in payloads]),
            name=_first([p.name for p in payloads]),
            arguments="".join(p.arguments for p in payloads),
        )
    if block_type == ContentBlockType.SERVER_TOOL_CALL:
        return ServerToolCall(
            name=_first([p.name for p in payloads]),
            call_id=_first([p.call_id for p in payloads]),
            arguments=_single([p.arguments for p in payloads], "server tool call arguments"),
        )
    if block_type == ContentBlockType.SERVER_TOOL_RESULT:
        return ServerToolResult(
            name=_first([p.name for p in payloads]),
            call_id=_first([p.call_id for p in payloads]),
            result=_single([p.result for p in payloads], "server tool results"),
        )
    if block_type == ContentBlockType.MCP_TOOL_CALL:
        return MCPToolCall(
            server_label=_first([p.server_label for p in payloads]),
            approval_request_id=_first([p.approval_request_id for p in payloads]),
            call_id=_first([p.call_id for p in payloads]),
            name=_first([p.name for p in payloads]),
            arguments="".join(p.arguments for p in payloads),
        )
    if block_type == ContentBlockType.MCP_LIST_TOOLS_RESULT:
        return MCPListToolsResult(
            server_label=_first([p.server_label for p in payloads]),
            tools=_last([p.tools for p in payloads]) or [],
            error=_last([p.error for p in payloads]),
        )
    # Remaining payloads are never split across chunks; merge field by field.
    cls = type(payloads[0])
    merged = {f.name: _last([getattr(p, f.name) for p in payloads]) for f in fields(cls)}
    return cls(**merged)


def concat_agentic_messages(chunks: list[AgenticMessage]) -> AgenticMessage:
    """Merge streamed agentic message chunks.

    Blocks are grouped by ``streaming_meta.index`` and returned in index
    order; blocks without streaming meta are appended as-is.

    Raises:
        ValueError: On an empty chunk list, conflicting roles or block types.
    """
    chunks = [c for c in chunks if c is not None]
    if not chunks:
        raise ValueError("no agentic messages to concat")

    role = chunks[0].role
    indexed: dict[int, list[ContentBlock]] = {}
    plain: list[ContentBlock] = []
    usages: list[TokenUsage] = []
    extension = None

    for chunk in chunks:
        if chunk.role != role:
            raise ValueError(f"cannot concat agentic messages with different roles: '{role}' '{chunk.role}'")
        for block in chunk.content_blocks:
            if block.streaming_meta is None:
                plain.append(block)
            else:
                indexed.setdefault(block.streaming_meta.index, []).append(block)
        if chunk.response_meta is not None:
            if chunk.response_meta.token_usage is not None:
                usages.append(chunk.response_meta.token_usage)
            if chunk.response_meta.extension is not None:
                extension = chunk.response_meta.extension

    blocks: list[ContentBlock] = []
    for index in sorted(indexed):
        group = indexed[index]
        block_type = group[0].type
        for block in group[1:]:
            if block.type != block_type:
                raise ValueError(
                    f"cannot concat content blocks of different types at index {index}: "
                    f"'{block_type.value}' '{block.type.value}'"
                )
        extra: dict[str, Any] = {}
        for block in group:
            extra.update(block.extra)
        blocks.append(
            ContentBlock(
                type=block_type,
                payload=_concat_payloads(block_type, [b.payload for b in group]),
                streaming_meta=StreamingMeta(index=index),
                extra=extra,
            )
        )
    blocks.extend(plain)

    meta = None
    if usages or extension is not None:
        usage = None
        if usages:
            usage = TokenUsage()
            for u in usages:
                usage.prompt_tokens = max(usage.prompt_tokens, u.prompt_tokens)
                usage.completion_tokens = max(usage.completion_tokens, u.completion_tokens)
                usage.total_tokens = max(usage.total_tokens, u.total_tokens)
                usage.prompt_token_details.cached_tokens = max(
                    usage.prompt_token_details.cached_tokens, u.prompt_token_details.cached_tokens
                )
                usage.completion_tokens_details.reasoning_tokens = max(
                    usage.completion_tokens_details.reasoning_tokens,
                    u.completion_tokens_details.reasoning_tokens,
                )
        meta = AgenticResponseMeta(token_usage=usage, extension=extension)

    return AgenticMessage(role=role, content_blocks=blocks, response_meta=meta)


__all__ = [
    "AgenticRoleType",
    "ContentBlockType",
    "UserInputText",
    "UserInputImage",
    "UserInputFile",
    "TextAnnotation",
    "AssistantGenText",
    "Reasoning",
    "FunctionToolCall",
    "FunctionToolResult",
    "ServerToolCall",
    "ServerToolResult",
    "MCPToolCall",
    "MCPToolCallError",
    "MCPToolResult",
    "MCPListToolsItem",
    "MCPListToolsResult",
    "MCPToolApprovalRequest",
    "MCPToolApprovalResponse",
    "StreamingMeta",
    "ContentBlock",
    "AgenticResponseMeta",
    "AgenticMessage",
    "MCPAllowedTool",
    "AllowedTool",
    "AgenticToolChoice",
    "concat_agentic_messages",
]
