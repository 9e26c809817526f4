"""Conversion between agentic messages and OpenAI Responses API items.

Input side: agentic messages become ``input`` item dicts accepted by
``client.responses.create``. Output side: ``Response`` objects (or their
``model_dump()``) become content blocks. The item id and status of every
output item are kept in ``ContentBlock.extra`` so that the assistant turn
can be replayed as input later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from connectors.schema import (
    AgenticMessage,
    AgenticResponseMeta,
    AgenticRoleType,
    AgenticToolChoice,
    AllowedTool,
    ContentBlock,
    ContentBlockType,
    TokenUsage,
    ToolChoice,
    ToolInfo,
)
from connectors.schema.agentic import (
    AssistantGenText,
    FunctionToolCall,
    MCPListToolsItem,
    MCPListToolsResult,
    MCPToolApprovalRequest,
    MCPToolCall,
    MCPToolCallError,
    MCPToolResult,
    Reasoning,
    ServerToolCall,
    ServerToolResult,
    TextAnnotation,
)
from connectors.schema.message import CompletionTokensDetails, PromptTokenDetails

from ...errors import ConfigError, VendorError

logger = logging.getLogger(__name__)

ITEM_ID_KEY = "item_id"
ITEM_STATUS_KEY = "item_status"

SERVER_TOOL_WEB_SEARCH = "web_search"

WEB_SEARCH_ACTION_SEARCH = "search"
WEB_SEARCH_ACTION_OPEN_PAGE = "open_page"
WEB_SEARCH_ACTION_FIND = "find"

_IMAGE_DETAILS = ("high", "low", "auto")


@dataclass
class WebSearchArguments:
    """Arguments of a ``web_search`` server tool call."""

    action_type: str
    query: str = ""
    url: str = ""
    pattern: str = ""


@dataclass
class WebSearchResult:
    action_type: str
    sources: list[str] = field(default_factory=list)


@dataclass
class ResponseMetaExtension:
    """Response-level fields of a Responses API call."""

    id: str = ""
    status: str = ""
    error: dict[str, Any] | None = None
    incomplete_details: dict[str, Any] | None = None
    previous_response_id: str = ""
    reasoning: dict[str, Any] | None = None
    service_tier: str = ""
    created_at: int = 0
    prompt_cache_retention: str = ""


def as_dict(obj: Any) -> dict[str, Any]:
    """Return SDK models as plain dicts; dicts pass through."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    raise TypeError(f"cannot convert {type(obj).__name__} to dict")


def get_item_id(block: ContentBlock) -> str:
    return str(block.extra.get(ITEM_ID_KEY) or "")


def get_item_status(block: ContentBlock) -> str:
    return str(block.extra.get(ITEM_STATUS_KEY) or "")


def set_item_meta(block: ContentBlock, item_id: str | None, status: str | None = None) -> ContentBlock:
    if item_id:
        block.extra[ITEM_ID_KEY] = item_id
    if status:
        block.extra[ITEM_STATUS_KEY] = status
    return block


def resolve_url(url: str, base64_data: str, mime_type: str) -> str:
    """Prefer ``url``; otherwise build a data URL from raw base64."""
    if url:
        return url
    if not mime_type:
        raise ConfigError("mimeType is required when using base64Data")
    if base64_data.startswith("data:"):
        raise ConfigError(
            "base64Data field must be a raw base64 string, but got a string with prefix 'data:'"
        )
    return f"data:{mime_type};base64,{base64_data}"


# ---------------------------------------------------------------------------
# Input conversion
# ---------------------------------------------------------------------------


def _text_item(role: str, text: str) -> dict[str, Any]:
    return {"type": "message", "role": role, "content": text}


def _image_item(role: str, block: ContentBlock) -> dict[str, Any]:
    image = block.payload
    detail = image.detail or "auto"
    if detail not in _IMAGE_DETAILS:
        raise ConfigError(f"invalid image detail: {image.detail}")
    part = {
        "type": "input_image",
        "image_url": resolve_url(image.url, image.base64_data, image.mime_type),
        "detail": detail,
    }
    return {"type": "message", "role": role, "content": [part]}


def _file_item(role: str, block: ContentBlock) -> dict[str, Any]:
    file = block.payload
    resolved = resolve_url(file.url, file.base64_data, file.mime_type)
    part: dict[str, Any] = {"type": "input_file"}
    if file.name:
        part["filename"] = file.name
    if file.url:
        part["file_url"] = resolved
    else:
        part["file_data"] = resolved
    return {"type": "message", "role": role, "content": [part]}


def _system_items(msg: AgenticMessage) -> list[dict[str, Any]]:
    items = []
    for block in msg.content_blocks:
        if block.type == ContentBlockType.USER_INPUT_TEXT:
            items.append(_text_item("system", block.payload.text))
        elif block.type == ContentBlockType.USER_INPUT_IMAGE:
            items.append(_image_item("system", block))
        else:
            raise ConfigError(f"invalid content block type '{block.type.value}' with system role")
    return items


def _user_items(msg: AgenticMessage) -> list[dict[str, Any]]:
    items = []
    for block in msg.content_blocks:
        payload = block.payload
        if block.type == ContentBlockType.USER_INPUT_TEXT:
            items.append(_text_item("user", payload.text))
        elif block.type == ContentBlockType.USER_INPUT_IMAGE:
            items.append(_image_item("user", block))
        elif block.type == ContentBlockType.USER_INPUT_FILE:
            items.append(_file_item("user", block))
        elif block.type == ContentBlockType.FUNCTION_TOOL_RESULT:
            items.append({"type": "function_call_output", "call_id": payload.call_id, "output": payload.result})
        elif block.type == ContentBlockType.MCP_TOOL_APPROVAL_RESPONSE:
            item = {
                "type": "mcp_approval_response",
                "approval_request_id": payload.approval_request_id,
                "approve": payload.approve,
            }
            if payload.reason:
                item["reason"] = payload.reason
            items.append(item)
        else:
            raise ConfigError(f"invalid content block type '{block.type.value}' with user role")
    return items


def _with_meta(item: dict[str, Any], block: ContentBlock, status: bool = True) -> dict[str, Any]:
    item_id = get_item_id(block)
    if item_id:
        item["id"] = item_id
    item_status = get_item_status(block)
    if status and item_status:
        item["status"] = item_status
    return item


def _annotation_to_param(annotation: TextAnnotation) -> dict[str, Any]:
    return {"type": annotation.type, **annotation.data}


def _gen_text_item(block: ContentBlock) -> dict[str, Any]:
    text: AssistantGenText = block.payload
    if text.refusal and not text.text:
        part: dict[str, Any] = {"type": "refusal", "refusal": text.refusal}
    else:
        part = {
            "type": "output_text",
            "text": text.text,
            "annotations": [_annotation_to_param(a) for a in text.annotations],
        }
    return _with_meta({"type": "message", "role": "assistant", "content": [part]}, block)


def _reasoning_item(block: ContentBlock) -> dict[str, Any]:
    reasoning: Reasoning = block.payload
    item: dict[str, Any] = {
        "type": "reasoning",
        "summary": [{"type": "summary_text", "text": reasoning.text}],
    }
    if reasoning.signature:
        item["encrypted_content"] = reasoning.signature
    return _with_meta(item, block)


def _function_call_item(block: ContentBlock) -> dict[str, Any]:
    call: FunctionToolCall = block.payload
    item = {"type": "function_call", "call_id": call.call_id, "name": call.name, "arguments": call.arguments}
    return _with_meta(item, block)


def _web_search_action(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, WebSearchArguments):
        if value.action_type == WEB_SEARCH_ACTION_SEARCH:
            return {"type": "search", "query": value.query}
        if value.action_type == WEB_SEARCH_ACTION_OPEN_PAGE:
            return {"type": "open_page", "url": value.url}
        if value.action_type == WEB_SEARCH_ACTION_FIND:
            return {"type": "find", "url": value.url, "pattern": value.pattern}
        raise ConfigError(f"invalid web search action type: {value.action_type}")
    if isinstance(value, WebSearchResult):
        if value.action_type != WEB_SEARCH_ACTION_SEARCH:
            raise ConfigError(f"invalid web search result action type: {value.action_type}")
        return {"type": "search", "sources": [{"type": "url", "url": url} for url in value.sources]}
    raise ConfigError(f"unsupported server tool payload: {type(value).__name__}")


def _server_tool_item(block: ContentBlock) -> dict[str, Any]:
    payload = block.payload
    name = payload.name or SERVER_TOOL_WEB_SEARCH
    if name != SERVER_TOOL_WEB_SEARCH:
        raise ConfigError(f"unsupported server tool: {name}")
    value = payload.arguments if block.type == ContentBlockType.SERVER_TOOL_CALL else payload.result
    item: dict[str, Any] = {"type": "web_search_call"}
    action = _web_search_action(value)
    if action is not None:
        item["action"] = action
    return _with_meta(item, block)


def _approval_request_item(block: ContentBlock) -> dict[str, Any]:
    req: MCPToolApprovalRequest = block.payload
    item = {
        "type": "mcp_approval_request",
        "id": get_item_id(block) or req.id,
        "server_label": req.server_label,
        "name": req.name,
        "arguments": req.arguments,
    }
    return item


def _list_tools_item(block: ContentBlock) -> dict[str, Any]:
    result: MCPListToolsResult = block.payload
    item: dict[str, Any] = {
        "type": "mcp_list_tools",
        "server_label": result.server_label,
        "tools": [
            {"name": t.name, "description": t.description, "input_schema": t.input_schema or {}}
            for t in result.tools
        ],
    }
    if result.error:
        item["error"] = result.error
    return _with_meta(item, block, status=False)


def _mcp_call_item(block: ContentBlock) -> dict[str, Any]:
    call: MCPToolCall = block.payload
    item = {
        "type": "mcp_call",
        "server_label": call.server_label,
        "name": call.name,
        "arguments": call.arguments,
    }
    if call.approval_request_id:
        item["approval_request_id"] = call.approval_request_id
    return _with_meta(item, block)


def _mcp_result_item(block: ContentBlock) -> dict[str, Any]:
    result: MCPToolResult = block.payload
    item: dict[str, Any] = {
        "type": "mcp_call",
        "server_label": result.server_label,
        "name": result.name,
        "output": result.result,
    }
    if result.error is not None and result.error.message:
        item["error"] = result.error.message
    return _with_meta(item, block)


_ASSISTANT_CONVERTERS = {
    ContentBlockType.ASSISTANT_GEN_TEXT: _gen_text_item,
    ContentBlockType.REASONING: _reasoning_item,
    ContentBlockType.FUNCTION_TOOL_CALL: _function_call_item,
    ContentBlockType.SERVER_TOOL_CALL: _server_tool_item,
    ContentBlockType.SERVER_TOOL_RESULT: _server_tool_item,
    ContentBlockType.MCP_TOOL_APPROVAL_REQUEST: _approval_request_item,
    ContentBlockType.MCP_LIST_TOOLS_RESULT: _list_tools_item,
    ContentBlockType.MCP_TOOL_CALL: _mcp_call_item,
    ContentBlockType.MCP_TOOL_RESULT: _mcp_result_item,
}


def _merge_web_search_action(action: dict[str, Any] | None, other: dict[str, Any] | None) -> dict[str, Any] | None:
    if action is None or other is None:
        return action or other
    if action.get("type") == "search" and other.get("type") == "search":
        merged = dict(action)
        if other.get("query"):
            merged["query"] = other["query"]
        if other.get("sources"):
            merged["sources"] = other["sources"]
        return merged
    return action


def _pair_items(items: list[dict[str, Any]], item_type: str, what: str) -> list[dict[str, Any]]:
    """Merge the call and result halves of ``item_type`` items sharing an id."""
    positions: dict[str, list[int]] = {}
    for i, item in enumerate(items):
        if item.get("type") != item_type:
            continue
        item_id = item.get("id")
        if not item_id:
            raise ConfigError(f"found {what} item with empty ID at index {i}")
        positions.setdefault(item_id, []).append(i)
    for item_id, indices in positions.items():
        if len(indices) != 2:
            raise ConfigError(
                f"{what} {item_id!r} should have exactly 2 items (call and result), but found {len(indices)}"
            )

    merged: list[dict[str, Any]] = []
    processed: set[int] = set()
    for i, item in enumerate(items):
        if i in processed:
            continue
        if item.get("type") != item_type:
            merged.append(item)
            continue
        first, second = positions[item["id"]]
        pair = items[second if first == i else first]
        combined = dict(item)
        for key, value in pair.items():
            if key == "action":
                action = _merge_web_search_action(item.get("action"), value)
                if action is not None:
                    combined["action"] = action
            elif value and not combined.get(key):
                combined[key] = value
        merged.append(combined)
        processed.update((first, second))
    return merged


def _assistant_items(msg: AgenticMessage) -> list[dict[str, Any]]:
    items = []
    for block in msg.content_blocks:
        convert = _ASSISTANT_CONVERTERS.get(block.type)
        if convert is None:
            raise ConfigError(f"invalid content block type '{block.type.value}' with assistant role")
        items.append(convert(block))
    items = _pair_items(items, "mcp_call", "MCP tool call")
    return _pair_items(items, "web_search_call", "server tool call")


def to_input_items(messages: Sequence[AgenticMessage]) -> list[dict[str, Any]]:
    """Convert agentic messages to Responses API input items."""
    items: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == AgenticRoleType.SYSTEM:
            items.extend(_system_items(msg))
        elif msg.role == AgenticRoleType.USER:
            items.extend(_user_items(msg))
        elif msg.role == AgenticRoleType.ASSISTANT:
            items.extend(_assistant_items(msg))
        else:
            raise ConfigError(f"invalid role in message: {msg.role}")
    return items


def to_function_tools(tools: Sequence[ToolInfo]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "name": tool.name,
            "description": tool.desc,
            "parameters": tool.to_json_schema(),
            "strict": False,
        }
        for tool in tools
    ]


def _allowed_tool(tool: AllowedTool) -> dict[str, Any]:
    if tool.function_name:
        return {"type": "function", "name": tool.function_name}
    if tool.mcp_tool is not None:
        out = {"type": "mcp", "server_label": tool.mcp_tool.server_label}
        if tool.mcp_tool.name:
            out["name"] = tool.mcp_tool.name
        return out
    if tool.server_tool_name:
        return {"type": tool.server_tool_name}
    raise ConfigError("allowed tool must name a function, an MCP tool or a server tool")


def to_tool_choice(choice: AgenticToolChoice | None) -> Any:
    """Map an agentic tool choice to the Responses ``tool_choice`` field."""
    if choice is None:
        return None
    kind = ToolChoice(choice.type)
    if kind == ToolChoice.FORBIDDEN:
        return "none"
    if kind == ToolChoice.ALLOWED:
        if choice.tools is None:
            return "auto"
        return {"type": "allowed_tools", "mode": "auto", "tools": [_allowed_tool(t) for t in choice.tools]}
    if kind == ToolChoice.FORCED:
        if choice.tools is None:
            return "required"
        return {"type": "allowed_tools", "mode": "required", "tools": [_allowed_tool(t) for t in choice.tools]}
    raise ConfigError(f"invalid tool choice: {choice.type}")


# ---------------------------------------------------------------------------
# Output conversion
# ---------------------------------------------------------------------------


def annotation_from_dict(raw: dict[str, Any], index: int = 0) -> TextAnnotation:
    anno_type = raw.get("type") or ""
    if anno_type not in ("file_citation", "url_citation", "container_file_citation", "file_path"):
        raise VendorError(f"invalid annotation type: {anno_type}")
    data = {k: v for k, v in raw.items() if k != "type" and v is not None}
    return TextAnnotation(type=anno_type, index=index, data=data)


def output_message_blocks(item: dict[str, Any]) -> list[ContentBlock]:
    blocks = []
    for content in item.get("content") or []:
        kind = content.get("type")
        if kind == "output_text":
            annotations = [annotation_from_dict(a, i) for i, a in enumerate(content.get("annotations") or [])]
            block = ContentBlock.of(AssistantGenText(text=content.get("text") or "", annotations=annotations))
        elif kind == "refusal":
            block = ContentBlock.of(AssistantGenText(refusal=content.get("refusal") or ""))
        else:
            raise VendorError(f"invalid output message content type: {kind}")
        blocks.append(set_item_meta(block, item.get("id"), item.get("status")))
    return blocks


def reasoning_block(item: dict[str, Any]) -> ContentBlock:
    text = "\n".join(s.get("text") or "" for s in item.get("summary") or [])
    reasoning = Reasoning(text=text, signature=item.get("encrypted_content") or "")
    return set_item_meta(ContentBlock.of(reasoning), item.get("id"), item.get("status"))


def function_call_block(item: dict[str, Any]) -> ContentBlock:
    call = FunctionToolCall(
        call_id=item.get("call_id") or "",
        name=item.get("name") or "",
        arguments=item.get("arguments") or "",
    )
    return set_item_meta(ContentBlock.of(call), item.get("id"), item.get("status"))


def web_search_blocks(item: dict[str, Any]) -> list[ContentBlock]:
    """Split a ``web_search_call`` item into call and result blocks."""
    action = item.get("action") or {}
    kind = action.get("type")
    result = None
    if kind == WEB_SEARCH_ACTION_SEARCH:
        args = WebSearchArguments(action_type=kind, query=action.get("query") or "")
        result = WebSearchResult(
            action_type=kind,
            sources=[s.get("url") or "" for s in action.get("sources") or []],
        )
    elif kind == WEB_SEARCH_ACTION_OPEN_PAGE:
        args = WebSearchArguments(action_type=kind, url=action.get("url") or "")
    elif kind == WEB_SEARCH_ACTION_FIND:
        args = WebSearchArguments(action_type=kind, url=action.get("url") or "", pattern=action.get("pattern") or "")
    else:
        raise VendorError(f"invalid web search action type: {kind}")

    call = ContentBlock.of(ServerToolCall(name=SERVER_TOOL_WEB_SEARCH, arguments=args))
    res = ContentBlock.of(ServerToolResult(name=SERVER_TOOL_WEB_SEARCH, result=result))
    return [
        set_item_meta(call, item.get("id"), item.get("status")),
        set_item_meta(res, item.get("id"), item.get("status")),
    ]


def mcp_call_blocks(item: dict[str, Any]) -> list[ContentBlock]:
    call = ContentBlock.of(
        MCPToolCall(
            server_label=item.get("server_label") or "",
            approval_request_id=item.get("approval_request_id") or "",
            name=item.get("name") or "",
            arguments=item.get("arguments") or "",
        )
    )
    error = MCPToolCallError(message=item["error"]) if item.get("error") else None
    result = ContentBlock.of(
        MCPToolResult(
            server_label=item.get("server_label") or "",
            name=item.get("name") or "",
            result=item.get("output") or "",
            error=error,
        )
    )
    return [
        set_item_meta(call, item.get("id"), item.get("status")),
        set_item_meta(result, item.get("id"), item.get("status")),
    ]


def mcp_list_tools_block(item: dict[str, Any]) -> ContentBlock:
    tools = [
        MCPListToolsItem(
            name=t.get("name") or "",
            description=t.get("description") or "",
            input_schema=t.get("input_schema"),
        )
        for t in item.get("tools") or []
    ]
    result = MCPListToolsResult(server_label=item.get("server_label") or "", tools=tools, error=item.get("error") or "")
    return set_item_meta(ContentBlock.of(result), item.get("id"))


def mcp_approval_request_block(item: dict[str, Any]) -> ContentBlock:
    req = MCPToolApprovalRequest(
        id=item.get("id") or "",
        name=item.get("name") or "",
        arguments=item.get("arguments") or "",
        server_label=item.get("server_label") or "",
    )
    return set_item_meta(ContentBlock.of(req), item.get("id"))


def output_item_blocks(item: dict[str, Any]) -> list[ContentBlock]:
    kind = item.get("type")
    if kind == "reasoning":
        return [reasoning_block(item)]
    if kind == "message":
        return output_message_blocks(item)
    if kind == "function_call":
        return [function_call_block(item)]
    if kind == "mcp_list_tools":
        return [mcp_list_tools_block(item)]
    if kind == "mcp_call":
        return mcp_call_blocks(item)
    if kind == "mcp_approval_request":
        return [mcp_approval_request_block(item)]
    if kind == "web_search_call":
        return web_search_blocks(item)
    raise VendorError(f"invalid output item type: {kind}")


def to_token_usage(raw: dict[str, Any] | None) -> TokenUsage | None:
    if not raw:
        return None
    input_details = raw.get("input_tokens_details") or {}
    output_details = raw.get("output_tokens_details") or {}
    return TokenUsage(
        prompt_tokens=int(raw.get("input_tokens") or 0),
        completion_tokens=int(raw.get("output_tokens") or 0),
        total_tokens=int(raw.get("total_tokens") or 0),
        prompt_token_details=PromptTokenDetails(cached_tokens=int(input_details.get("cached_tokens") or 0)),
        completion_tokens_details=CompletionTokensDetails(
            reasoning_tokens=int(output_details.get("reasoning_tokens") or 0)
        ),
    )


def to_response_meta(resp: Any) -> AgenticResponseMeta:
    data = as_dict(resp)
    error = data.get("error") or None
    incomplete = data.get("incomplete_details") or None
    extension = ResponseMetaExtension(
        id=data.get("id") or "",
        status=data.get("status") or "",
        error=error if error and (error.get("code") or error.get("message")) else None,
        incomplete_details=incomplete if incomplete and incomplete.get("reason") else None,
        previous_response_id=data.get("previous_response_id") or "",
        reasoning=data.get("reasoning") or None,
        service_tier=data.get("service_tier") or "",
        created_at=int(data.get("created_at") or 0),
        prompt_cache_retention=data.get("prompt_cache_retention") or "",
    )
    return AgenticResponseMeta(token_usage=to_token_usage(data.get("usage")), extension=extension)


def to_output_message(resp: Any) -> AgenticMessage:
    """Convert a complete ``Response`` into an assistant agentic message."""
    data = as_dict(resp)
    blocks: list[ContentBlock] = []
    for item in data.get("output") or []:
        blocks.extend(output_item_blocks(item))
    return AgenticMessage(role=AgenticRoleType.ASSISTANT, content_blocks=blocks, response_meta=to_response_meta(data))


__all__ = [
    "ITEM_ID_KEY",
    "ITEM_STATUS_KEY",
    "SERVER_TOOL_WEB_SEARCH",
    "ResponseMetaExtension",
    "WebSearchArguments",
    "WebSearchResult",
    "as_dict",
    "get_item_id",
    "get_item_status",
    "resolve_url",
    "to_function_tools",
    "to_input_items",
    "to_output_message",
    "to_response_meta",
    "to_tool_choice",
]
