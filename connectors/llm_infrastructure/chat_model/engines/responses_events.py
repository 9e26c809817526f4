"""Streaming event converter for the OpenAI Responses API.

Each server-sent event becomes at most a few content-block chunks. Chunks
belonging to the same logical block share a ``StreamingMeta.index`` that is
allocated from a key such as ``assistant_gen_text:<output>:<content>``, so
``concat_agentic_messages`` over the emitted chunks rebuilds the message a
non-streaming call would return.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator

from connectors.schema import AgenticMessage, AgenticRoleType, ContentBlock, StreamingMeta
from connectors.schema.agentic import (
    AssistantGenText,
    FunctionToolCall,
    MCPListToolsResult,
    MCPToolCall,
    Reasoning,
    ServerToolCall,
)

from ...errors import VendorError
from .responses_converter import (
    SERVER_TOOL_WEB_SEARCH,
    annotation_from_dict,
    as_dict,
    function_call_block,
    mcp_approval_request_block,
    mcp_call_blocks,
    mcp_list_tools_block,
    reasoning_block,
    set_item_meta,
    to_response_meta,
    web_search_blocks,
)

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_SEARCHING = "searching"

_RESPONSE_EVENTS = {
    "response.created",
    "response.in_progress",
    "response.completed",
    "response.incomplete",
    "response.failed",
}

# Events whose content already arrived through the matching delta events.
_SKIPPED_EVENTS = {
    "response.output_text.done",
    "response.reasoning_summary_part.added",
    "response.reasoning_summary_part.done",
    "response.reasoning_summary_text.done",
    "response.function_call_arguments.done",
    "response.mcp_call_arguments.done",
    "response.refusal.done",
}

_MCP_LIST_TOOLS_PHASES = {
    "response.mcp_list_tools.in_progress": STATUS_IN_PROGRESS,
    "response.mcp_list_tools.failed": STATUS_FAILED,
    "response.mcp_list_tools.completed": STATUS_COMPLETED,
}

_MCP_CALL_PHASES = {
    "response.mcp_call.in_progress": STATUS_IN_PROGRESS,
    "response.mcp_call.completed": STATUS_COMPLETED,
    "response.mcp_call.failed": STATUS_FAILED,
}

_WEB_SEARCH_PHASES = {
    "response.web_search_call.in_progress": STATUS_IN_PROGRESS,
    "response.web_search_call.searching": STATUS_SEARCHING,
    "response.web_search_call.completed": STATUS_COMPLETED,
}


def gen_text_key(output_index: int, content_index: int) -> str:
    return f"assistant_gen_text:{output_index}:{content_index}"


def reasoning_key(output_index: int) -> str:
    return f"reasoning:{output_index}"


def function_call_key(output_index: int) -> str:
    return f"function_tool_call:{output_index}"


def server_tool_call_key(output_index: int) -> str:
    return f"server_tool_call:{output_index}"


def server_tool_result_key(output_index: int) -> str:
    return f"server_tool_result:{output_index}"


def mcp_list_tools_key(output_index: int) -> str:
    return f"mcp_list_tools_result:{output_index}"


def mcp_approval_request_key(output_index: int) -> str:
    return f"mcp_tool_approval_request:{output_index}"


def mcp_tool_call_key(output_index: int) -> str:
    return f"mcp_tool_call:{output_index}"


def mcp_tool_result_key(output_index: int) -> str:
    return f"mcp_tool_result:{output_index}"


class StreamReceiver:
    """Stateful converter from Responses stream events to message chunks."""

    def __init__(self) -> None:
        self.max_block_index = -1
        self.index_mapper: dict[str, int] = {}
        # item id -> block indexes of text parts not yet closed
        self.open_text_blocks: dict[str, set[int]] = {}
        self.max_summary_index: dict[int, int] = {}
        self.summary_index_mapper: dict[str, int] = {}
        self.max_annotation_index: dict[str, int] = {}
        self.annotation_index_mapper: dict[str, int] = {}
        self.added_items: dict[str, dict[str, Any]] = {}
        # the done item repeats arguments already sent as deltas
        self.streamed_arguments: set[str] = set()

    def block_index(self, key: str) -> int:
        if key not in self.index_mapper:
            self.max_block_index += 1
            self.index_mapper[key] = self.max_block_index
        return self.index_mapper[key]

    def is_new_summary(self, output_index: int, summary_index: int) -> bool:
        key = f"{output_index}:{summary_index}"
        if key in self.summary_index_mapper:
            return False
        current = self.max_summary_index.get(output_index, -1) + 1
        self.summary_index_mapper[key] = current
        self.max_summary_index[output_index] = current
        return True

    def annotation_index(self, output_index: int, content_index: int, annotation_index: int) -> int:
        key = f"{output_index}:{content_index}:{annotation_index}"
        if key in self.annotation_index_mapper:
            return self.annotation_index_mapper[key]
        max_key = f"{output_index}:{content_index}"
        current = self.max_annotation_index.get(max_key, -1) + 1
        self.annotation_index_mapper[key] = current
        self.max_annotation_index[max_key] = current
        return current

    @staticmethod
    def _chunk(payload: Any, index: int, item_id: str | None, status: str | None = None) -> ContentBlock:
        return set_item_meta(ContentBlock.chunk(payload, index), item_id, status)

    @staticmethod
    def _message(blocks: list[ContentBlock] | None = None, meta: Any = None) -> AgenticMessage:
        return AgenticMessage(role=AgenticRoleType.ASSISTANT, content_blocks=list(blocks or []), response_meta=meta)

    def convert(self, event: Any) -> list[AgenticMessage]:
        """Convert one event; returns zero or more single-block messages.

        Raises:
            VendorError: On an ``error`` event or an event that cannot be converted.
        """
        ev = as_dict(event)
        kind = ev.get("type") or ""
        if kind in _SKIPPED_EVENTS:
            return []
        if kind == "error":
            raise VendorError(f"received error event: code={ev.get('code')} message={ev.get('message')}")
        if kind in _RESPONSE_EVENTS:
            return [self._message(meta=to_response_meta(ev.get("response")))]

        try:
            blocks = self._blocks(kind, ev)
        except VendorError as exc:
            raise VendorError(f"failed to convert event '{kind}': {exc}") from exc
        return [self._message([block]) for block in blocks]

    def _blocks(self, kind: str, ev: dict[str, Any]) -> list[ContentBlock]:
        out_idx = ev.get("output_index") or 0
        item_id = ev.get("item_id")
        if kind == "response.output_item.added":
            return self._item_added(out_idx, ev.get("item") or {})
        if kind == "response.output_item.done":
            return self._item_done(out_idx, ev.get("item") or {})
        if kind == "response.content_part.added":
            return [self._content_part(ev, added=True)]
        if kind == "response.content_part.done":
            return [self._content_part(ev, added=False)]
        if kind == "response.output_text.delta":
            index = self.block_index(gen_text_key(out_idx, ev.get("content_index") or 0))
            return [self._chunk(AssistantGenText(text=ev.get("delta") or ""), index, item_id)]
        if kind == "response.refusal.delta":
            index = self.block_index(gen_text_key(out_idx, ev.get("content_index") or 0))
            return [self._chunk(AssistantGenText(refusal=ev.get("delta") or ""), index, item_id)]
        if kind == "response.output_text.annotation.added":
            content_idx = ev.get("content_index") or 0
            annotation = annotation_from_dict(
                as_dict(ev.get("annotation")),
                self.annotation_index(out_idx, content_idx, ev.get("annotation_index") or 0),
            )
            index = self.block_index(gen_text_key(out_idx, content_idx))
            return [self._chunk(AssistantGenText(annotations=[annotation]), index, item_id)]
        if kind == "response.reasoning_summary_text.delta":
            summary_idx = ev.get("summary_index") or 0
            text = ev.get("delta") or ""
            if self.is_new_summary(out_idx, summary_idx) and summary_idx != 0:
                text = "\n" + text
            return [self._chunk(Reasoning(text=text), self.block_index(reasoning_key(out_idx)), item_id)]
        if kind == "response.function_call_arguments.delta":
            index = self.block_index(function_call_key(out_idx))
            return [self._chunk(FunctionToolCall(arguments=ev.get("delta") or ""), index, item_id)]
        if kind == "response.mcp_call_arguments.delta":
            self.streamed_arguments.add(mcp_tool_call_key(out_idx))
            index = self.block_index(mcp_tool_call_key(out_idx))
            return [self._chunk(MCPToolCall(arguments=ev.get("delta") or ""), index, item_id)]
        if kind in _MCP_LIST_TOOLS_PHASES:
            cached = self.added_items.get(f"mcp_list_tools:{item_id}:{out_idx}") or {}
            payload = MCPListToolsResult(server_label=cached.get("server_label") or "")
            index = self.block_index(mcp_list_tools_key(out_idx))
            return [self._chunk(payload, index, item_id, _MCP_LIST_TOOLS_PHASES[kind])]
        if kind in _MCP_CALL_PHASES:
            cached = self.added_items.get(f"mcp_call:{item_id}:{out_idx}") or {}
            payload = MCPToolCall(
                server_label=cached.get("server_label") or "",
                approval_request_id=cached.get("approval_request_id") or "",
                name=cached.get("name") or "",
            )
            index = self.block_index(mcp_tool_call_key(out_idx))
            return [self._chunk(payload, index, item_id, _MCP_CALL_PHASES[kind])]
        if kind in _WEB_SEARCH_PHASES:
            index = self.block_index(server_tool_call_key(out_idx))
            payload = ServerToolCall(name=SERVER_TOOL_WEB_SEARCH)
            return [self._chunk(payload, index, item_id, _WEB_SEARCH_PHASES[kind])]
        raise VendorError(f"invalid event type: {kind}")

    def _item_added(self, out_idx: int, item: dict[str, Any]) -> list[ContentBlock]:
        item_type = item.get("type")
        if item_type == "function_call":
            return [self._place(function_call_block(item), function_call_key(out_idx))]
        if item_type == "reasoning":
            return [self._place(reasoning_block(item), reasoning_key(out_idx))]
        if item_type in ("mcp_call", "mcp_list_tools"):
            self.added_items[f"{item_type}:{item.get('id')}:{out_idx}"] = item
            return []
        if item_type in ("message", "web_search_call", "mcp_approval_request"):
            return []
        raise VendorError(f"invalid item type {item_type} with 'output_item.added' event")

    def _item_done(self, out_idx: int, item: dict[str, Any]) -> list[ContentBlock]:
        item_type = item.get("type")
        item_id = item.get("id")
        status = item.get("status")
        if item_type == "message":
            if item_id not in self.open_text_blocks:
                raise VendorError(f"item {item_id} not found in processing queue")
            return [
                self._chunk(AssistantGenText(), index, item_id, status)
                for index in sorted(self.open_text_blocks.pop(item_id))
            ]
        if item_type == "reasoning":
            signature = item.get("encrypted_content") or ""
            return [self._chunk(Reasoning(signature=signature), self.block_index(reasoning_key(out_idx)), item_id, status)]
        if item_type == "function_call":
            payload = FunctionToolCall(call_id=item.get("call_id") or "", name=item.get("name") or "")
            return [self._chunk(payload, self.block_index(function_call_key(out_idx)), item_id, status)]
        if item_type == "web_search_call":
            call, result = web_search_blocks(item)
            self._place(call, server_tool_call_key(out_idx))
            self._place(result, server_tool_result_key(out_idx))
            return [call, result]
        if item_type == "mcp_call":
            call, result = mcp_call_blocks(item)
            if mcp_tool_call_key(out_idx) in self.streamed_arguments:
                call.payload.arguments = ""
            self._place(call, mcp_tool_call_key(out_idx))
            self._place(result, mcp_tool_result_key(out_idx))
            return [call, result]
        if item_type == "mcp_list_tools":
            return [self._place(mcp_list_tools_block(item), mcp_list_tools_key(out_idx))]
        if item_type == "mcp_approval_request":
            return [self._place(mcp_approval_request_block(item), mcp_approval_request_key(out_idx))]
        raise VendorError(f"invalid item type {item_type} with 'output_item.done' event")

    def _place(self, block: ContentBlock, key: str) -> ContentBlock:
        block.streaming_meta = StreamingMeta(index=self.block_index(key))
        return block

    def _content_part(self, ev: dict[str, Any], added: bool) -> ContentBlock:
        item_id = ev.get("item_id") or ""
        index = self.block_index(gen_text_key(ev.get("output_index") or 0, ev.get("content_index") or 0))
        part_type = (ev.get("part") or {}).get("type")
        if part_type not in ("output_text", "refusal"):
            raise VendorError(f"invalid content part type: {part_type}")
        if added:
            self.open_text_blocks.setdefault(item_id, set()).add(index)
            status = STATUS_IN_PROGRESS
        else:
            if item_id not in self.open_text_blocks:
                raise VendorError(f"item {item_id!r} has no processing assistant gen text block index")
            self.open_text_blocks[item_id].discard(index)
            status = STATUS_COMPLETED
        return self._chunk(AssistantGenText(), index, item_id, status)


def iter_agentic_chunks(events: Iterable[Any]) -> Iterator[AgenticMessage]:
    """Yield assistant message chunks for a Responses event stream."""
    receiver = StreamReceiver()
    for event in events:
        yield from receiver.convert(event)


__all__ = ["StreamReceiver", "iter_agentic_chunks"]
