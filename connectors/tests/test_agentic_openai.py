from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure repo root on sys.path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from connectors.llm_infrastructure.chat_model import get_chat_model  # noqa: E402
from connectors.llm_infrastructure.chat_model.engines.responses_converter import (  # noqa: E402
    ResponseMetaExtension,
    WebSearchArguments,
    WebSearchResult,
    get_item_id,
    get_item_status,
    to_input_items,
    to_output_message,
    to_tool_choice,
)
from connectors.llm_infrastructure.chat_model.engines.responses_events import StreamReceiver  # noqa: E402
from connectors.llm_infrastructure.errors import ConfigError, VendorError  # noqa: E402
from connectors.schema import (  # noqa: E402
    AgenticMessage,
    AgenticRoleType,
    AgenticToolChoice,
    AllowedTool,
    ContentBlock,
    ContentBlockType,
    ToolChoice,
    ToolInfo,
    concat_agentic_messages,
)
from connectors.schema.agentic import (  # noqa: E402
    FunctionToolResult,
    MCPAllowedTool,
    MCPToolCall,
    MCPToolResult,
    ServerToolCall,
    ServerToolResult,
    UserInputFile,
    UserInputImage,
)

WEATHER = ToolInfo(name="get_weather", desc="Weather by city", params={"type": "object", "properties": {}})

ANNOTATION = {"type": "url_citation", "url": "https://example.com", "title": "Example", "start_index": 0, "end_index": 5}
USAGE = {
    "input_tokens": 10,
    "input_tokens_details": {"cached_tokens": 4},
    "output_tokens": 5,
    "output_tokens_details": {"reasoning_tokens": 2},
    "total_tokens": 15,
}

RESPONSE = {
    "id": "resp_1",
    "status": "completed",
    "output": [
        {
            "type": "reasoning",
            "id": "rs_1",
            "status": "completed",
            "encrypted_content": "sig",
            "summary": [{"type": "summary_text", "text": "Think"}, {"type": "summary_text", "text": "More"}],
        },
        {
            "type": "message",
            "id": "msg_1",
            "status": "completed",
            "role": "assistant",
            "content": [{"type": "output_text", "text": "Hello world", "annotations": [ANNOTATION]}],
        },
        {
            "type": "function_call",
            "id": "fc_1",
            "status": "completed",
            "call_id": "call_1",
            "name": "get_weather",
            "arguments": '{"city":"Paris"}',
        },
    ],
    "usage": USAGE,
}

EVENTS = [
    {"type": "response.created", "response": {"id": "resp_1", "status": "in_progress"}},
    {"type": "response.output_item.added", "output_index": 0, "item": {"type": "reasoning", "id": "rs_1", "summary": []}},
    {"type": "response.reasoning_summary_part.added", "output_index": 0, "item_id": "rs_1", "summary_index": 0},
    {"type": "response.reasoning_summary_text.delta", "output_index": 0, "item_id": "rs_1", "summary_index": 0, "delta": "Think"},
    {"type": "response.reasoning_summary_text.delta", "output_index": 0, "item_id": "rs_1", "summary_index": 1, "delta": "More"},
    {"type": "response.reasoning_summary_text.done", "output_index": 0, "item_id": "rs_1", "summary_index": 1},
    {"type": "response.output_item.done", "output_index": 0, "item": RESPONSE["output"][0]},
    {
        "type": "response.output_item.added",
        "output_index": 1,
        "item": {"type": "message", "id": "msg_1", "status": "in_progress", "content": []},
    },
    {
        "type": "response.content_part.added",
        "output_index": 1,
        "content_index": 0,
        "item_id": "msg_1",
        "part": {"type": "output_text", "text": ""},
    },
    {"type": "response.output_text.delta", "output_index": 1, "content_index": 0, "item_id": "msg_1", "delta": "Hello"},
    {"type": "response.output_text.delta", "output_index": 1, "content_index": 0, "item_id": "msg_1", "delta": " world"},
    {
        "type": "response.output_text.annotation.added",
        "output_index": 1,
        "content_index": 0,
        "item_id": "msg_1",
        "annotation_index": 0,
        "annotation": ANNOTATION,
    },
    {"type": "response.output_text.done", "output_index": 1, "content_index": 0, "item_id": "msg_1"},
    {
        "type": "response.content_part.done",
        "output_index": 1,
        "content_index": 0,
        "item_id": "msg_1",
        "part": {"type": "output_text", "text": "Hello world"},
    },
    {"type": "response.output_item.done", "output_index": 1, "item": RESPONSE["output"][1]},
    {
        "type": "response.output_item.added",
        "output_index": 2,
        "item": {
            "type": "function_call",
            "id": "fc_1",
            "status": "in_progress",
            "call_id": "call_1",
            "name": "get_weather",
            "arguments": "",
        },
    },
    {"type": "response.function_call_arguments.delta", "output_index": 2, "item_id": "fc_1", "delta": '{"city":'},
    {"type": "response.function_call_arguments.delta", "output_index": 2, "item_id": "fc_1", "delta": '"Paris"}'},
    {"type": "response.function_call_arguments.done", "output_index": 2, "item_id": "fc_1"},
    {"type": "response.output_item.done", "output_index": 2, "item": RESPONSE["output"][2]},
    {"type": "response.completed", "response": {"id": "resp_1", "status": "completed", "usage": USAGE}},
]


def _stream(events):
    receiver = StreamReceiver()
    chunks = []
    for event in events:
        chunks.extend(receiver.convert(event))
    return chunks


class _FakeEventStream:
    def __init__(self, events) -> None:
        self.events = list(events)
        self.closed = False

    def __iter__(self):
        return iter(self.events)

    def close(self):
        self.closed = True


class _FakeResponses:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _model(responses, **kwargs):
    client = SimpleNamespace(responses=responses)
    return get_chat_model("agentic_openai", client=client, model="gpt-4.1", **kwargs)


# --------------------------------------------------------------------------- output conversion


def test_output_message_blocks_and_meta():
    msg = to_output_message(RESPONSE)

    types = [b.type for b in msg.content_blocks]
    assert types == [
        ContentBlockType.REASONING,
        ContentBlockType.ASSISTANT_GEN_TEXT,
        ContentBlockType.FUNCTION_TOOL_CALL,
    ]
    assert msg.content_blocks[0].payload.text == "Think\nMore"
    assert msg.content_blocks[0].payload.signature == "sig"
    assert msg.content_blocks[1].payload.annotations[0].data["url"] == "https://example.com"
    assert get_item_id(msg.content_blocks[2]) == "fc_1"
    assert get_item_status(msg.content_blocks[2]) == "completed"
    assert msg.response_meta.token_usage.prompt_token_details.cached_tokens == 4
    assert msg.response_meta.extension == ResponseMetaExtension(id="resp_1", status="completed")


def test_streamed_chunks_concat_to_generated_message():
    expected = to_output_message(RESPONSE)

    merged = concat_agentic_messages(_stream(EVENTS))

    assert merged.role == AgenticRoleType.ASSISTANT
    assert len(merged.content_blocks) == len(expected.content_blocks)
    for got, want in zip(merged.content_blocks, expected.content_blocks):
        assert got.type == want.type
        assert got.payload == want.payload
        assert got.extra == want.extra
    assert [b.streaming_meta.index for b in merged.content_blocks] == [0, 1, 2]
    assert merged.response_meta.token_usage == expected.response_meta.token_usage
    assert merged.response_meta.extension == expected.response_meta.extension


def test_reasoning_summaries_after_the_first_start_on_new_line():
    chunks = _stream(EVENTS[:5])

    texts = [c.content_blocks[0].payload.text for c in chunks if c.content_blocks]
    assert texts == ["", "Think", "\nMore"]


def test_web_search_stream_and_replay_as_single_input_item():
    item = {
        "type": "web_search_call",
        "id": "ws_1",
        "status": "completed",
        "action": {"type": "search", "query": "weather paris", "sources": [{"type": "url", "url": "https://a"}]},
    }
    events = [
        {"type": "response.output_item.added", "output_index": 0, "item": {"type": "web_search_call", "id": "ws_1"}},
        {"type": "response.web_search_call.in_progress", "output_index": 0, "item_id": "ws_1"},
        {"type": "response.web_search_call.searching", "output_index": 0, "item_id": "ws_1"},
        {"type": "response.web_search_call.completed", "output_index": 0, "item_id": "ws_1"},
        {"type": "response.output_item.done", "output_index": 0, "item": item},
    ]

    merged = concat_agentic_messages(_stream(events))
    call, result = merged.content_blocks

    assert call.payload.arguments == WebSearchArguments(action_type="search", query="weather paris")
    assert result.payload.result == WebSearchResult(action_type="search", sources=["https://a"])
    assert get_item_status(call) == "completed"
    assert to_input_items([merged]) == [
        {
            "type": "web_search_call",
            "action": {"type": "search", "query": "weather paris", "sources": [{"type": "url", "url": "https://a"}]},
            "id": "ws_1",
            "status": "completed",
        }
    ]


def test_web_search_open_page_has_no_result():
    blocks = to_output_message(
        {"output": [{"type": "web_search_call", "id": "ws_2", "action": {"type": "open_page", "url": "https://b"}}]}
    ).content_blocks

    assert blocks[0].payload.arguments.url == "https://b"
    assert blocks[1].payload.result is None


def test_streamed_mcp_arguments_are_not_repeated_by_done_item():
    events = [
        {
            "type": "response.output_item.added",
            "output_index": 0,
            "item": {"type": "mcp_call", "id": "mcp_1", "server_label": "wiki", "name": "ask", "arguments": ""},
        },
        {"type": "response.mcp_call.in_progress", "output_index": 0, "item_id": "mcp_1"},
        {"type": "response.mcp_call_arguments.delta", "output_index": 0, "item_id": "mcp_1", "delta": '{"q":1}'},
        {"type": "response.mcp_call_arguments.done", "output_index": 0, "item_id": "mcp_1"},
        {"type": "response.mcp_call.completed", "output_index": 0, "item_id": "mcp_1"},
        {
            "type": "response.output_item.done",
            "output_index": 0,
            "item": {
                "type": "mcp_call",
                "id": "mcp_1",
                "status": "completed",
                "server_label": "wiki",
                "name": "ask",
                "arguments": '{"q":1}',
                "output": "answer",
            },
        },
    ]

    call, result = concat_agentic_messages(_stream(events)).content_blocks

    assert call.payload.server_label == "wiki"
    assert call.payload.arguments == '{"q":1}'
    assert result.payload.result == "answer"
    assert get_item_status(result) == "completed"


def test_error_event_raises():
    with pytest.raises(VendorError, match="code=rate_limit message=slow down"):
        StreamReceiver().convert({"type": "error", "code": "rate_limit", "message": "slow down"})


def test_unknown_event_raises_with_event_name():
    with pytest.raises(VendorError, match="failed to convert event 'response.mystery'"):
        StreamReceiver().convert({"type": "response.mystery"})


def test_message_done_without_open_part_raises():
    with pytest.raises(VendorError, match="not found in processing queue"):
        StreamReceiver().convert(
            {"type": "response.output_item.done", "output_index": 0, "item": {"type": "message", "id": "m"}}
        )


def test_unknown_annotation_type_raises():
    with pytest.raises(VendorError, match="invalid annotation type"):
        to_output_message(
            {
                "output": [
                    {
                        "type": "message",
                        "id": "m",
                        "content": [{"type": "output_text", "text": "x", "annotations": [{"type": "bogus"}]}],
                    }
                ]
            }
        )


# --------------------------------------------------------------------------- input conversion


def test_user_input_items():
    image = ContentBlock.of(UserInputImage(base64_data="aGk=", mime_type="image/png"))
    file = ContentBlock.of(UserInputFile(name="a.pdf", base64_data="cGRm", mime_type="application/pdf"))
    result = ContentBlock.of(FunctionToolResult(call_id="call_1", name="get_weather", result="sunny"))
    user = AgenticMessage(role=AgenticRoleType.USER, content_blocks=[image, file, result])

    items = to_input_items([AgenticMessage.system("be brief"), user])

    assert items[0] == {"type": "message", "role": "system", "content": "be brief"}
    assert items[1]["content"][0] == {"type": "input_image", "image_url": "data:image/png;base64,aGk=", "detail": "auto"}
    assert items[2]["content"][0] == {
        "type": "input_file",
        "filename": "a.pdf",
        "file_data": "data:application/pdf;base64,cGRm",
    }
    assert items[3] == {"type": "function_call_output", "call_id": "call_1", "output": "sunny"}


@pytest.mark.parametrize(
    "image, message",
    [
        (UserInputImage(base64_data="aGk="), "mimeType is required"),
        (UserInputImage(base64_data="data:image/png;base64,aGk=", mime_type="image/png"), "raw base64"),
        (UserInputImage(url="https://img", detail="ultra"), "invalid image detail"),
    ],
)
def test_invalid_image_input(image, message):
    user = AgenticMessage(role=AgenticRoleType.USER, content_blocks=[ContentBlock.of(image)])

    with pytest.raises(ConfigError, match=message):
        to_input_items([user])


def test_generated_message_replays_as_input():
    items = to_input_items([to_output_message(RESPONSE)])

    assert items[0]["type"] == "reasoning"
    assert items[0]["encrypted_content"] == "sig"
    assert items[1]["content"][0]["annotations"][0]["type"] == "url_citation"
    assert items[1]["id"] == "msg_1"
    assert items[2] == {
        "type": "function_call",
        "call_id": "call_1",
        "name": "get_weather",
        "arguments": '{"city":"Paris"}',
        "id": "fc_1",
        "status": "completed",
    }


def test_unpaired_mcp_call_is_rejected():
    call = ContentBlock.of(MCPToolCall(server_label="wiki", name="ask"))
    call.extra["item_id"] = "mcp_1"
    msg = AgenticMessage(role=AgenticRoleType.ASSISTANT, content_blocks=[call])

    with pytest.raises(ConfigError, match="exactly 2 items"):
        to_input_items([msg])


def test_mcp_call_and_result_merge_into_one_item():
    call = ContentBlock.of(MCPToolCall(server_label="wiki", name="ask", arguments="{}"))
    result = ContentBlock.of(MCPToolResult(server_label="wiki", name="ask", result="answer"))
    for block in (call, result):
        block.extra.update({"item_id": "mcp_1", "item_status": "completed"})
    msg = AgenticMessage(role=AgenticRoleType.ASSISTANT, content_blocks=[call, result])

    assert to_input_items([msg]) == [
        {
            "type": "mcp_call",
            "server_label": "wiki",
            "name": "ask",
            "arguments": "{}",
            "id": "mcp_1",
            "status": "completed",
            "output": "answer",
        }
    ]


def test_server_tool_blocks_require_web_search():
    block = ContentBlock.of(ServerToolCall(name="code_interpreter"))
    msg = AgenticMessage(role=AgenticRoleType.ASSISTANT, content_blocks=[block])

    with pytest.raises(ConfigError, match="unsupported server tool"):
        to_input_items([msg])


def test_server_tool_result_for_open_page_is_rejected():
    block = ContentBlock.of(ServerToolResult(name="web_search", result=WebSearchResult(action_type="open_page")))
    msg = AgenticMessage(role=AgenticRoleType.ASSISTANT, content_blocks=[block])

    with pytest.raises(ConfigError, match="invalid web search result action type"):
        to_input_items([msg])


# --------------------------------------------------------------------------- tool choice


def test_tool_choice_mapping():
    allowed = [
        AllowedTool(function_name="get_weather"),
        AllowedTool(mcp_tool=MCPAllowedTool(server_label="wiki")),
        AllowedTool(server_tool_name="web_search"),
    ]

    assert to_tool_choice(None) is None
    assert to_tool_choice(AgenticToolChoice(type=ToolChoice.FORBIDDEN)) == "none"
    assert to_tool_choice(AgenticToolChoice(type=ToolChoice.ALLOWED)) == "auto"
    assert to_tool_choice(AgenticToolChoice(type=ToolChoice.FORCED)) == "required"
    assert to_tool_choice(AgenticToolChoice(type=ToolChoice.FORCED, tools=allowed)) == {
        "type": "allowed_tools",
        "mode": "required",
        "tools": [
            {"type": "function", "name": "get_weather"},
            {"type": "mcp", "server_label": "wiki"},
            {"type": "web_search"},
        ],
    }
    with pytest.raises(ConfigError, match="allowed tool must name"):
        to_tool_choice(AgenticToolChoice(type=ToolChoice.ALLOWED, tools=[AllowedTool()]))


# --------------------------------------------------------------------------- model


def test_build_request_collects_tools_and_options():
    model = _model(
        _FakeResponses(),
        reasoning={"effort": "low"},
        server_tools=[{"type": "web_search"}],
        mcp_tools=[{"type": "mcp", "server_label": "wiki", "server_url": "https://wiki/mcp"}],
        custom_headers={"X-Team": "a"},
        max_tokens=256,
    ).with_tools([WEATHER])

    req = model.build_request(
        [AgenticMessage.user("hi")],
        {"agentic_tool_choice": AgenticToolChoice(type=ToolChoice.ALLOWED), "extra_fields": {"truncation": "auto"}},
    )

    assert req["model"] == "gpt-4.1"
    assert req["reasoning"] == {"effort": "low"}
    assert req["max_output_tokens"] == 256
    assert [t["type"] for t in req["tools"]] == ["function", "web_search", "mcp"]
    assert req["tools"][0]["strict"] is False
    assert req["tool_choice"] == "auto"
    assert req["extra_headers"] == {"X-Team": "a"}
    assert req["extra_body"] == {"truncation": "auto"}
    assert req["input"] == [{"type": "message", "role": "user", "content": "hi"}]


@pytest.mark.parametrize("option, message", [("stop", "'Stop' option"), ("tool_choice", "'ToolChoice' option")])
def test_build_request_rejects_plain_options(option, message):
    with pytest.raises(ConfigError, match=message):
        _model(_FakeResponses()).build_request([AgenticMessage.user("hi")], {option: ["x"]})


def test_generate_converts_response():
    responses = _FakeResponses(result=RESPONSE)

    msg = _model(responses).generate([AgenticMessage.user("hi")], temperature=0.2)

    assert responses.calls[0]["temperature"] == 0.2
    assert msg.content_blocks[1].payload.text == "Hello world"


def test_generate_wraps_client_errors():
    with pytest.raises(VendorError, match="failed to create response"):
        _model(_FakeResponses(error=RuntimeError("boom"))).generate([AgenticMessage.user("hi")])


def test_stream_yields_chunks_and_closes():
    stream = _FakeEventStream(EVENTS)
    responses = _FakeResponses(result=stream)

    chunks = list(_model(responses).stream([AgenticMessage.user("hi")]))

    assert responses.calls[0]["stream"] is True
    assert concat_agentic_messages(chunks).content_blocks[2].payload.arguments == '{"city":"Paris"}'
    assert stream.closed is True
