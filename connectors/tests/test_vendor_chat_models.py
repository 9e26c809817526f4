from __future__ import annotations

import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure repo root on sys.path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from connectors.llm_infrastructure.chat_model import ChatOptions, get_chat_model  # noqa: E402
from connectors.llm_infrastructure.chat_model.adapters.ark import get_ark_request_id, to_ark_messages  # noqa: E402
from connectors.llm_infrastructure.chat_model.adapters.gemini import (  # noqa: E402
    RESPONSE_FORMATTER_TOOL_NAME,
    SYSTEM_ONLY_PROMPT,
    build_contents,
    convert_json_schema,
    convert_response,
    pair_tool_responses,
)
from connectors.llm_infrastructure.errors import ConfigError, VendorError  # noqa: E402
from connectors.schema import (  # noqa: E402
    ChatMessagePart,
    ChatMessagePartType,
    FunctionCall,
    MediaURL,
    Message,
    ToolCall,
    ToolChoice,
    ToolInfo,
    concat_messages,
)

WEATHER = ToolInfo(
    name="get_weather",
    desc="Weather by city",
    params={"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
)


# --------------------------------------------------------------------------- ark


def _ark_usage(total: int):
    return SimpleNamespace(
        prompt_tokens=total - 2,
        completion_tokens=2,
        total_tokens=total,
        prompt_tokens_details=SimpleNamespace(cached_tokens=1),
        completion_tokens_details=None,
    )


class _FakeCompletions:
    def __init__(self, result) -> None:
        self.result = result
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.result


class _FakeStream:
    def __init__(self, chunks) -> None:
        self.chunks = list(chunks)
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


def _ark_client(result):
    completions = _FakeCompletions(result)
    return SimpleNamespace(
        chat=SimpleNamespace(completions=completions),
        batch_chat=SimpleNamespace(completions=completions),
    ), completions


def test_ark_messages_keep_tool_calls_and_images():
    user = Message.user("")
    user.multi_content = [
        ChatMessagePart(type=ChatMessagePartType.TEXT, text="what is this"),
        ChatMessagePart(type=ChatMessagePartType.IMAGE_URL, image_url=MediaURL(url="http://img", detail="low")),
    ]
    call = ToolCall(id="c1", function=FunctionCall(name="get_weather", arguments='{"city":"Paris"}'))

    out = to_ark_messages([user, Message.assistant("", [call]), Message.tool("sunny", "c1")])

    assert out[0]["content"][1] == {"type": "image_url", "image_url": {"url": "http://img", "detail": "low"}}
    assert out[1]["tool_calls"][0]["function"]["name"] == "get_weather"
    assert out[2]["tool_call_id"] == "c1"


def test_ark_generate_builds_request_and_reads_request_id():
    resp = SimpleNamespace(
        id="req-123",
        choices=[
            SimpleNamespace(
                index=0,
                finish_reason="stop",
                message=SimpleNamespace(role="assistant", content="bonjour", reasoning_content="r", tool_calls=None),
            )
        ],
        usage=_ark_usage(10),
    )
    client, completions = _ark_client(resp)
    model = get_chat_model("ark", client=client, model="doubao-pro", temperature=0.3, frequency_penalty=0.5)

    reply = model.generate(
        [Message.user("hello")],
        tools=[WEATHER],
        tool_choice=ToolChoice.FORCED,
        custom_headers={"X-Trace": "1"},
    )

    req = completions.calls[0]
    assert req["model"] == "doubao-pro"
    assert req["temperature"] == 0.3
    assert req["frequency_penalty"] == 0.5
    assert req["tool_choice"] == {"type": "function", "function": {"name": "get_weather"}}
    assert req["extra_headers"] == {"X-Trace": "1"}
    assert reply.content == "bonjour"
    assert reply.reasoning_content == "r"
    assert reply.response_meta.usage.prompt_token_details.cached_tokens == 1
    assert get_ark_request_id(reply) == "req-123"


def test_ark_generate_requires_model():
    client, _ = _ark_client(None)
    model = get_chat_model("ark", client=client, model="")

    with pytest.raises(ConfigError, match="empty model"):
        model.generate([Message.user("hello")])


def test_ark_generate_rejects_empty_message():
    resp = SimpleNamespace(
        choices=[SimpleNamespace(index=0, finish_reason="stop", message=SimpleNamespace(content=None))],
    )
    client, _ = _ark_client(resp)

    with pytest.raises(VendorError, match="no content and no tool calls"):
        get_chat_model("ark", client=client, model="m").generate([Message.user("hello")])


def test_ark_stream_concat_and_close():
    def _delta_chunk(content="", tool_calls=None, finish_reason=None):
        return SimpleNamespace(
            id="req-9",
            usage=None,
            choices=[
                SimpleNamespace(
                    index=0,
                    finish_reason=finish_reason,
                    delta=SimpleNamespace(content=content, reasoning_content=None, tool_calls=tool_calls),
                )
            ],
        )

    stream = _FakeStream(
        [
            _delta_chunk("Hi"),
            _delta_chunk(" there"),
            _delta_chunk(finish_reason="stop"),
            SimpleNamespace(id="req-9", usage=_ark_usage(7), choices=[]),
        ]
    )
    client, completions = _ark_client(stream)
    model = get_chat_model("ark", client=client, model="m")

    reply = concat_messages(list(model.stream([Message.user("hello")])))

    assert completions.calls[0]["stream"] is True
    assert completions.calls[0]["stream_options"] == {"include_usage": True}
    assert reply.content == "Hi there"
    assert reply.response_meta.finish_reason == "stop"
    assert reply.response_meta.usage.total_tokens == 7
    assert get_ark_request_id(reply) == "req-9"
    assert stream.closed is True


def test_ark_batch_chat_passes_timeout():
    resp = SimpleNamespace(
        id="b1",
        choices=[SimpleNamespace(index=0, finish_reason="stop", message=SimpleNamespace(role="assistant", content="ok"))],
        usage=None,
    )
    client, completions = _ark_client(resp)
    model = get_chat_model("ark", client=client, model="m", batch_chat=True, batch_chat_timeout=3600)

    model.generate([Message.user("hello")])

    assert completions.calls[0]["timeout"] == 3600


# --------------------------------------------------------------------------- gemini


def test_convert_json_schema_maps_types():
    schema = {
        "type": "object",
        "properties": {
            "unit": {"type": ["string", "null"], "enum": ["c", "f"]},
            "days": {"type": "array", "items": {"type": "integer"}},
        },
        "required": ["unit"],
    }

    out = convert_json_schema(schema)

    assert out["type"] == "OBJECT"
    assert out["properties"]["unit"] == {"type": "STRING", "nullable": True, "enum": ["c", "f"]}
    assert out["properties"]["days"]["items"] == {"type": "INTEGER"}
    assert out["required"] == ["unit"]
    with pytest.raises(ConfigError, match="enum value must be a string"):
        convert_json_schema({"type": "string", "enum": [1, 2]})


def test_pair_tool_responses_splits_calls_and_drops_orphans():
    calls = [
        ToolCall(id="a", function=FunctionCall(name="f", arguments="{}")),
        ToolCall(id="b", function=FunctionCall(name="g", arguments="{}")),
    ]
    messages = [
        Message.user("go"),
        Message.assistant("", calls),
        Message.tool('{"r": 2}', "b", "g"),
        Message.tool('{"r": 1}', "a", "f"),
        Message.tool('{"r": 3}', "orphan", "h"),
    ]

    paired = pair_tool_responses(messages)

    assert [m.tool_calls[0].id if m.tool_calls else m.tool_call_id for m in paired[1:]] == ["a", "a", "b", "b"]
    assert len(paired) == 5


def test_build_contents_collects_system_and_maps_roles():
    call = ToolCall(id="a", function=FunctionCall(name="get_weather", arguments='{"city":"Paris"}'))
    system, contents = build_contents(
        [
            Message.system("be brief"),
            Message.user("weather?"),
            Message.assistant("", [call]),
            Message.tool('"sunny"', "a", "get_weather"),
        ]
    )

    assert system == "be brief"
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[1]["parts"] == [{"function_call": {"name": "get_weather", "args": {"city": "Paris"}}}]
    assert contents[2]["parts"] == [{"function_response": {"name": "get_weather", "response": {"result": "sunny"}}}]


def test_build_contents_with_only_system_message():
    system, contents = build_contents([Message.system("rules")])

    assert system == "rules"
    assert contents == [{"role": "user", "parts": [{"text": SYSTEM_ONLY_PROMPT}]}]


def _part(text=None, thought=None, function_call=None):
    return SimpleNamespace(text=text, thought=thought, function_call=function_call)


def test_convert_response_reads_thoughts_calls_and_usage():
    resp = SimpleNamespace(
        candidates=[
            SimpleNamespace(
                finish_reason=SimpleNamespace(value="STOP"),
                content=SimpleNamespace(
                    role="model",
                    parts=[
                        _part(text="pondering", thought=True),
                        _part(text="answer"),
                        _part(function_call=SimpleNamespace(id="", name="get_weather", args={"city": "Oslo"})),
                    ],
                ),
            )
        ],
        usage_metadata=SimpleNamespace(
            prompt_token_count=4,
            candidates_token_count=6,
            total_token_count=10,
            cached_content_token_count=None,
            thoughts_token_count=3,
        ),
    )

    msg = convert_response(resp)

    assert msg.content == "answer"
    assert msg.reasoning_content == "pondering"
    assert msg.response_meta.finish_reason == "STOP"
    assert msg.tool_calls[0].id.startswith("get_weather_")
    assert json.loads(msg.tool_calls[0].function.arguments) == {"city": "Oslo"}
    assert msg.response_meta.usage.completion_tokens_details.reasoning_tokens == 3


def test_convert_response_unwraps_structured_output():
    resp = SimpleNamespace(
        candidates=[
            SimpleNamespace(
                finish_reason=None,
                content=SimpleNamespace(
                    role="model",
                    parts=[_part(function_call=SimpleNamespace(id="x", name=RESPONSE_FORMATTER_TOOL_NAME, args={"a": 1}))],
                ),
            )
        ],
        usage_metadata=None,
    )

    msg = convert_response(resp)

    assert json.loads(msg.content) == {"a": 1}
    assert msg.tool_calls == []


def test_convert_response_rejects_empty_candidates():
    with pytest.raises(VendorError, match="result is empty"):
        convert_response(SimpleNamespace(candidates=[]))


def test_gemini_build_config_adds_formatter_tool_and_forces_calls():
    model = get_chat_model("gemini", client=object(), model="gemini-2.0-flash", temperature=0.2, top_k=40)
    opts = ChatOptions(tools=[WEATHER], tool_choice=ToolChoice.ALLOWED, stop=["END"], extra={"response_schema": {"type": "object"}})

    config = model.build_config(opts, "be brief")

    declarations = config["tools"][0]["function_declarations"]
    assert [d["name"] for d in declarations] == ["get_weather", RESPONSE_FORMATTER_TOOL_NAME]
    assert config["tool_config"] == {"function_calling_config": {"mode": "ANY"}}
    assert config["system_instruction"].startswith("be brief\n")
    assert config["temperature"] == 0.2
    assert config["top_k"] == 40.0
    assert config["stop_sequences"] == ["END"]


def test_gemini_generate_calls_models_api():
    class _Models:
        def __init__(self):
            self.calls = []

        def generate_content(self, **kwargs):
            self.calls.append(kwargs)
            return SimpleNamespace(
                candidates=[
                    SimpleNamespace(finish_reason=None, content=SimpleNamespace(role="model", parts=[_part(text="hi")]))
                ],
                usage_metadata=None,
            )

    models = _Models()
    model = get_chat_model("gemini", client=SimpleNamespace(models=models), model="gemini-2.0-flash")

    reply = model.generate([Message.system("sys"), Message.user("hello")], max_tokens=64)

    call = models.calls[0]
    assert call["model"] == "gemini-2.0-flash"
    assert call["contents"] == [{"role": "user", "parts": [{"text": "hello"}]}]
    assert call["config"].max_output_tokens == 64
    assert reply.content == "hi"


def test_gemini_project_location_builds_vertex_model_path():
    model = get_chat_model("gemini", client=object(), model="gemini-pro", project="p", location="us")

    assert model.model == "projects/p/locations/us/publishers/google/models/gemini-pro"
