"""Streaming paths of the vendor chat models.

Each model is driven through ``stream`` with a fake SDK or HTTP client, and
the concatenated chunks are compared with what ``generate`` returns for the
same reply.
"""

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

from connectors.llm_infrastructure.chat_model import get_chat_model  # noqa: E402
from connectors.llm_infrastructure.errors import VendorError  # noqa: E402
from connectors.schema import Message, RoleType, concat_messages  # noqa: E402


def _summary(msg: Message) -> dict:
    meta = msg.response_meta
    return {
        "role": msg.role,
        "content": msg.content,
        "reasoning": msg.reasoning_content,
        "tool_calls": [(c.id, c.function.name, c.function.arguments) for c in msg.tool_calls],
        "finish_reason": meta.finish_reason if meta else "",
        "total_tokens": meta.usage.total_tokens if meta and meta.usage else 0,
    }


# --------------------------------------------------------------------------- zhipu


class _FakeResponse:
    def __init__(self, payload=None, lines=None) -> None:
        self._payload = payload
        self._lines = list(lines or [])
        self.status_code = 200

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload

    def iter_lines(self):
        return iter(self._lines)

    def read(self):
        return b""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class _FakeHTTP:
    def __init__(self, response: _FakeResponse) -> None:
        self.response = response
        self.calls: list[dict] = []

    def post(self, url, json=None, headers=None):
        self.calls.append({"url": url, "json": json})
        return self.response

    def stream(self, method, url, json=None, headers=None):
        self.calls.append({"url": url, "json": json})
        return self.response


def _sse(*chunks) -> list[str]:
    lines = []
    for chunk in chunks:
        lines.append(f"data: {json.dumps(chunk)}")
        lines.append("")
    lines.append("data: [DONE]")
    return lines


def test_zhipu_stream_matches_generate():
    full = _FakeResponse(
        {
            "choices": [
                {
                    "index": 0,
                    "message": {
                        "role": "assistant",
                        "content": "Checking the clock.",
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {"name": "get_time", "arguments": '{"tz":"UTC"}'},
                            }
                        ],
                    },
                    "finish_reason": "tool_calls",
                }
            ],
            "usage": {"prompt_tokens": 5, "completion_tokens": 3, "total_tokens": 8},
        }
    )
    streamed = _FakeResponse(
        lines=_sse(
            {"choices": [{"index": 0, "delta": {"role": "assistant", "content": "Checking "}}]},
            {"choices": [{"index": 0, "delta": {"content": "the clock."}}]},
            {
                "choices": [
                    {
                        "index": 0,
                        "delta": {
                            "tool_calls": [
                                {
                                    "index": 0,
                                    "id": "call_1",
                                    "type": "function",
                                    "function": {"name": "get_time", "arguments": '{"tz":'},
                                }
                            ]
                        },
                    }
                ]
            },
            {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 0, "function": {"arguments": '"UTC"}'}}]}}]},
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
            {"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 3, "total_tokens": 8}},
        )
    )
    messages = [Message.user("what time is it?")]

    generated = get_chat_model("zhipu", api_key="key", model="glm-4-flash", client=_FakeHTTP(full)).generate(messages)
    chunks = list(get_chat_model("zhipu", api_key="key", model="glm-4-flash", client=_FakeHTTP(streamed)).stream(messages))

    assert len(chunks) > 1
    assert _summary(concat_messages(chunks)) == _summary(generated)


# --------------------------------------------------------------------------- ark


def _ark_usage(total: int):
    return SimpleNamespace(
        prompt_tokens=total - 2,
        completion_tokens=2,
        total_tokens=total,
        prompt_tokens_details=SimpleNamespace(cached_tokens=0),
        completion_tokens_details=None,
    )


class _FakeArkStream:
    def __init__(self, chunks) -> None:
        self.chunks = list(chunks)
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


class _FakeArkCompletions:
    def __init__(self, full, stream) -> None:
        self.full = full
        self.stream = stream
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.stream if kwargs.get("stream") else self.full


def _ark_delta(content="", reasoning=None, finish_reason=None):
    return SimpleNamespace(
        id="req-1",
        usage=None,
        choices=[
            SimpleNamespace(
                index=0,
                finish_reason=finish_reason,
                delta=SimpleNamespace(content=content, reasoning_content=reasoning, tool_calls=None),
            )
        ],
    )


def test_ark_stream_matches_generate():
    full = SimpleNamespace(
        id="req-1",
        choices=[
            SimpleNamespace(
                index=0,
                finish_reason="stop",
                message=SimpleNamespace(
                    role="assistant", content="Paris is sunny.", reasoning_content="look it up", tool_calls=None
                ),
            )
        ],
        usage=_ark_usage(12),
    )
    stream = _FakeArkStream(
        [
            _ark_delta(reasoning="look "),
            _ark_delta(reasoning="it up"),
            _ark_delta("Paris "),
            _ark_delta("is sunny."),
            _ark_delta(finish_reason="stop"),
            SimpleNamespace(id="req-1", usage=_ark_usage(12), choices=[]),
        ]
    )
    completions = _FakeArkCompletions(full, stream)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    model = get_chat_model("ark", client=client, model="doubao-pro")
    messages = [Message.user("weather in Paris?")]

    generated = model.generate(messages)
    streamed = concat_messages(list(model.stream(messages)))

    assert _summary(streamed) == _summary(generated)
    assert streamed.extra == generated.extra
    assert completions.calls[1]["stream"] is True
    assert stream.closed is True


# --------------------------------------------------------------------------- hunyuan


def _hunyuan_event(payload: dict) -> dict:
    return {"event": "message", "data": json.dumps(payload)}


class _FakeHunyuanClient:
    """``ChatCompletions`` returns a response object, or SSE events when streaming."""

    def __init__(self, payload=None, events=None) -> None:
        self.payload = payload
        self.events = events
        self.requests: list = []

    def ChatCompletions(self, request):  # noqa: N802
        self.requests.append(request)
        if request.Stream:
            return self.events
        return SimpleNamespace(to_json_string=lambda: json.dumps(self.payload))


HUNYUAN_REPLY = {
    "Choices": [
        {
            "Message": {"Role": "assistant", "Content": "Sunny in Paris."},
            "FinishReason": "stop",
        }
    ],
    "Usage": {"PromptTokens": 6, "CompletionTokens": 4, "TotalTokens": 10},
}

HUNYUAN_EVENTS = [
    _hunyuan_event({"Choices": [{"Delta": {"Role": "assistant", "Content": "Sunny "}}]}),
    {"data": ""},
    _hunyuan_event({"Choices": [{"Delta": {"Role": "assistant", "Content": "in Paris."}}]}),
    _hunyuan_event(
        {
            "Choices": [{"Delta": {"Role": "assistant", "Content": ""}, "FinishReason": "stop"}],
            "Usage": {"PromptTokens": 6, "CompletionTokens": 4, "TotalTokens": 10},
        }
    ),
]


def test_hunyuan_stream_yields_events():
    client = _FakeHunyuanClient(events=iter(HUNYUAN_EVENTS))
    model = get_chat_model("hunyuan", model="hunyuan-lite", client=client)

    chunks = list(model.stream([Message.user("weather?")]))

    assert [c.content for c in chunks] == ["Sunny ", "in Paris.", ""]
    assert client.requests[0].Stream is True
    assert client.requests[0].Model == "hunyuan-lite"
    assert chunks[-1].response_meta.finish_reason == "stop"


def test_hunyuan_stream_matches_generate():
    messages = [Message.user("weather?")]

    generated = get_chat_model("hunyuan", model="hunyuan-lite", client=_FakeHunyuanClient(HUNYUAN_REPLY)).generate(
        messages
    )
    streamed = concat_messages(
        list(
            get_chat_model("hunyuan", model="hunyuan-lite", client=_FakeHunyuanClient(events=iter(HUNYUAN_EVENTS))).stream(
                messages
            )
        )
    )

    assert _summary(streamed) == _summary(generated)
    assert streamed.role == RoleType.ASSISTANT


def test_hunyuan_stream_fills_tool_call_index_on_finish():
    events = [
        _hunyuan_event(
            {
                "Choices": [
                    {
                        "Delta": {
                            "Role": "assistant",
                            "ToolCalls": [
                                {"Index": 2, "Id": "t1", "Type": "function", "Function": {"Name": "get_weather", "Arguments": "{"}}
                            ],
                        }
                    }
                ]
            }
        ),
        _hunyuan_event(
            {
                "Choices": [
                    {
                        "Delta": {
                            "Role": "assistant",
                            "ToolCalls": [{"Id": "t1", "Type": "function", "Function": {"Arguments": "}"}}],
                        },
                        "FinishReason": "tool_calls",
                    }
                ]
            }
        ),
    ]
    model = get_chat_model("hunyuan", model="hunyuan-lite", client=_FakeHunyuanClient(events=iter(events)))

    chunks = list(model.stream([Message.user("weather?")]))

    assert [c.tool_calls[0].index for c in chunks] == [2, 2]


def test_hunyuan_stream_wraps_sdk_errors():
    def _events():
        yield HUNYUAN_EVENTS[0]
        raise ConnectionError("connection reset by peer")

    model = get_chat_model("hunyuan", model="hunyuan-lite", client=_FakeHunyuanClient(events=_events()))
    stream = model.stream([Message.user("weather?")])

    assert next(stream).content == "Sunny "
    with pytest.raises(VendorError, match="receive stream event failed: connection reset by peer") as excinfo:
        next(stream)
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_hunyuan_stream_rejects_undecodable_event():
    model = get_chat_model("hunyuan", model="hunyuan-lite", client=_FakeHunyuanClient(events=iter([{"data": "{oops"}])))

    with pytest.raises(VendorError, match="decode stream event failed"):
        list(model.stream([Message.user("weather?")]))


# --------------------------------------------------------------------------- gemini


def _gemini_chunk(text=None, thought=None, finish_reason=None, usage=None):
    parts = [SimpleNamespace(text=text, thought=thought, function_call=None)] if text is not None else []
    return SimpleNamespace(
        candidates=[
            SimpleNamespace(
                finish_reason=SimpleNamespace(value=finish_reason) if finish_reason else None,
                content=SimpleNamespace(role="model", parts=parts),
            )
        ],
        usage_metadata=usage,
    )


GEMINI_USAGE = SimpleNamespace(
    prompt_token_count=3,
    candidates_token_count=5,
    total_token_count=8,
    cached_content_token_count=None,
    thoughts_token_count=None,
)


class _FakeGeminiModels:
    def __init__(self, full=None, chunks=None, fail=False) -> None:
        self.full = full
        self.chunks = chunks or []
        self.fail = fail
        self.calls: list[dict] = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return self.full

    def generate_content_stream(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail:
            raise RuntimeError("quota exceeded")
        return iter(self.chunks)


GEMINI_CHUNKS = [
    _gemini_chunk(text="thinking", thought=True),
    _gemini_chunk(text="Bonjour"),
    _gemini_chunk(text=" le monde", finish_reason="STOP", usage=GEMINI_USAGE),
]


def test_gemini_stream_converts_each_chunk():
    models = _FakeGeminiModels(chunks=GEMINI_CHUNKS)
    model = get_chat_model("gemini", client=SimpleNamespace(models=models), model="gemini-2.0-flash")

    chunks = list(model.stream([Message.system("sys"), Message.user("hello")]))

    assert [c.content for c in chunks] == ["", "Bonjour", " le monde"]
    assert chunks[0].reasoning_content == "thinking"
    assert models.calls[0]["model"] == "gemini-2.0-flash"
    assert models.calls[0]["contents"] == [{"role": "user", "parts": [{"text": "hello"}]}]


def test_gemini_stream_matches_generate():
    full = SimpleNamespace(
        candidates=[
            SimpleNamespace(
                finish_reason=SimpleNamespace(value="STOP"),
                content=SimpleNamespace(
                    role="model",
                    parts=[
                        SimpleNamespace(text="thinking", thought=True, function_call=None),
                        SimpleNamespace(text="Bonjour le monde", thought=None, function_call=None),
                    ],
                ),
            )
        ],
        usage_metadata=GEMINI_USAGE,
    )
    models = _FakeGeminiModels(full=full, chunks=GEMINI_CHUNKS)
    model = get_chat_model("gemini", client=SimpleNamespace(models=models), model="gemini-2.0-flash")
    messages = [Message.user("hello")]

    generated = model.generate(messages)
    streamed = concat_messages(list(model.stream(messages)))

    assert _summary(streamed) == _summary(generated)


def test_gemini_stream_open_failure_is_vendor_error():
    model = get_chat_model(
        "gemini", client=SimpleNamespace(models=_FakeGeminiModels(fail=True)), model="gemini-2.0-flash"
    )

    with pytest.raises(VendorError, match="send message stream fail: quota exceeded"):
        list(model.stream([Message.user("hello")]))
