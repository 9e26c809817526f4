"""Client for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterator, Optional, Sequence

import httpx

from connectors.schema import (
    ChatMessagePartType,
    FunctionCall,
    Message,
    ResponseMeta,
    RoleType,
    TokenUsage,
    ToolCall,
    ToolChoice,
    ToolInfo,
)
from connectors.schema.message import CompletionTokensDetails, PromptTokenDetails

from ...errors import ConfigError, VendorError
from ..base import ChatOptions

logger = logging.getLogger(__name__)

RequestModifier = Callable[[dict[str, Any], Sequence[Message]], dict[str, Any]]
ResponseModifier = Callable[[Message, dict[str, Any]], Message]


def _media(part_url: Any) -> dict[str, Any]:
    out: dict[str, Any] = {"url": part_url.url or part_url.uri}
    if part_url.detail:
        out["detail"] = part_url.detail
    return out


def message_to_dict(msg: Message) -> dict[str, Any]:
    """Convert a message to the OpenAI chat wire format."""
    out: dict[str, Any] = {"role": msg.role.value}
    if msg.multi_content:
        parts = []
        for part in msg.multi_content:
            if part.type == ChatMessagePartType.TEXT:
                parts.append({"type": "text", "text": part.text})
                continue
            key = part.type.value
            media = getattr(part, key)
            if media is None:
                raise ConfigError(f"[message_to_dict] {key} part has no url")
            parts.append({"type": key, key: _media(media)})
        out["content"] = parts
    else:
        out["content"] = msg.content
    if msg.name:
        out["name"] = msg.name
    if msg.tool_calls:
        out["tool_calls"] = [
            {
                "id": call.id,
                "type": call.type or "function",
                "function": {"name": call.function.name, "arguments": call.function.arguments},
            }
            for call in msg.tool_calls
        ]
    if msg.role == RoleType.TOOL:
        out["tool_call_id"] = msg.tool_call_id
    return out


def tool_to_dict(tool: ToolInfo) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.desc,
            "parameters": tool.to_json_schema(),
        },
    }


def tool_choice_to_openai(
    choice: ToolChoice | None,
    tools: Sequence[ToolInfo] | None,
    allowed_tool_names: Sequence[str] | None = None,
) -> Any:
    """Map a ``ToolChoice`` to the ``tool_choice`` request field.

    Returns None when the field should be omitted.
    """
    if choice is None:
        return None
    if choice == ToolChoice.FORBIDDEN:
        return "none"

    names = list(allowed_tool_names or [])
    if choice == ToolChoice.ALLOWED:
        if names:
            return {
                "type": "allowed_tools",
                "allowed_tools": {
                    "mode": "auto",
                    "tools": [{"type": "function", "function": {"name": n}} for n in names],
                },
            }
        return "auto"

    if choice == ToolChoice.FORCED:
        if not tools:
            raise ConfigError("[tool_choice_to_openai] tool choice is forced but tools are not provided")
        if len(names) == 1:
            return {"type": "function", "function": {"name": names[0]}}
        if not names and len(tools) == 1:
            return {"type": "function", "function": {"name": tools[0].name}}
        if names:
            return {
                "type": "allowed_tools",
                "allowed_tools": {
                    "mode": "required",
                    "tools": [{"type": "function", "function": {"name": n}} for n in names],
                },
            }
        return "required"

    raise ConfigError(f"[tool_choice_to_openai] unknown tool choice: {choice}")


def usage_from_dict(raw: Optional[dict[str, Any]]) -> TokenUsage | None:
    if not raw:
        return None
    prompt_details = raw.get("prompt_tokens_details") or {}
    completion_details = raw.get("completion_tokens_details") or {}
    return TokenUsage(
        prompt_tokens=int(raw.get("prompt_tokens") or 0),
        completion_tokens=int(raw.get("completion_tokens") or 0),
        total_tokens=int(raw.get("total_tokens") or 0),
        prompt_token_details=PromptTokenDetails(cached_tokens=int(prompt_details.get("cached_tokens") or 0)),
        completion_tokens_details=CompletionTokensDetails(
            reasoning_tokens=int(completion_details.get("reasoning_tokens") or 0)
        ),
    )


def _tool_calls(raw_calls: Optional[list[dict[str, Any]]], streaming: bool) -> list[ToolCall]:
    calls = []
    for i, raw in enumerate(raw_calls or []):
        function = raw.get("function") or {}
        index = raw.get("index")
        calls.append(
            ToolCall(
                id=raw.get("id") or "",
                type=raw.get("type") or ("" if streaming else "function"),
                index=index if index is not None else (None if streaming else i),
                function=FunctionCall(
                    name=function.get("name") or "",
                    arguments=function.get("arguments") or "",
                ),
            )
        )
    return calls


class OpenAICompatClient:
    """httpx client for an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: Optional[float] = 60,
        headers: Optional[dict[str, str]] = None,
        request_modifier: Optional[RequestModifier] = None,
        response_modifier: Optional[ResponseModifier] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.request_modifier = request_modifier
        self.response_modifier = response_modifier
        self._client = client or httpx.Client(timeout=self.timeout)

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.headers}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(
        self,
        messages: Sequence[Message],
        opts: ChatOptions,
        *,
        model: str,
        stream: bool = False,
        extra_fields: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        if not model:
            raise ConfigError("[build_payload] model is required")
        payload: dict[str, Any] = {
            "model": model,
            "messages": [message_to_dict(m) for m in messages],
            "stream": stream,
        }
        for key in ("temperature", "max_tokens", "top_p", "stop"):
            value = getattr(opts, key)
            if value is not None:
                payload[key] = value
        if opts.tools:
            payload["tools"] = [tool_to_dict(t) for t in opts.tools]
        choice = tool_choice_to_openai(opts.tool_choice, opts.tools, opts.allowed_tool_names)
        if choice is not None:
            payload["tool_choice"] = choice
        if stream:
            payload["stream_options"] = {"include_usage": True}
        if extra_fields:
            payload.update(extra_fields)
        if self.request_modifier is not None:
            payload = self.request_modifier(payload, messages)
        return payload

    def create(self, payload: dict[str, Any]) -> Message:
        try:
            resp = self._client.post(self.url, json=payload, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.error("Chat completion request to %s failed: %s", self.url, exc)
            raise VendorError(f"[OpenAICompatClient.create] chat completion request failed: {exc}") from exc
        return self.to_message(data)

    def stream(self, payload: dict[str, Any]) -> Iterator[Message]:
        try:
            with self._client.stream("POST", self.url, json=payload, headers=self._headers()) as resp:
                if resp.status_code >= 400:
                    resp.read()
                    raise VendorError(
                        f"[OpenAICompatClient.stream] chat completion request failed: {resp.status_code} {resp.text}"
                    )
                for chunk in self.iter_events(resp.iter_lines()):
                    msg = self.chunk_to_message(chunk)
                    if msg is not None:
                        yield msg
        except httpx.HTTPError as exc:
            logger.error("Chat completion stream from %s failed: %s", self.url, exc)
            raise VendorError(f"[OpenAICompatClient.stream] chat completion stream failed: {exc}") from exc

    @staticmethod
    def iter_events(lines: Iterator[str]) -> Iterator[dict[str, Any]]:
        """Decode server-sent ``data:`` lines until ``[DONE]``."""
        for line in lines:
            line = line.strip()
            if not line or line.startswith(":") or not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data == "[DONE]":
                return
            chunk = json.loads(data)
            if isinstance(chunk, dict) and chunk.get("error") and not chunk.get("choices"):
                raise VendorError(f"[OpenAICompatClient.stream] server sent error: {chunk['error']}")
            yield chunk

    def to_message(self, data: dict[str, Any]) -> Message:
        choices = data.get("choices") or []
        if not choices:
            raise VendorError("[OpenAICompatClient.create] empty response from model")
        choice = choices[0]
        raw = choice.get("message") or {}
        msg = Message(
            role=RoleType(raw.get("role") or "assistant"),
            content=raw.get("content") or "",
            reasoning_content=raw.get("reasoning_content") or "",
            tool_calls=_tool_calls(raw.get("tool_calls"), streaming=False),
            response_meta=ResponseMeta(
                finish_reason=choice.get("finish_reason") or "",
                usage=usage_from_dict(data.get("usage")),
            ),
        )
        if self.response_modifier is not None:
            msg = self.response_modifier(msg, data)
        return msg

    def chunk_to_message(self, chunk: dict[str, Any]) -> Message | None:
        choices = chunk.get("choices") or []
        usage = usage_from_dict(chunk.get("usage"))
        if not choices:
            if usage is None:
                return None
            msg = Message(role=RoleType.ASSISTANT, response_meta=ResponseMeta(usage=usage))
        else:
            choice = choices[0]
            delta = choice.get("delta") or {}
            finish_reason = choice.get("finish_reason") or ""
            msg = Message(
                role=RoleType.ASSISTANT,
                content=delta.get("content") or "",
                reasoning_content=delta.get("reasoning_content") or "",
                tool_calls=_tool_calls(delta.get("tool_calls"), streaming=True),
            )
            if finish_reason or usage is not None:
                msg.response_meta = ResponseMeta(finish_reason=finish_reason, usage=usage)
        if self.response_modifier is not None:
            msg = self.response_modifier(msg, chunk)
        return msg


__all__ = [
    "OpenAICompatClient",
    "message_to_dict",
    "tool_to_dict",
    "tool_choice_to_openai",
    "usage_from_dict",
]
