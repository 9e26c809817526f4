"""Volcengine Ark chat model (``volcenginesdkarkruntime.Ark``)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from connectors.config.settings import ark_settings
from connectors.schema import (
    ChatMessagePartType,
    FunctionCall,
    Message,
    ResponseMeta,
    RoleType,
    TokenUsage,
    ToolCall,
    register_extra_concat,
)
from connectors.schema.message import CompletionTokensDetails, PromptTokenDetails

from ...errors import ConfigError, VendorError
from ..base import BaseChatModel
from ..engines.openai_compat import tool_choice_to_openai, tool_to_dict
from ..registry import register_chat_model

if TYPE_CHECKING:
    from volcenginesdkarkruntime import Ark

logger = logging.getLogger(__name__)

REQUEST_ID_KEY = "ark-request-id"

register_extra_concat(REQUEST_ID_KEY, lambda chunks: chunks[-1])

# Sampling fields taken from the constructor and sent on every request.
_REQUEST_FIELDS = (
    "frequency_penalty",
    "presence_penalty",
    "repetition_penalty",
    "logit_bias",
    "logprobs",
    "top_logprobs",
    "user",
    "n",
    "response_format",
)


def get_ark_request_id(msg: Message) -> str:
    return str(msg.extra.get(REQUEST_ID_KEY) or "")


def _to_ark_content(msg: Message) -> Any:
    if not msg.multi_content:
        return msg.content
    parts = []
    for part in msg.multi_content:
        if part.type == ChatMessagePartType.TEXT:
            parts.append({"type": "text", "text": part.text})
        elif part.type == ChatMessagePartType.IMAGE_URL and part.image_url is not None:
            image: dict[str, Any] = {"url": part.image_url.url or part.image_url.uri}
            if part.image_url.detail:
                image["detail"] = part.image_url.detail
            parts.append({"type": "image_url", "image_url": image})
        else:
            raise ConfigError(f"unsupported chat message part type: {part.type.value}")
    return parts


def to_ark_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    out = []
    for msg in messages:
        item: dict[str, Any] = {"role": msg.role.value, "content": _to_ark_content(msg)}
        if msg.tool_call_id:
            item["tool_call_id"] = msg.tool_call_id
        if msg.tool_calls:
            item["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
                for call in msg.tool_calls
            ]
        out.append(item)
    return out


def _to_tool_calls(raw_calls: Any) -> list[ToolCall]:
    calls = []
    for i, raw in enumerate(raw_calls or []):
        index = getattr(raw, "index", None)
        calls.append(
            ToolCall(
                id=getattr(raw, "id", None) or "",
                index=index if index is not None else i,
                function=FunctionCall(
                    name=getattr(raw.function, "name", None) or "",
                    arguments=getattr(raw.function, "arguments", None) or "",
                ),
            )
        )
    return calls


def _to_usage(raw: Any) -> TokenUsage | None:
    if raw is None:
        return None
    prompt_details = getattr(raw, "prompt_tokens_details", None)
    completion_details = getattr(raw, "completion_tokens_details", None)
    return TokenUsage(
        prompt_tokens=getattr(raw, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(raw, "completion_tokens", 0) or 0,
        total_tokens=getattr(raw, "total_tokens", 0) or 0,
        prompt_token_details=PromptTokenDetails(cached_tokens=getattr(prompt_details, "cached_tokens", 0) or 0),
        completion_tokens_details=CompletionTokensDetails(
            reasoning_tokens=getattr(completion_details, "reasoning_tokens", 0) or 0
        ),
    )


def _request_id(resp: Any) -> str:
    return getattr(resp, "_request_id", None) or getattr(resp, "id", None) or ""


@register_chat_model("ark", version="v1")
class ArkChatModel(BaseChatModel):
    """Doubao and other models served by Volcengine Ark.

    Authenticates with ``api_key`` when given, otherwise with the
    ``access_key`` / ``secret_key`` pair. With ``batch_chat=True``
    non-streaming calls go through the batch inference endpoint.
    """

    type_name = "Ark"

    def __init__(
        self,
        client: Ark | None = None,
        model: str | None = None,
        api_key: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        base_url: str | None = None,
        region: str | None = None,
        timeout: float | None = None,
        retry_times: int | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        stop: list[str] | None = None,
        custom_headers: dict[str, str] | None = None,
        batch_chat: bool = False,
        batch_chat_timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        request_fields = {k: kwargs.pop(k) for k in _REQUEST_FIELDS if k in kwargs}
        super().__init__(**kwargs)
        self.model = model if model is not None else ark_settings.model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.stop = stop
        self.custom_headers = dict(custom_headers or {})
        self.batch_chat = batch_chat
        self.batch_chat_timeout = batch_chat_timeout
        self.request_fields = {k: v for k, v in request_fields.items() if v is not None}

        if client is None:
            from volcenginesdkarkruntime import Ark

            key = api_key if api_key is not None else ark_settings.api_key
            auth: dict[str, Any]
            if key:
                auth = {"api_key": key}
            else:
                auth = {
                    "ak": access_key or ark_settings.access_key,
                    "sk": secret_key or ark_settings.secret_key,
                }
            client = Ark(
                base_url=base_url or ark_settings.base_url,
                region=region or ark_settings.region,
                timeout=timeout if timeout is not None else ark_settings.timeout,
                max_retries=retry_times if retry_times is not None else ark_settings.retry_times,
                **auth,
            )
        self.client = client

    def _request(self, messages: Sequence[Message], options: dict[str, Any]) -> dict[str, Any]:
        opts = self.resolve_options(options)
        model = opts.model or self.model
        if not model:
            raise ConfigError("ark chat model gen request with empty model")

        req: dict[str, Any] = {"model": model, "messages": to_ark_messages(messages)}
        for key in ("max_tokens", "temperature", "top_p", "stop"):
            value = getattr(opts, key)
            if value is None:
                value = getattr(self, key)
            if value is not None:
                req[key] = value
        req.update(self.request_fields)
        for key in _REQUEST_FIELDS:
            if opts.extra.get(key) is not None:
                req[key] = opts.extra[key]
        if opts.tools:
            req["tools"] = [tool_to_dict(t) for t in opts.tools]
        choice = tool_choice_to_openai(opts.tool_choice, opts.tools, opts.allowed_tool_names)
        if choice is not None:
            req["tool_choice"] = choice

        headers = {**self.custom_headers, **(opts.extra.get("custom_headers") or {})}
        if headers:
            req["extra_headers"] = headers
        return req

    def _resolve_response(self, resp: Any) -> Message:
        choices = list(getattr(resp, "choices", None) or [])
        if not choices:
            raise VendorError("[ArkChatModel.generate] empty response from model")
        choice = next((c for c in choices if (getattr(c, "index", 0) or 0) == 0), None)
        if choice is None:
            raise VendorError("[ArkChatModel.generate] unexpected completion choices without index=0")
        raw = choice.message
        content = getattr(raw, "content", None)
        tool_calls = _to_tool_calls(getattr(raw, "tool_calls", None))
        if content is None and not tool_calls:
            raise VendorError("[ArkChatModel.generate] unexpected message, no content and no tool calls")
        msg = Message(
            role=RoleType(getattr(raw, "role", None) or "assistant"),
            content=content or "",
            reasoning_content=getattr(raw, "reasoning_content", None) or "",
            tool_calls=tool_calls,
            response_meta=ResponseMeta(
                finish_reason=getattr(choice, "finish_reason", None) or "",
                usage=_to_usage(getattr(resp, "usage", None)),
            ),
        )
        request_id = _request_id(resp)
        if request_id:
            msg.extra[REQUEST_ID_KEY] = request_id
        return msg

    def _resolve_chunk(self, chunk: Any) -> Message | None:
        usage = _to_usage(getattr(chunk, "usage", None))
        choices = list(getattr(chunk, "choices", None) or [])
        request_id = _request_id(chunk)
        if not choices:
            if usage is None:
                raise VendorError("[ArkChatModel.stream] empty response from model")
            msg = Message(role=RoleType.ASSISTANT, response_meta=ResponseMeta(usage=usage))
        else:
            choice = choices[0]
            if (getattr(choice, "index", 0) or 0) != 0:
                return None
            delta = choice.delta
            finish_reason = getattr(choice, "finish_reason", None) or ""
            msg = Message(
                role=RoleType.ASSISTANT,
                content=getattr(delta, "content", None) or "",
                reasoning_content=getattr(delta, "reasoning_content", None) or "",
                tool_calls=_to_tool_calls(getattr(delta, "tool_calls", None)),
            )
            if finish_reason or usage is not None:
                msg.response_meta = ResponseMeta(finish_reason=finish_reason, usage=usage)
        if request_id:
            msg.extra[REQUEST_ID_KEY] = request_id
        return msg

    def generate(self, messages: Sequence[Message], **options: Any) -> Message:
        req = self._request(messages, options)
        try:
            if self.batch_chat:
                if self.batch_chat_timeout is not None:
                    req["timeout"] = self.batch_chat_timeout
                resp = self.client.batch_chat.completions.create(**req)
            else:
                resp = self.client.chat.completions.create(**req)
        except Exception as exc:
            logger.error("Ark chat completion for %s failed: %s", req["model"], exc)
            raise VendorError(f"[ArkV3] CreateChatCompletion error, {exc}") from exc
        return self._resolve_response(resp)

    def stream(self, messages: Sequence[Message], **options: Any) -> Iterator[Message]:
        req = self._request(messages, options)
        req["stream"] = True
        req["stream_options"] = {"include_usage": True}
        try:
            stream = self.client.chat.completions.create(**req)
        except Exception as exc:
            logger.error("Ark chat completion stream for %s failed: %s", req["model"], exc)
            raise VendorError(f"[ArkV3] CreateChatCompletionStream error, {exc}") from exc
        return self._iter_stream(stream)

    def _iter_stream(self, stream: Any) -> Iterator[Message]:
        try:
            for chunk in stream:
                msg = self._resolve_chunk(chunk)
                if msg is not None:
                    yield msg
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()


__all__ = ["ArkChatModel", "get_ark_request_id", "to_ark_messages", "REQUEST_ID_KEY"]
