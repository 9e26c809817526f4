"""OpenRouter chat model.

OpenRouter speaks the OpenAI chat completions protocol with a few extra
request fields (``models`` fallbacks, ``reasoning``, ``metadata``) and
returns reasoning in ``message.reasoning`` plus structured
``reasoning_details``. The details are kept in ``Message.extra`` so that
they can be replayed on the next turn.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from connectors.config.settings import openrouter_settings
from connectors.schema import Message, register_extra_concat

from ..base import BaseChatModel
from ..engines.openai_compat import OpenAICompatClient
from ..registry import register_chat_model

logger = logging.getLogger(__name__)

REASONING_DETAILS_KEY = "openrouter_reasoning_details"
TERMINATED_ERROR_KEY = "openrouter_terminated_error"


@dataclass
class StreamTerminatedError:
    """Error reported by OpenRouter in a chunk with finish reason ``error``."""

    code: str = ""
    message: str = ""


def get_reasoning_details(msg: Message) -> list[dict[str, Any]] | None:
    details = msg.extra.get(REASONING_DETAILS_KEY)
    return list(details) if details else None


def get_stream_terminated_error(msg: Message) -> StreamTerminatedError | None:
    err = msg.extra.get(TERMINATED_ERROR_KEY)
    return err if isinstance(err, StreamTerminatedError) else None


def _concat_reasoning_details(chunks: list[Any]) -> list[dict[str, Any]]:
    merged: list[dict[str, Any]] = []
    for details in chunks:
        merged.extend(details or [])
    return merged


register_extra_concat(REASONING_DETAILS_KEY, _concat_reasoning_details)
register_extra_concat(TERMINATED_ERROR_KEY, lambda chunks: chunks[-1])


def _first_choice(raw: dict[str, Any]) -> dict[str, Any] | None:
    for choice in raw.get("choices") or []:
        if (choice.get("index") or 0) == 0:
            return choice
    return None


def _parse_terminated_error(raw_error: Any) -> StreamTerminatedError:
    if isinstance(raw_error, str):
        try:
            raw_error = json.loads(raw_error)
        except ValueError:
            return StreamTerminatedError(message=raw_error)
    if not isinstance(raw_error, dict):
        return StreamTerminatedError(message=str(raw_error))
    return StreamTerminatedError(code=str(raw_error.get("code") or ""), message=str(raw_error.get("message") or ""))


@register_chat_model("openrouter", version="v1")
class OpenRouterChatModel(BaseChatModel):
    type_name = "OpenRouter"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        models: list[str] | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        max_completion_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        stop: list[str] | None = None,
        seed: int | None = None,
        presence_penalty: float | None = None,
        frequency_penalty: float | None = None,
        logit_bias: dict[str, int] | None = None,
        logprobs: bool | None = None,
        top_logprobs: int | None = None,
        user: str | None = None,
        reasoning: dict[str, Any] | None = None,
        metadata: dict[str, str] | None = None,
        response_format: dict[str, Any] | None = None,
        extra_fields: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client: Any | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.model = model or openrouter_settings.model
        self.models = list(models or [])
        self.reasoning = reasoning
        self.metadata = metadata
        self.response_format = response_format
        self.defaults = {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": top_p,
            "stop": stop,
        }
        self.extra_fields = {
            k: v
            for k, v in {
                "max_completion_tokens": max_completion_tokens,
                "seed": seed,
                "presence_penalty": presence_penalty,
                "frequency_penalty": frequency_penalty,
                "logit_bias": logit_bias,
                "logprobs": logprobs,
                "top_logprobs": top_logprobs,
                "user": user,
            }.items()
            if v is not None
        }
        self.extra_fields.update(extra_fields or {})
        self.engine = OpenAICompatClient(
            base_url=base_url or openrouter_settings.base_url,
            api_key=api_key if api_key is not None else openrouter_settings.api_key,
            timeout=timeout if timeout is not None else openrouter_settings.timeout,
            headers=headers,
            response_modifier=self._modify_response,
            client=client,
        )

    def _payload(self, messages: Sequence[Message], options: dict[str, Any], stream: bool) -> dict[str, Any]:
        opts = self.resolve_options(options)
        for key, value in self.defaults.items():
            if getattr(opts, key) is None:
                setattr(opts, key, value)
        payload = self.engine.build_payload(
            messages,
            opts,
            model=opts.model or self.model or (self.models[0] if self.models else ""),
            stream=stream,
            extra_fields=self.extra_fields,
        )

        models = opts.extra.get("models", self.models)
        reasoning = opts.extra.get("reasoning", self.reasoning)
        metadata = opts.extra.get("metadata", self.metadata)
        if models:
            payload["models"] = list(models)
        if reasoning is not None:
            payload["reasoning"] = reasoning
        if metadata is not None:
            payload["metadata"] = metadata
        if self.response_format is not None:
            payload["response_format"] = self.response_format
        for i, msg in enumerate(messages):
            details = get_reasoning_details(msg)
            if details:
                payload["messages"][i]["reasoning_details"] = details
        return payload

    @staticmethod
    def _modify_response(msg: Message, raw: dict[str, Any]) -> Message:
        meta = msg.response_meta
        if meta is not None and meta.finish_reason == "error":
            if raw.get("error"):
                msg.extra[TERMINATED_ERROR_KEY] = _parse_terminated_error(raw["error"])
                logger.warning("OpenRouter stream terminated: %s", raw["error"])
            return msg

        choice = _first_choice(raw)
        if choice is None:
            return msg
        body = choice.get("message") or choice.get("delta")
        if body:
            msg.reasoning_content = body.get("reasoning") or ""
            if body.get("reasoning_details"):
                msg.extra[REASONING_DETAILS_KEY] = list(body["reasoning_details"])
        return msg

    def generate(self, messages: Sequence[Message], **options: Any) -> Message:
        return self.engine.create(self._payload(messages, options, stream=False))

    def stream(self, messages: Sequence[Message], **options: Any) -> Iterator[Message]:
        payload = self._payload(messages, options, stream=True)
        return self.engine.stream(payload)


__all__ = [
    "OpenRouterChatModel",
    "StreamTerminatedError",
    "get_reasoning_details",
    "get_stream_terminated_error",
    "REASONING_DETAILS_KEY",
    "TERMINATED_ERROR_KEY",
]
