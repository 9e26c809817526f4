"""Zhipu GLM chat model over its OpenAI-compatible endpoint."""

from __future__ import annotations

from typing import Any, Iterator, Sequence

from connectors.config.settings import zhipu_settings
from connectors.schema import Message, ToolChoice

from ...errors import ConfigError
from ..base import BaseChatModel, ChatOptions
from ..engines.openai_compat import OpenAICompatClient
from ..registry import register_chat_model

THINKING_ENABLED = "enabled"
THINKING_DISABLED = "disabled"

# Request fields fixed at construction and sent with every call.
_SAMPLING_FIELDS = (
    "presence_penalty",
    "frequency_penalty",
    "seed",
    "response_format",
    "logit_bias",
    "user",
)


def validate_tool_options(opts: ChatOptions) -> None:
    """Reject tool choice combinations the Zhipu API cannot express."""
    if opts.tool_choice is None:
        return
    if opts.tool_choice == ToolChoice.ALLOWED and opts.allowed_tool_names:
        raise ConfigError("tool_choice 'allowed' is not supported when allowed tool names are present")
    if opts.tool_choice == ToolChoice.FORCED:
        if opts.allowed_tool_names and len(opts.allowed_tool_names) > 1:
            raise ConfigError("only one allowed tool name can be configured for tool_choice 'forced'")
        if not opts.tools:
            raise ConfigError("tool_choice 'forced' requires at least one tool")


@register_chat_model("zhipu", version="v1")
class ZhipuChatModel(BaseChatModel):
    """GLM models (glm-4-flash, glm-4.5, ...) from open.bigmodel.cn.

    ``thinking`` switches the deep-thinking mode of GLM-4.5+ models and may
    be overridden per call with ``thinking="enabled"``.
    """

    type_name = "Zhipu"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        stop: list[str] | None = None,
        presence_penalty: float | None = None,
        frequency_penalty: float | None = None,
        seed: int | None = None,
        response_format: dict[str, Any] | None = None,
        logit_bias: dict[str, int] | None = None,
        user: str | None = None,
        thinking: str | None = None,
        headers: dict[str, str] | None = None,
        client: Any | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if thinking is not None and thinking not in (THINKING_ENABLED, THINKING_DISABLED):
            raise ConfigError(f"[ZhipuChatModel] unknown thinking type: {thinking}")
        self.model = model or zhipu_settings.model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.stop = stop
        self.thinking = thinking
        self.sampling = {
            "presence_penalty": presence_penalty,
            "frequency_penalty": frequency_penalty,
            "seed": seed,
            "response_format": response_format,
            "logit_bias": logit_bias,
            "user": user,
        }
        self.engine = OpenAICompatClient(
            base_url=base_url or zhipu_settings.base_url,
            api_key=api_key if api_key is not None else zhipu_settings.api_key,
            timeout=timeout if timeout is not None else zhipu_settings.timeout,
            headers=headers,
            client=client,
        )

    def _payload(self, messages: Sequence[Message], options: dict[str, Any], stream: bool) -> dict[str, Any]:
        opts = self.resolve_options(options)
        validate_tool_options(opts)
        for key in ("max_tokens", "temperature", "top_p", "stop"):
            if getattr(opts, key) is None:
                setattr(opts, key, getattr(self, key))

        extra_fields = {k: v for k, v in self.sampling.items() if v is not None}
        for key in _SAMPLING_FIELDS:
            if opts.extra.get(key) is not None:
                extra_fields[key] = opts.extra[key]
        thinking = opts.extra.get("thinking", self.thinking)
        if thinking is not None:
            extra_fields["thinking"] = {"type": thinking}

        return self.engine.build_payload(
            messages,
            opts,
            model=opts.model or self.model,
            stream=stream,
            extra_fields=extra_fields,
        )

    def generate(self, messages: Sequence[Message], **options: Any) -> Message:
        return self.engine.create(self._payload(messages, options, stream=False))

    def stream(self, messages: Sequence[Message], **options: Any) -> Iterator[Message]:
        payload = self._payload(messages, options, stream=True)
        return self.engine.stream(payload)


__all__ = ["ZhipuChatModel", "validate_tool_options", "THINKING_ENABLED", "THINKING_DISABLED"]
