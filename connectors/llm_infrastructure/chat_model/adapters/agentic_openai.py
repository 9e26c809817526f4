"""OpenAI Responses API agentic model."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from connectors.config.settings import openai_settings
from connectors.schema import AgenticMessage, AgenticToolChoice

from ...errors import ConfigError, VendorError
from ..base import BaseAgenticModel
from ..engines.responses_converter import (
    to_function_tools,
    to_input_items,
    to_output_message,
    to_tool_choice,
)
from ..engines.responses_events import iter_agentic_chunks
from ..registry import register_chat_model

if TYPE_CHECKING:
    from openai import OpenAI

logger = logging.getLogger(__name__)

# Request fields settable at construction and overridable per call.
_REQUEST_OPTIONS = (
    "reasoning",
    "text",
    "store",
    "max_tool_calls",
    "parallel_tool_calls",
    "prompt_cache_key",
)


@register_chat_model("agentic_openai", version="v1")
class AgenticOpenAIModel(BaseAgenticModel):
    """Agentic model over ``client.responses``.

    Besides function tools bound with :meth:`with_tools`, requests may carry
    server tools (``server_tools=[{"type": "web_search"}]``) and remote MCP
    servers (``mcp_tools=[{"type": "mcp", "server_label": ...}]``). Tool
    selection uses ``agentic_tool_choice``; the plain ``tool_choice`` and
    ``stop`` options are rejected.
    """

    type_name = "AgenticOpenAI"

    def __init__(
        self,
        client: OpenAI | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        service_tier: str | None = None,
        include: list[str] | None = None,
        server_tools: list[dict[str, Any]] | None = None,
        mcp_tools: list[dict[str, Any]] | None = None,
        custom_headers: dict[str, str] | None = None,
        extra_fields: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        request_options = {k: kwargs.pop(k) for k in _REQUEST_OPTIONS if k in kwargs}
        super().__init__(**kwargs)
        self.model = model or openai_settings.model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.service_tier = service_tier
        self.include = include
        self.server_tools = list(server_tools or [])
        self.mcp_tools = list(mcp_tools or [])
        self.custom_headers = dict(custom_headers or {})
        self.extra_fields = dict(extra_fields or {})
        self.request_options = request_options

        if client is None:
            from openai import OpenAI

            client_kwargs: dict[str, Any] = {
                "api_key": api_key or openai_settings.api_key or None,
                "timeout": timeout if timeout is not None else openai_settings.timeout,
            }
            if base_url or openai_settings.base_url:
                client_kwargs["base_url"] = base_url or openai_settings.base_url
            if max_retries is not None:
                client_kwargs["max_retries"] = max_retries
            client = OpenAI(**client_kwargs)
        self.client = client

    @staticmethod
    def check_options(options: dict[str, Any]) -> None:
        if options.get("stop") is not None:
            raise ConfigError("'Stop' option is not supported")
        if options.get("tool_choice") is not None:
            raise ConfigError("'ToolChoice' option is not supported")

    def build_request(self, messages: Sequence[AgenticMessage], options: dict[str, Any]) -> dict[str, Any]:
        """Assemble keyword arguments for ``client.responses.create``."""
        self.check_options(options)
        req: dict[str, Any] = {"model": options.get("model") or self.model}
        if not req["model"]:
            raise ConfigError("[AgenticOpenAI] model is required")

        temperature = options.get("temperature", self.temperature)
        top_p = options.get("top_p", self.top_p)
        max_tokens = options.get("max_tokens", self.max_tokens)
        if temperature is not None:
            req["temperature"] = temperature
        if top_p is not None:
            req["top_p"] = top_p
        if max_tokens is not None:
            req["max_output_tokens"] = max_tokens
        if self.service_tier:
            req["service_tier"] = self.service_tier
        if self.include:
            req["include"] = list(self.include)
        for key in _REQUEST_OPTIONS:
            value = options.get(key, self.request_options.get(key))
            if value is not None:
                req[key] = value

        req["input"] = to_input_items(messages)

        function_tools = options.get("tools")
        if function_tools is None:
            function_tools = self.tools
        tools = to_function_tools(function_tools or [])
        tools.extend(options.get("server_tools") or self.server_tools)
        tools.extend(options.get("mcp_tools") or self.mcp_tools)
        if tools:
            req["tools"] = tools

        choice: AgenticToolChoice | None = options.get("agentic_tool_choice")
        tool_choice = to_tool_choice(choice)
        if tool_choice is not None:
            req["tool_choice"] = tool_choice

        headers = {**self.custom_headers, **(options.get("custom_headers") or {})}
        if headers:
            req["extra_headers"] = headers
        extra_fields = {**self.extra_fields, **(options.get("extra_fields") or {})}
        if extra_fields:
            req["extra_body"] = extra_fields
        return req

    def generate(self, messages: Sequence[AgenticMessage], **options: Any) -> AgenticMessage:
        req = self.build_request(messages, options)
        try:
            resp = self.client.responses.create(**req)
        except Exception as exc:
            logger.error("Responses create for %s failed: %s", req["model"], exc)
            raise VendorError(f"[AgenticOpenAI] failed to create response: {exc}") from exc
        return to_output_message(resp)

    def stream(self, messages: Sequence[AgenticMessage], **options: Any) -> Iterator[AgenticMessage]:
        req = self.build_request(messages, options)
        try:
            events = self.client.responses.create(stream=True, **req)
        except Exception as exc:
            logger.error("Responses stream for %s failed: %s", req["model"], exc)
            raise VendorError(f"[AgenticOpenAI] failed to create response stream: {exc}") from exc
        return self._iter_stream(events)

    @staticmethod
    def _iter_stream(events: Any) -> Iterator[AgenticMessage]:
        try:
            yield from iter_agentic_chunks(events)
        finally:
            close = getattr(events, "close", None)
            if close is not None:
                close()


__all__ = ["AgenticOpenAIModel"]
