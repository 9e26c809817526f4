"""Base classes for chat models."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from connectors.schema import AgenticMessage, AgenticToolChoice, Message, ToolChoice, ToolInfo

from ..errors import ConfigError

COMMON_OPTION_KEYS = (
    "model",
    "temperature",
    "max_tokens",
    "top_p",
    "stop",
    "tools",
    "tool_choice",
    "allowed_tool_names",
)


@dataclass
class ChatOptions:
    """Per-call options shared by every chat model.

    Anything an adapter understands beyond these lands in ``extra``.
    """

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    stop: list[str] | None = None
    tools: list[ToolInfo] | None = None
    tool_choice: ToolChoice | None = None
    allowed_tool_names: list[str] | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class BaseChatModel(ABC):
    """Common interface for all chat models.

    Each chat model should:
    1. Inherit from this class
    2. Implement ``generate()`` and ``stream()``
    3. Register itself using the @register_chat_model decorator

    Tools bound with :meth:`bind_tools` / :meth:`bind_forced_tools` are used
    on every call unless ``tools=`` is passed explicitly. :meth:`with_tools`
    leaves this instance untouched and returns a bound copy.

    Example:
        ```python
        model = get_chat_model("zhipu", api_key="...", model="glm-4-flash")
        reply = model.generate([Message.user("hello")], temperature=0.2)
        for chunk in model.stream([Message.user("hello")]):
            print(chunk.content, end="")
        ```
    """

    type_name: str = ""

    def __init__(self, **kwargs: Any) -> None:
        self.config = kwargs
        self.tools: list[ToolInfo] = []
        self.tool_choice: ToolChoice | None = None

    @abstractmethod
    def generate(self, messages: Sequence[Message], **options: Any) -> Message:
        """Return the full assistant reply."""
        raise NotImplementedError

    @abstractmethod
    def stream(self, messages: Sequence[Message], **options: Any) -> Iterator[Message]:
        """Yield assistant reply chunks; ``concat_messages`` rebuilds the reply."""
        raise NotImplementedError

    def with_tools(self, tools: Sequence[ToolInfo]) -> BaseChatModel:
        if not tools:
            raise ConfigError("[with_tools] tools are required")
        bound = copy.copy(self)
        bound.tools = list(tools)
        bound.tool_choice = ToolChoice.ALLOWED
        return bound

    def bind_tools(self, tools: Sequence[ToolInfo]) -> None:
        if not tools:
            raise ConfigError("[bind_tools] tools are required")
        self.tools = list(tools)
        self.tool_choice = ToolChoice.ALLOWED

    def bind_forced_tools(self, tools: Sequence[ToolInfo]) -> None:
        if not tools:
            raise ConfigError("[bind_forced_tools] tools are required")
        self.tools = list(tools)
        self.tool_choice = ToolChoice.FORCED

    def resolve_options(self, options: dict[str, Any]) -> ChatOptions:
        """Split call options into the common ones and adapter extras."""
        extra = {k: v for k, v in options.items() if k not in COMMON_OPTION_KEYS}
        tools = options.get("tools")
        tool_choice = options.get("tool_choice")
        stop = options.get("stop")
        allowed = options.get("allowed_tool_names")
        return ChatOptions(
            model=options.get("model"),
            temperature=options.get("temperature"),
            max_tokens=options.get("max_tokens"),
            top_p=options.get("top_p"),
            stop=list(stop) if stop else None,
            tools=list(tools) if tools is not None else (list(self.tools) or None),
            tool_choice=ToolChoice(tool_choice) if tool_choice is not None else self.tool_choice,
            allowed_tool_names=list(allowed) if allowed else None,
            extra=extra,
        )

    def get_type(self) -> str:
        return self.type_name or self.__class__.__name__

    def is_callbacks_enabled(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.config})"


class BaseAgenticModel(ABC):
    """Chat model taking and producing :class:`AgenticMessage` objects."""

    type_name: str = ""

    def __init__(self, **kwargs: Any) -> None:
        self.config = kwargs
        self.tools: list[ToolInfo] = []

    @abstractmethod
    def generate(self, messages: Sequence[AgenticMessage], **options: Any) -> AgenticMessage:
        raise NotImplementedError

    @abstractmethod
    def stream(self, messages: Sequence[AgenticMessage], **options: Any) -> Iterator[AgenticMessage]:
        raise NotImplementedError

    def with_tools(self, tools: Sequence[ToolInfo]) -> BaseAgenticModel:
        if not tools:
            raise ConfigError("[with_tools] function tools are required")
        bound = copy.copy(self)
        bound.tools = list(tools)
        return bound

    def get_type(self) -> str:
        return self.type_name or self.__class__.__name__

    def is_callbacks_enabled(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.config})"


__all__ = ["AgenticToolChoice", "BaseAgenticModel", "BaseChatModel", "ChatOptions", "COMMON_OPTION_KEYS"]
