"""Base class for tools callable by chat models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from connectors.schema import ToolInfo


class BaseTool(ABC):
    """A tool invoked with JSON arguments and returning a JSON string.

    Example:
        ```python
        @register_tool("echo", version="v1")
        class EchoTool(BaseTool):
            def info(self):
                return ToolInfo(name="echo", desc="echo the input")

            def invokable_run(self, arguments):
                return arguments
        ```
    """

    type_name: str = ""

    def __init__(self, **kwargs: Any) -> None:
        self.config = kwargs

    @abstractmethod
    def info(self) -> ToolInfo:
        """Describe the tool for binding to a chat model."""
        raise NotImplementedError

    @abstractmethod
    def invokable_run(self, arguments: str) -> str:
        """Run the tool with JSON-encoded arguments."""
        raise NotImplementedError

    def get_type(self) -> str:
        return self.type_name or self.__class__.__name__

    def is_callbacks_enabled(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.config})"


__all__ = ["BaseTool"]
