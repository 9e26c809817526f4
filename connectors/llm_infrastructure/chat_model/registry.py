"""Registry for chat model implementations."""

from __future__ import annotations

from typing import Any, Type, Union

from .base import BaseAgenticModel, BaseChatModel

ChatModelType = Union[BaseChatModel, BaseAgenticModel]


class ChatModelRegistry:
    """Global registry for chat models.

    Example:
        ```python
        model = get_chat_model("openrouter", model="openai/gpt-4o-mini")
        reply = model.generate([Message.user("hi")])
        ```
    """

    _registry: dict[str, dict[str, Type[ChatModelType]]] = {}

    @classmethod
    def register(cls, name: str, model_cls: Type[ChatModelType], version: str = "v1") -> None:
        cls._registry.setdefault(name, {})
        if version in cls._registry[name]:
            raise ValueError(f"Chat model '{name}' version '{version}' already registered")
        cls._registry[name][version] = model_cls

    @classmethod
    def get(cls, name: str, version: str = "v1", **kwargs: Any) -> ChatModelType:
        if name not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise ValueError(f"Unknown chat model '{name}'. Available: {available}")
        if version not in cls._registry[name]:
            versions = ", ".join(cls._registry[name].keys())
            raise ValueError(f"Unknown version '{version}' for '{name}'. Available: {versions}")
        model_cls = cls._registry[name][version]
        kwargs.setdefault("alias", name)
        return model_cls(**kwargs)

    @classmethod
    def list_methods(cls) -> dict[str, list[str]]:
        return {name: list(versions.keys()) for name, versions in cls._registry.items()}


def register_chat_model(name: str, version: str = "v1"):
    """Decorator to register a chat model adapter."""
    def decorator(cls: Type[ChatModelType]) -> Type[ChatModelType]:
        ChatModelRegistry.register(name, cls, version=version)
        return cls
    return decorator


def get_chat_model(name: str, version: str = "v1", **kwargs: Any) -> ChatModelType:
    return ChatModelRegistry.get(name, version=version, **kwargs)


__all__ = ["ChatModelRegistry", "register_chat_model", "get_chat_model"]
