"""Chat models: plain message models and agentic (content block) models."""

from .base import BaseAgenticModel, BaseChatModel, ChatOptions
from .registry import ChatModelRegistry, get_chat_model, register_chat_model

# Trigger adapter registration side effects
from . import adapters  # noqa: F401

__all__ = [
    "BaseAgenticModel",
    "BaseChatModel",
    "ChatOptions",
    "ChatModelRegistry",
    "get_chat_model",
    "register_chat_model",
]
