"""Tools that chat models can call."""

from .base import BaseTool
from .registry import ToolRegistry, get_tool, register_tool

# Trigger adapter registration side effects
from . import adapters  # noqa: F401

__all__ = ["BaseTool", "ToolRegistry", "get_tool", "register_tool"]
