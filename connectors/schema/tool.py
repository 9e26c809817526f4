"""Tool definitions exposed to chat models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ToolChoice(str, Enum):
    """How the model may use the bound tools.

    forbidden: never call a tool
    allowed: the model decides
    forced: the model must call a tool
    """

    FORBIDDEN = "forbidden"
    ALLOWED = "allowed"
    FORCED = "forced"


@dataclass
class ToolInfo:
    """Name, description and JSON-schema parameters of a tool."""

    name: str
    desc: str = ""
    params: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json_schema(self) -> dict[str, Any]:
        if self.params is None:
            return {"type": "object", "properties": {}}
        return dict(self.params)


__all__ = ["ToolChoice", "ToolInfo"]
