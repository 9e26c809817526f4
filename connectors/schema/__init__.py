"""Common data model shared by all connector components."""

from .agentic import (
    AgenticMessage,
    AgenticResponseMeta,
    AgenticRoleType,
    AgenticToolChoice,
    AllowedTool,
    ContentBlock,
    ContentBlockType,
    StreamingMeta,
    concat_agentic_messages,
)
from .document import Document
from .message import (
    ChatMessagePart,
    ChatMessagePartType,
    FunctionCall,
    MediaURL,
    Message,
    ResponseMeta,
    RoleType,
    TokenUsage,
    ToolCall,
    concat_messages,
    register_extra_concat,
)
from .tool import ToolChoice, ToolInfo

__all__ = [
    "AgenticMessage",
    "AgenticResponseMeta",
    "AgenticRoleType",
    "AgenticToolChoice",
    "AllowedTool",
    "ContentBlock",
    "ContentBlockType",
    "StreamingMeta",
    "concat_agentic_messages",
    "Document",
    "ChatMessagePart",
    "ChatMessagePartType",
    "FunctionCall",
    "MediaURL",
    "Message",
    "ResponseMeta",
    "RoleType",
    "TokenUsage",
    "ToolCall",
    "concat_messages",
    "register_extra_concat",
    "ToolChoice",
    "ToolInfo",
]
