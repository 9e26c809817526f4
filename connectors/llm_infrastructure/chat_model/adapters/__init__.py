"""Chat model adapters registered to the registry."""

# Import adapters to trigger @register_chat_model side effects
from .ark import ArkChatModel
from .gemini import GeminiChatModel
from .hunyuan import HunyuanChatModel
from .openrouter import OpenRouterChatModel
from .zhipu import ZhipuChatModel
from .agentic_openai import AgenticOpenAIModel

__all__ = [
    "ArkChatModel",
    "GeminiChatModel",
    "HunyuanChatModel",
    "OpenRouterChatModel",
    "ZhipuChatModel",
    "AgenticOpenAIModel",
]
