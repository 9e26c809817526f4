"""Wire-level helpers shared by the chat model adapters."""

from .openai_compat import OpenAICompatClient, message_to_dict, tool_choice_to_openai, tool_to_dict
from .responses_converter import to_input_items, to_output_message
from .responses_events import StreamReceiver, iter_agentic_chunks

__all__ = [
    "OpenAICompatClient",
    "message_to_dict",
    "tool_choice_to_openai",
    "tool_to_dict",
    "to_input_items",
    "to_output_message",
    "StreamReceiver",
    "iter_agentic_chunks",
]
