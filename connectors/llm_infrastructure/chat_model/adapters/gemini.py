"""Google Gemini chat model (google-genai ``Client``).

Messages are mapped onto Gemini contents:

- system messages are joined into ``system_instruction``;
- assistant messages use the ``model`` role, everything else ``user``;
- each tool call is paired with its tool response (assistant messages with
  several calls are split, one call per turn) and orphan responses are
  dropped with a warning.

A ``response_schema`` is enforced through a ``provide_structured_response``
function tool; its arguments come back as the message content.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from connectors.config.settings import gemini_settings
from connectors.schema import (
    ChatMessagePart,
    ChatMessagePartType,
    FunctionCall,
    Message,
    ResponseMeta,
    RoleType,
    TokenUsage,
    ToolCall,
    ToolChoice,
    ToolInfo,
)
from connectors.schema.message import CompletionTokensDetails, PromptTokenDetails

from ...errors import ConfigError, VendorError
from ..base import BaseChatModel, ChatOptions
from ..registry import register_chat_model

if TYPE_CHECKING:
    from google import genai

logger = logging.getLogger(__name__)

RESPONSE_FORMATTER_TOOL_NAME = "provide_structured_response"
RESPONSE_FORMATTER_DESCRIPTION = (
    "Use this tool to provide your final structured response. Call this tool when you have "
    "completed your task and are ready to give your final answer."
)
RESPONSE_FORMATTER_INSTRUCTION = (
    "\n\nIMPORTANT: After completing any necessary tool operations, you MUST provide your final "
    "response using the 'provide_structured_response' tool. This is required for all responses."
)
SYSTEM_ONLY_PROMPT = "Please respond based on the system instructions provided."

ROLE_MODEL = "model"
ROLE_USER = "user"

_SCHEMA_TYPES = {
    "object": "OBJECT",
    "array": "ARRAY",
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
}


def convert_json_schema(schema: dict[str, Any] | None) -> dict[str, Any] | None:
    """Convert a JSON schema to a Gemini ``Schema`` dict."""
    if schema is None:
        return None
    raw_type = schema.get("type")
    nullable = False
    if isinstance(raw_type, list):
        nullable = "null" in raw_type
        raw_type = next((t for t in raw_type if t != "null"), None)
    out: dict[str, Any] = {"type": _SCHEMA_TYPES.get(raw_type or "", "TYPE_UNSPECIFIED")}
    if raw_type is not None and raw_type not in _SCHEMA_TYPES:
        logger.warning("Unsupported schema type for gemini: %s", raw_type)
    for key in ("description", "format"):
        if schema.get(key):
            out[key] = schema[key]
    if nullable or schema.get("nullable"):
        out["nullable"] = True
    if raw_type == "object":
        props = schema.get("properties") or {}
        if props:
            out["properties"] = {name: convert_json_schema(prop) for name, prop in props.items() if prop}
        if schema.get("required"):
            out["required"] = list(schema["required"])
    elif raw_type == "array" and schema.get("items"):
        out["items"] = convert_json_schema(schema["items"])
    elif raw_type == "string" and schema.get("enum"):
        enums = schema["enum"]
        if not all(isinstance(e, str) for e in enums):
            raise ConfigError(f"enum value must be a string, schema: {schema}")
        out["enum"] = list(enums)
    return out


def to_gemini_tools(tools: Sequence[ToolInfo]) -> list[dict[str, Any]]:
    """All function declarations go into a single Gemini tool."""
    declarations = [
        {
            "name": tool.name,
            "description": tool.desc,
            "parameters": convert_json_schema(tool.to_json_schema()),
        }
        for tool in tools
    ]
    return [{"function_declarations": declarations}]


def tool_config_for(tool_choice: ToolChoice | None, tool_count: int) -> dict[str, Any] | None:
    if tool_count > 0:
        return {"function_calling_config": {"mode": "ANY"}}
    if tool_choice is None:
        return None
    if tool_choice == ToolChoice.FORBIDDEN:
        return {"function_calling_config": {"mode": "NONE"}}
    if tool_choice == ToolChoice.ALLOWED:
        return {"function_calling_config": {"mode": "AUTO"}}
    if tool_choice == ToolChoice.FORCED:
        raise ConfigError("tool choice is forced but no tools are provided")
    raise ConfigError(f"tool choice={tool_choice} not support")


def _split_tool_calls(msg: Message) -> list[Message]:
    if len(msg.tool_calls) <= 1:
        return [msg]
    return [
        Message(
            role=msg.role,
            content=msg.content,
            multi_content=list(msg.multi_content),
            tool_call_id=call.id,
            tool_name=call.function.name,
            tool_calls=[call],
            response_meta=msg.response_meta,
        )
        for call in msg.tool_calls
    ]


def pair_tool_responses(messages: Sequence[Message]) -> list[Message]:
    """Put every tool response directly after its (single) tool call."""
    call_ids = {call.id for msg in messages for call in msg.tool_calls}
    responses = {m.tool_call_id: m for m in messages if m.role == RoleType.TOOL and m.tool_call_id}

    result: list[Message] = []
    for msg in messages:
        if not msg.tool_calls:
            if msg.role != RoleType.TOOL:
                result.append(msg)
            continue
        for call_msg in _split_tool_calls(msg):
            resp = responses.pop(call_msg.tool_calls[0].id, None)
            if resp is not None:
                result.append(call_msg)
                result.append(resp)

    for resp_id, resp in responses.items():
        if resp_id not in call_ids:
            logger.warning("Tool response has no corresponding tool call: id=%s tool=%s", resp_id, resp.tool_name)
    return result


def _media_parts(parts: Sequence[ChatMessagePart]) -> list[dict[str, Any]]:
    out = []
    for part in parts:
        if part.type == ChatMessagePartType.TEXT:
            out.append({"text": part.text})
            continue
        media = getattr(part, part.type.value)
        if media is not None:
            out.append({"file_data": {"file_uri": media.uri or media.url, "mime_type": media.mime_type}})
    return out


def message_to_parts(msg: Message) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    if msg.role != RoleType.TOOL:
        for call in msg.tool_calls:
            try:
                args = json.loads(call.function.arguments or "{}")
            except ValueError as exc:
                raise ConfigError(f"unmarshal schema tool call arguments to map fail: {exc}") from exc
            parts.append({"function_call": {"name": call.function.name, "args": args}})
    if msg.role == RoleType.TOOL:
        try:
            response = json.loads(msg.content)
        except ValueError as exc:
            raise ConfigError(f"unmarshal schema tool call response fail: {exc}") from exc
        if not isinstance(response, dict):
            response = {"result": response}
        parts.append({"function_response": {"name": msg.tool_name, "response": response}})
        return parts
    if msg.content:
        parts.append({"text": msg.content})
    parts.extend(_media_parts(msg.multi_content))
    return parts


def to_gemini_role(role: RoleType) -> str:
    return ROLE_MODEL if role == RoleType.ASSISTANT else ROLE_USER


def build_contents(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Return ``(system_instruction, contents)`` for the conversation."""
    if not messages:
        raise ConfigError("no input messages provided")
    paired = pair_tool_responses(messages)
    if not paired:
        raise ConfigError("gemini input is empty")
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []
    for msg in paired[:-1]:
        if msg.role == RoleType.SYSTEM:
            system_parts.append(msg.content)
            continue
        contents.append({"role": to_gemini_role(msg.role), "parts": message_to_parts(msg)})

    last = paired[-1]
    if last.role == RoleType.SYSTEM:
        system_parts.append(last.content)
        last = Message.user(SYSTEM_ONLY_PROMPT)
    contents.append({"role": to_gemini_role(last.role), "parts": message_to_parts(last)})
    return "\n".join(system_parts), contents


def generate_tool_call_id(name: str) -> str:
    return f"{name}_{uuid.uuid4()}"


def _enum_value(value: Any) -> str:
    if value is None:
        return ""
    return str(getattr(value, "value", value))


def convert_response(resp: Any) -> Message:
    candidates = list(getattr(resp, "candidates", None) or [])
    if not candidates:
        raise VendorError("[Gemini] gemini result is empty")
    candidate = candidates[0]
    msg = Message(
        role=RoleType.ASSISTANT,
        response_meta=ResponseMeta(finish_reason=_enum_value(getattr(candidate, "finish_reason", None))),
    )
    content = getattr(candidate, "content", None)
    texts: list[str] = []
    thoughts: list[str] = []
    if content is not None:
        msg.role = RoleType.ASSISTANT if (content.role or ROLE_MODEL) == ROLE_MODEL else RoleType.USER
        for part in content.parts or []:
            if getattr(part, "thought", None) and part.text:
                thoughts.append(part.text)
            elif part.text:
                texts.append(part.text)
            elif part.function_call is not None:
                call = part.function_call
                msg.tool_calls.append(
                    ToolCall(
                        id=call.id or generate_tool_call_id(call.name),
                        function=FunctionCall(
                            name=call.name,
                            arguments=json.dumps(call.args or {}, ensure_ascii=False),
                        ),
                    )
                )
            elif getattr(part, "code_execution_result", None) is not None:
                texts.append(part.code_execution_result.output or "")
            elif getattr(part, "executable_code", None) is not None:
                texts.append(part.executable_code.code or "")
            else:
                raise VendorError(f"[Gemini] unsupported part type: {part}")
    if len(texts) == 1:
        msg.content = texts[0]
    elif len(texts) > 1:
        msg.multi_content = [ChatMessagePart(type=ChatMessagePartType.TEXT, text=t) for t in texts]
    msg.reasoning_content = "".join(thoughts)

    formatted = [c for c in msg.tool_calls if c.function.name == RESPONSE_FORMATTER_TOOL_NAME]
    if formatted:
        msg.content = formatted[-1].function.arguments
        msg.tool_calls = [c for c in msg.tool_calls if c.function.name != RESPONSE_FORMATTER_TOOL_NAME]

    usage = getattr(resp, "usage_metadata", None)
    if usage is not None:
        msg.response_meta.usage = TokenUsage(
            prompt_tokens=usage.prompt_token_count or 0,
            completion_tokens=usage.candidates_token_count or 0,
            total_tokens=usage.total_token_count or 0,
            prompt_token_details=PromptTokenDetails(
                cached_tokens=getattr(usage, "cached_content_token_count", None) or 0
            ),
            completion_tokens_details=CompletionTokensDetails(
                reasoning_tokens=getattr(usage, "thoughts_token_count", None) or 0
            ),
        )
    return msg


@register_chat_model("gemini", version="v1")
class GeminiChatModel(BaseChatModel):
    type_name = "Gemini"

    def __init__(
        self,
        client: genai.Client | None = None,
        model: str | None = None,
        api_key: str | None = None,
        project: str | None = None,
        location: str | None = None,
        publisher: str = "google",
        generate_content_config: Any = None,
        response_schema: dict[str, Any] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if client is None:
            from google import genai

            if gemini_settings.vertexai:
                client = genai.Client(
                    vertexai=True,
                    project=project or gemini_settings.project,
                    location=location or gemini_settings.location,
                )
            else:
                key = api_key or gemini_settings.api_key
                if not key:
                    raise ConfigError("gemini: client must be provided")
                client = genai.Client(api_key=key)
        self.client = client

        model = model or gemini_settings.model
        if not model:
            raise ConfigError("gemini: model name must be set")
        if project and location and "/" not in model:
            model = f"projects/{project}/locations/{location}/publishers/{publisher}/models/{model}"
        self.model = model
        self.generate_content_config = generate_content_config
        self.response_schema = response_schema
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.top_k = top_k

    def build_config(self, opts: ChatOptions, system_instruction: str) -> dict[str, Any]:
        """Generation config as a dict of ``GenerateContentConfig`` fields."""
        base = self.generate_content_config
        if base is None:
            config: dict[str, Any] = {}
        elif isinstance(base, dict):
            config = dict(base)
        else:
            config = base.model_dump(exclude_none=True)

        top_k = opts.extra.get("top_k", self.top_k)
        max_tokens = opts.max_tokens if opts.max_tokens is not None else self.max_tokens
        temperature = opts.temperature if opts.temperature is not None else self.temperature
        top_p = opts.top_p if opts.top_p is not None else self.top_p
        if top_k is not None:
            config["top_k"] = float(top_k)
        if max_tokens is not None:
            config["max_output_tokens"] = int(max_tokens)
        if temperature is not None:
            config["temperature"] = temperature
        if top_p is not None:
            config["top_p"] = top_p
        if opts.stop:
            config["stop_sequences"] = list(opts.stop)

        response_schema = opts.extra.get("response_schema", self.response_schema)
        if response_schema is not None:
            system_instruction = (system_instruction + "\n" if system_instruction else "") + RESPONSE_FORMATTER_INSTRUCTION
        if system_instruction:
            config["system_instruction"] = system_instruction

        tools = to_gemini_tools(opts.tools) if opts.tools else []
        if response_schema is not None:
            formatter = {
                "name": RESPONSE_FORMATTER_TOOL_NAME,
                "description": RESPONSE_FORMATTER_DESCRIPTION,
                "parameters": convert_json_schema(response_schema),
            }
            if tools:
                tools[0]["function_declarations"].append(formatter)
            else:
                tools = [{"function_declarations": [formatter]}]
        if tools:
            config["tools"] = tools
        tool_config = tool_config_for(opts.tool_choice, len(tools))
        if tool_config is not None:
            config["tool_config"] = tool_config
        return config

    def _prepare(self, messages: Sequence[Message], options: dict[str, Any]) -> dict[str, Any]:
        from google.genai import types

        opts = self.resolve_options(options)
        system_instruction, contents = build_contents(messages)
        config = self.build_config(opts, system_instruction)
        return {
            "model": opts.model or self.model,
            "contents": contents,
            "config": types.GenerateContentConfig(**config),
        }

    def generate(self, messages: Sequence[Message], **options: Any) -> Message:
        req = self._prepare(messages, options)
        try:
            resp = self.client.models.generate_content(**req)
        except Exception as exc:
            logger.error("Gemini generate_content for %s failed: %s", req["model"], exc)
            raise VendorError(f"[Gemini] send message fail: {exc}") from exc
        return convert_response(resp)

    def stream(self, messages: Sequence[Message], **options: Any) -> Iterator[Message]:
        req = self._prepare(messages, options)
        return self._iter_stream(req)

    def _iter_stream(self, req: dict[str, Any]) -> Iterator[Message]:
        try:
            chunks = self.client.models.generate_content_stream(**req)
        except Exception as exc:
            logger.error("Gemini generate_content_stream for %s failed: %s", req["model"], exc)
            raise VendorError(f"[Gemini] send message stream fail: {exc}") from exc
        for chunk in chunks:
            yield convert_response(chunk)


__all__ = [
    "GeminiChatModel",
    "build_contents",
    "convert_json_schema",
    "convert_response",
    "pair_tool_responses",
    "tool_config_for",
    "to_gemini_tools",
    "RESPONSE_FORMATTER_TOOL_NAME",
]
