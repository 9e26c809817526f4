"""Tencent Hunyuan chat model (tencentcloud ``hunyuan_client``).

Requests are built as plain dicts in the API's PascalCase shape and loaded
into ``models.ChatCompletionsRequest``. Non-streaming responses and
streamed SSE events are both decoded from JSON, so one converter handles
``Message`` and ``Delta`` choices alike.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from connectors.config.settings import hunyuan_settings
from connectors.schema import (
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

from ...errors import ConfigError, VendorError
from ..base import BaseChatModel
from ..registry import register_chat_model

if TYPE_CHECKING:
    from tencentcloud.hunyuan.v20230901.hunyuan_client import HunyuanClient

logger = logging.getLogger(__name__)

DEFAULT_REGION = "ap-guangzhou"

CONTENT_TYPE_TEXT = "text"
CONTENT_TYPE_IMAGE = "image_url"
CONTENT_TYPE_VIDEO_URL = "video_url"
CONTENT_TYPE_VIDEO_FRAMES = "video_frames"

TOOL_CHOICE_NONE = "none"
TOOL_CHOICE_AUTO = "auto"
TOOL_CHOICE_REQUIRED = "custom"

MODEL_LITE = "hunyuan-lite"
MODEL_STANDARD = "hunyuan-standard"
MODEL_LARGE = "hunyuan-large"
MODEL_TURBO = "hunyuan-turbo"
MODEL_T1 = "hunyuan-t1-latest"
MODEL_FUNCTION_CALL = "hunyuan-functioncall"


def to_hunyuan_tools(tools: Sequence[ToolInfo]) -> list[dict[str, Any]]:
    return [
        {
            "Type": "function",
            "Function": {
                "Name": tool.name,
                "Description": tool.desc,
                "Parameters": json.dumps(tool.to_json_schema(), ensure_ascii=False),
            },
        }
        for tool in tools
    ]


def populate_tool_choice(
    req: dict[str, Any],
    tool_choice: ToolChoice | None,
    allowed_tool_names: Sequence[str] | None = None,
) -> None:
    """Set ``ToolChoice`` (and ``CustomTool`` when forced) on the request."""
    if tool_choice is None:
        return
    if tool_choice == ToolChoice.FORBIDDEN:
        req["ToolChoice"] = TOOL_CHOICE_NONE
    elif tool_choice == ToolChoice.ALLOWED:
        req["ToolChoice"] = TOOL_CHOICE_AUTO
    elif tool_choice == ToolChoice.FORCED:
        tools = req.get("Tools") or []
        if not tools:
            raise ConfigError("tool choice is forced but tool is not provided")
        selected = None
        if allowed_tool_names:
            if len(allowed_tool_names) > 1:
                raise ConfigError("only one allowed tool name can be configured")
            name = allowed_tool_names[0]
            by_name = {t["Function"]["Name"]: t for t in tools}
            if name not in by_name:
                raise ConfigError(f"allowed tool name '{name}' not found in tools list")
            selected = by_name[name]
        elif len(tools) == 1:
            selected = tools[0]
        if selected is not None:
            req["CustomTool"] = selected
        req["ToolChoice"] = TOOL_CHOICE_REQUIRED
    else:
        raise ConfigError(f"tool choice={tool_choice} not support")


def _convert_parts(msg: Message) -> list[dict[str, Any]]:
    contents = []
    for part in msg.multi_content:
        if part.type == ChatMessagePartType.TEXT:
            if part.text:
                contents.append({"Type": CONTENT_TYPE_TEXT, "Text": part.text})
        elif part.type == ChatMessagePartType.IMAGE_URL:
            media = part.image_url
            if media is None or not (media.url or media.uri):
                raise ConfigError("image_url must be set for image_url parts in user messages")
            url = media.url or media.uri
            if not url.startswith(("http://", "https://", "data:")) and media.mime_type:
                url = f"data:{media.mime_type};base64,{url}"
            contents.append({"Type": CONTENT_TYPE_IMAGE, "ImageUrl": {"Url": url}})
        elif part.type == ChatMessagePartType.VIDEO_URL:
            media = part.video_url
            if media is None or not (media.url or media.uri):
                raise ConfigError("video_url must be set for video_url parts in user messages")
            contents.append({"Type": CONTENT_TYPE_VIDEO_URL, "VideoUrl": {"Url": media.url or media.uri}})
        else:
            raise ConfigError(f"unsupported chat message part type: {part.type.value}")
    return contents


def convert_message(msg: Message) -> dict[str, Any]:
    """Convert a message to a Hunyuan ``Message`` dict.

    Video frames are passed through from ``msg.extra["video_frames"]`` (a
    list of image URLs) as one ``video_frames`` content.
    """
    out: dict[str, Any] = {"Role": msg.role.value}
    if msg.content:
        out["Content"] = msg.content
    if msg.reasoning_content:
        out["ReasoningContent"] = msg.reasoning_content
    if msg.role == RoleType.TOOL and not msg.tool_calls:
        out["ToolCallId"] = msg.tool_call_id
    if msg.tool_calls:
        out["ToolCalls"] = [
            {
                "Index": call.index or 0,
                "Id": call.id,
                "Type": call.type or "function",
                "Function": {"Name": call.function.name, "Arguments": call.function.arguments},
            }
            for call in msg.tool_calls
        ]
    contents = _convert_parts(msg)
    frames = msg.extra.get(CONTENT_TYPE_VIDEO_FRAMES)
    if frames:
        contents.append({"Type": CONTENT_TYPE_VIDEO_FRAMES, "VideoFrames": {"Frames": list(frames)}})
    if contents:
        out["Contents"] = contents
    return out


def _tool_calls(raw_calls: list[dict[str, Any]] | None) -> list[ToolCall]:
    calls = []
    for raw in raw_calls or []:
        function = raw.get("Function") or {}
        calls.append(
            ToolCall(
                id=raw.get("Id") or "",
                type=raw.get("Type") or "",
                index=raw.get("Index"),
                function=FunctionCall(
                    name=function.get("Name") or "",
                    arguments=function.get("Arguments") or "",
                ),
            )
        )
    return calls


def convert_response(data: dict[str, Any]) -> Message:
    """Convert ``ChatCompletionsResponseParams`` (full or streamed) to a message."""
    msg = Message(role=RoleType.ASSISTANT, response_meta=ResponseMeta())
    for choice in data.get("Choices") or []:
        body = choice.get("Message") or choice.get("Delta")
        if body:
            if body.get("Role"):
                msg.role = RoleType(body["Role"])
            msg.content = body.get("Content") or ""
            msg.reasoning_content = body.get("ReasoningContent") or ""
            msg.tool_calls = _tool_calls(body.get("ToolCalls"))
        if choice.get("FinishReason"):
            msg.response_meta.finish_reason = choice["FinishReason"]
    usage = data.get("Usage")
    if usage:
        msg.response_meta.usage = TokenUsage(
            prompt_tokens=int(usage.get("PromptTokens") or 0),
            completion_tokens=int(usage.get("CompletionTokens") or 0),
            total_tokens=int(usage.get("TotalTokens") or 0),
        )
    return msg


@register_chat_model("hunyuan", version="v1")
class HunyuanChatModel(BaseChatModel):
    type_name = "Hunyuan"

    def __init__(
        self,
        model: str | None = None,
        secret_id: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        language: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        stop: list[str] | None = None,
        client: HunyuanClient | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.model = model or hunyuan_settings.model
        if not self.model:
            raise ConfigError("model is required")
        self.temperature = temperature
        self.top_p = top_p
        self.stop = stop

        if client is None:
            from tencentcloud.common import credential
            from tencentcloud.common.profile.client_profile import ClientProfile
            from tencentcloud.hunyuan.v20230901 import hunyuan_client

            cred = credential.Credential(
                secret_id or hunyuan_settings.secret_id,
                secret_key or hunyuan_settings.secret_key,
            )
            profile = ClientProfile()
            if language:
                profile.language = language
            client = hunyuan_client.HunyuanClient(cred, region or hunyuan_settings.region or DEFAULT_REGION, profile)
        self.client = client

    def build_request(self, messages: Sequence[Message], stream: bool, options: dict[str, Any]) -> dict[str, Any]:
        opts = self.resolve_options(options)
        req: dict[str, Any] = {"Model": opts.model or self.model, "Stream": stream}
        temperature = opts.temperature if opts.temperature is not None else self.temperature
        top_p = opts.top_p if opts.top_p is not None else self.top_p
        stop = opts.stop or self.stop
        if temperature is not None:
            req["Temperature"] = float(temperature)
        if top_p is not None:
            req["TopP"] = float(top_p)
        if stop:
            req["Stop"] = list(stop)
        if opts.tools:
            req["Tools"] = to_hunyuan_tools(opts.tools)
        populate_tool_choice(req, opts.tool_choice, opts.allowed_tool_names)
        req["Messages"] = [convert_message(m) for m in messages]
        return req

    def _call(self, req: dict[str, Any]) -> Any:
        from tencentcloud.hunyuan.v20230901 import models

        request = models.ChatCompletionsRequest()
        request.from_json_string(json.dumps(req, ensure_ascii=False))
        try:
            return self.client.ChatCompletions(request)
        except Exception as exc:
            logger.error("Hunyuan ChatCompletions for %s failed: %s", req["Model"], exc)
            raise VendorError(f"[Hunyuan] ChatCompletions failed: {exc}") from exc

    def generate(self, messages: Sequence[Message], **options: Any) -> Message:
        resp = self._call(self.build_request(messages, False, options))
        return convert_response(json.loads(resp.to_json_string()))

    def stream(self, messages: Sequence[Message], **options: Any) -> Iterator[Message]:
        events = self._call(self.build_request(messages, True, options))
        return self._iter_events(events)

    @staticmethod
    def _receive(events: Any) -> Iterator[Any]:
        iterator = iter(events)
        while True:
            try:
                event = next(iterator)
            except StopIteration:
                return
            except Exception as exc:
                logger.error("Hunyuan stream interrupted: %s", exc)
                raise VendorError(f"[Hunyuan] receive stream event failed: {exc}") from exc
            yield event

    @staticmethod
    def _iter_events(events: Any) -> Iterator[Message]:
        last_index = None
        for event in HunyuanChatModel._receive(events):
            data = event.get("data") if isinstance(event, dict) else event
            if not data:
                continue
            try:
                msg = convert_response(json.loads(data))
            except ValueError as exc:
                raise VendorError(f"[Hunyuan] decode stream event failed: {exc}") from exc
            if msg.tool_calls:
                first = msg.tool_calls[0]
                if not msg.response_meta.finish_reason:
                    last_index = first.index
                elif first.index is None:
                    first.index = last_index
            yield msg


__all__ = [
    "HunyuanChatModel",
    "convert_message",
    "convert_response",
    "populate_tool_choice",
    "to_hunyuan_tools",
]
