"""Server-sent event framing for generation streams.

Text chunks go out as unnamed ``data: {"d": ...}`` frames so a plain
``EventSource.onmessage`` handler can append them.  Progress, completion
and failures use named events.
"""

from __future__ import annotations

import json
from typing import Any

from vibecode.common.enums import StreamEventType
from vibecode.core.streaming.events import StreamEvent

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_FILE_STATUS = {
    StreamEventType.FILE_BEGIN: "begin",
    StreamEventType.FILE_CHUNK: "chunk",
    StreamEventType.FILE_END: "end",
}


def sse_frame(data: dict[str, Any], event: str | None = None) -> str:
    body = json.dumps(data, ensure_ascii=False)
    if event:
        return f"event: {event}\ndata: {body}\n\n"
    return f"data: {body}\n\n"


def business_error_frame(message: str) -> str:
    return sse_frame({"message": message}, event="business-error")


def encode_event(event: StreamEvent) -> str:
    if event.type == StreamEventType.TEXT_CHUNK:
        return sse_frame({"d": event.text})
    if event.type in _FILE_STATUS:
        data: dict[str, Any] = {"path": event.path, "status": _FILE_STATUS[event.type]}
        if event.type == StreamEventType.FILE_CHUNK:
            data["bytes"] = len(event.data)
        return sse_frame(data, event="file")
    if event.type == StreamEventType.TOOL_CALL:
        return sse_frame({"name": event.tool_name, "arguments": event.payload}, event="tool")
    if event.type == StreamEventType.DONE:
        return sse_frame(event.payload, event="done")
    return business_error_frame(event.text)
