"""Events flowing from the model capability to the aggregator.

File events always carry the path so chunks of different files may be
interleaved; begin/end pairs for one path never overlap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from vibecode.common.enums import StreamEventType


@dataclass(frozen=True)
class StreamEvent:
    type: StreamEventType
    text: str = ""
    path: str = ""
    data: bytes = b""
    tool_name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def text_chunk(cls, text: str) -> StreamEvent:
        return cls(StreamEventType.TEXT_CHUNK, text=text)

    @classmethod
    def file_begin(cls, path: str) -> StreamEvent:
        return cls(StreamEventType.FILE_BEGIN, path=path)

    @classmethod
    def file_chunk(cls, path: str, data: bytes | str) -> StreamEvent:
        return cls(StreamEventType.FILE_CHUNK, path=path, data=data.encode("utf-8") if isinstance(data, str) else data)

    @classmethod
    def file_end(cls, path: str) -> StreamEvent:
        return cls(StreamEventType.FILE_END, path=path)

    @classmethod
    def tool_call(cls, name: str, arguments: dict[str, Any] | None = None) -> StreamEvent:
        return cls(StreamEventType.TOOL_CALL, tool_name=name, payload=arguments or {})

    @classmethod
    def done(cls, **payload: Any) -> StreamEvent:
        return cls(StreamEventType.DONE, payload=payload)

    @classmethod
    def error(cls, message: str) -> StreamEvent:
        return cls(StreamEventType.ERROR, text=message)
