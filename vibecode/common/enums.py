import enum


class GenerationType(str, enum.Enum):
    HTML = "html"
    MULTI_FILE = "multi_file"
    VUE_PROJECT = "vue_project"
    CHAT = "chat"
    AGENT = "agent"

    @property
    def is_streaming(self) -> bool:
        return self in (GenerationType.VUE_PROJECT, GenerationType.CHAT, GenerationType.AGENT)

    @property
    def materializes_files(self) -> bool:
        return self != GenerationType.CHAT and self != GenerationType.AGENT


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class StreamEventType(str, enum.Enum):
    TEXT_CHUNK = "text_chunk"
    FILE_BEGIN = "file_begin"
    FILE_CHUNK = "file_chunk"
    FILE_END = "file_end"
    TOOL_CALL = "tool_call"
    DONE = "done"
    ERROR = "error"


class HtmlAugmentation(str, enum.Enum):
    SERVE = "serve"
    SAVE = "save"
