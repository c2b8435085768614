from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, TypeAdapter

from vibecode.common.enums import MessageRole


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationEntry(BaseModel):
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_model_message(self) -> dict[str, str]:
        # Tool results are replayed as assistant context; the model API
        # requires a tool_call_id that is not kept across turns.
        if self.role == MessageRole.TOOL:
            return {"role": "assistant", "content": f"[tool output]\n{self.content}"}
        return {"role": self.role.value, "content": self.content}


ConversationHistory = TypeAdapter(list[ConversationEntry])
