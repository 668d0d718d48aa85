from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from common.ids import generate_id

DEFAULT_TITLE = "New Chat"
MIGRATED_TITLE = "Migrated Chat"

Role = Literal["user", "assistant", "system"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    id: str = Field(default_factory=generate_id)
    role: Role
    content: str = ""
    images: list[str] | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    error: bool = False
    token_count: int | None = None
    cost: float | None = None


class ChatSession(BaseModel):
    id: str = Field(default_factory=generate_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    pinned: bool = False

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_storage(cls, data: dict) -> "ChatSession":
        return cls.model_validate(data)
