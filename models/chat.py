"""Datenmodelle für Nachrichten, Gruppen und Unterhaltungen (Pydantic v2)."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

PREVIEW_LENGTH = 50


class MessageType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"
    ANNOUNCEMENT = "announcement"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MessageType":
        """Unbekannt oder leer → direct."""
        if value is None:
            return cls.DIRECT
        normalized = str(value).strip().lower()
        for t in cls:
            if t.value == normalized:
                return t
        return cls.DIRECT


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    sender_id: str
    sender_name: Optional[str] = None
    recipient_id: Optional[str] = None   # nur bei Direktnachrichten
    group_id: Optional[str] = None       # nur bei Gruppen/Ankündigungen
    content: str
    type: MessageType = MessageType.DIRECT
    is_read: bool = False
    created_at: datetime

    def is_from(self, user_id: str) -> bool:
        return self.sender_id == user_id


class GroupMember(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    user_name: Optional[str] = None
    user_role: Optional[str] = None


class MessageGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    school_id: Optional[str] = None
    created_by: str
    type: MessageType = MessageType.GROUP
    members: list[GroupMember] = []
    created_at: Optional[datetime] = None

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def is_member(self, user_id: str) -> bool:
        return user_id in self.member_ids


class Conversation(BaseModel):
    """Listeneintrag: Direktunterhaltung oder Gruppe mit letzter Nachricht."""

    model_config = ConfigDict(frozen=True)

    id: str                               # Partner-ID bzw. Gruppen-ID
    name: str
    is_group: bool
    last_message: Optional[Message] = None
    unread_count: int = Field(0, ge=0)
    participant_ids: list[str] = []
    participant_role: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def has_unread(self) -> bool:
        return self.unread_count > 0

    @property
    def last_activity_time(self) -> Optional[datetime]:
        if self.last_message is not None:
            return self.last_message.created_at
        return self.created_at

    @property
    def last_message_preview(self) -> str:
        if self.last_message is None:
            return ""
        content = self.last_message.content
        if len(content) > PREVIEW_LENGTH:
            return content[:PREVIEW_LENGTH] + "..."
        return content
