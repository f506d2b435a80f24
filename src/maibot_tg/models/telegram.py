"""
Telegram Bot API objects — only the fields the adapter reads.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Username, else "first last"."""
        if self.username:
            return self.username
        if self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.first_name


class Chat(BaseModel):
    id: int
    type: str  # "private" | "group" | "supergroup" | "channel"
    title: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.type == "private"

    @property
    def is_group(self) -> bool:
        return self.type in ("group", "supergroup")


class PhotoSize(BaseModel):
    file_id: str
    width: int = 0
    height: int = 0
    file_size: Optional[int] = None


class Sticker(BaseModel):
    file_id: str
    emoji: Optional[str] = None


class Voice(BaseModel):
    file_id: str
    duration: int = 0
    mime_type: Optional[str] = None


class File(BaseModel):
    file_id: str
    file_path: Optional[str] = None
    file_size: Optional[int] = None


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    date: int
    chat: Chat
    from_user: Optional[User] = Field(default=None, alias="from")
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: list[PhotoSize] = []
    sticker: Optional[Sticker] = None
    voice: Optional[Voice] = None
    reply_to_message: Optional["Message"] = None


class Update(BaseModel):
    update_id: int
    message: Optional[Message] = None
