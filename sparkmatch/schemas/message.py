"""
Sparkmatch — Message schemas.

The send payload is a discriminated union on ``type`` so that a text message
without content, or an image message without an image URL, cannot be built.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl, field_validator

from sparkmatch.schemas.common import Pagination


class TextPayload(BaseModel):
    type: Literal["text"] = "text"
    content: str = Field(min_length=1, max_length=1000)

    @field_validator("content")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Text messages require content")
        return v

    def columns(self) -> dict:
        return {"message_type": "text", "content": self.content}


class ImagePayload(BaseModel):
    type: Literal["image"]
    image_url: HttpUrl

    def columns(self) -> dict:
        return {"message_type": "image", "image_url": str(self.image_url)}


class GifPayload(BaseModel):
    type: Literal["gif"]
    gif_url: HttpUrl

    def columns(self) -> dict:
        return {"message_type": "gif", "gif_url": str(self.gif_url)}


class EmojiPayload(BaseModel):
    type: Literal["emoji"]
    content: str = Field(min_length=1, max_length=32)

    @field_validator("content")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Emoji messages require content")
        return v

    def columns(self) -> dict:
        return {"message_type": "emoji", "content": self.content}


MessagePayload = Annotated[
    Union[TextPayload, ImagePayload, GifPayload, EmojiPayload],
    Field(discriminator="type"),
]


class MessageCreate(BaseModel):
    match_id: UUID
    payload: MessagePayload
    reply_to: Optional[UUID] = None


class MessageEdit(BaseModel):
    content: str = Field(min_length=1, max_length=1000)

    @field_validator("content")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Content must be between 1 and 1000 characters")
        return v


class MessageResponse(BaseModel):
    id: UUID
    match_id: UUID
    sender_id: UUID
    recipient_id: UUID
    message_type: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    gif_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    is_active: bool
    edited_at: Optional[datetime] = None
    reply_to_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageList(BaseModel):
    messages: list[MessageResponse]
    pagination: Pagination


class ReadAllResponse(BaseModel):
    modified_count: int


class UnreadCount(BaseModel):
    unread_count: int


class MessageStats(BaseModel):
    total_sent: int
    total_received: int
    unread_received: int
    todays_sent: int
    message_types: dict[str, int]


class SearchResult(BaseModel):
    messages: list[MessageResponse]
    query: str
    total: int
