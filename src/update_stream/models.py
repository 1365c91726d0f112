"""
Payload models for the bot API.

Only the fields the engine and the bundled calls rely on are declared; every
model keeps unknown fields so nothing the server sends is lost.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for server payloads: immutable, tolerant of unknown fields."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


class User(ApiModel):
    id: int
    is_bot: bool
    first_name: str
    last_name: str | None = None
    username: str | None = None
    language_code: str | None = None


class Chat(ApiModel):
    id: int
    type: str
    title: str | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Document(ApiModel):
    file_id: str
    file_unique_id: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class Message(ApiModel):
    message_id: int
    date: int
    chat: Chat
    from_user: User | None = Field(default=None, alias="from")
    text: str | None = None
    caption: str | None = None
    document: Document | None = None


class Update(ApiModel):
    """
    One event from the long-poll endpoint.

    ``update_id`` grows monotonically; it is the only field the poll loop
    inspects. Everything else stays available through ``model_extra`` and
    the optional typed accessors.
    """

    update_id: int
    message: Message | None = None
    edited_message: Message | None = None
    channel_post: Message | None = None


class Envelope(BaseModel, Generic[T]):
    """Response wrapper shared by every bot API endpoint."""

    model_config = ConfigDict(extra="allow")

    ok: bool
    result: T | None = None
    description: str | None = None
    error_code: int | None = None
    parameters: dict[str, Any] | None = None
