"""
Request construction for bot API endpoints.

Each endpoint is a pydantic model whose non-empty fields become the request
body. ``Endpoint.request`` binds it to a token and base URL and produces the
``ApiRequest`` a transport sends.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal, Union

import httpx
from pydantic import BaseModel, ConfigDict

from .exceptions import RequestConstructionError

DEFAULT_API_URL = "https://api.telegram.org"


@dataclass(frozen=True)
class ApiRequest:
    """
    Fully built request, ready for a transport.

    ``files`` is set for multipart uploads; in that case ``params`` holds
    form fields already encoded as strings.
    """

    method: str
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    files: dict[str, tuple[str, bytes]] | None = None
    read_timeout: float | None = None


class ParseMode(str, Enum):
    MARKDOWN = "Markdown"
    MARKDOWN_V2 = "MarkdownV2"
    HTML = "HTML"


Receiver = Union[int, str]


def parse_receiver(value: str) -> Receiver:
    """
    Parse a chat reference given as text.

    Numeric values (including negative group ids) become ints; ``@username``
    stays a string.

    Raises:
        ValueError: If the value is neither form
    """
    value = value.strip()
    digits = value[1:] if value.startswith("-") else value
    if digits.isdigit():
        return int(value)
    if value.startswith("@") and len(value) > 1:
        return value
    raise ValueError(f"Invalid receiver: {value!r} (expected chat id or @username)")


class MarkupModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class InlineKeyboardButton(MarkupModel):
    text: str
    url: str | None = None
    callback_data: str | None = None
    switch_inline_query: str | None = None
    switch_inline_query_current_chat: str | None = None
    callback_game: dict[str, Any] | None = None
    pay: bool | None = None


class InlineKeyboardMarkup(MarkupModel):
    inline_keyboard: list[list[InlineKeyboardButton]]


class KeyboardButton(MarkupModel):
    text: str
    request_contact: bool | None = None
    request_location: bool | None = None


class ReplyKeyboardMarkup(MarkupModel):
    keyboard: list[list[KeyboardButton]]
    resize_keyboard: bool | None = None
    one_time_keyboard: bool | None = None
    selective: bool | None = None


class ReplyKeyboardRemove(MarkupModel):
    remove_keyboard: Literal[True] = True
    selective: bool | None = None


class ForceReply(MarkupModel):
    force_reply: Literal[True] = True
    selective: bool | None = None


ReplyMarkup = Union[
    InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove, ForceReply
]


class InputFile(BaseModel):
    """Raw file content uploaded with a multipart request."""

    model_config = ConfigDict(frozen=True)

    content: bytes
    filename: str = "document"


def build_method_url(base_url: str, token: str, method: str) -> str:
    """
    Compose ``<base_url>/bot<token>/<method>``.

    Raises:
        RequestConstructionError: If the base URL or token cannot form a URL
    """
    if not token or any(c.isspace() or c in "/?#" for c in token):
        raise RequestConstructionError("Bot token is empty or malformed", method)

    try:
        base = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise RequestConstructionError(
            f"Invalid API base URL: {e}", method, {"base_url": base_url}
        ) from e

    if base.scheme not in ("http", "https") or not base.host:
        raise RequestConstructionError(
            "API base URL must be an absolute http(s) URL",
            method,
            {"base_url": base_url},
        )

    return f"{str(base).rstrip('/')}/bot{token}/{method}"


class Endpoint(BaseModel):
    """Base class for endpoint parameter models."""

    model_config = ConfigDict(frozen=True)

    method_name: ClassVar[str]

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def request(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        read_timeout: float | None = None,
    ) -> ApiRequest:
        return ApiRequest(
            method=self.method_name,
            url=build_method_url(base_url, token, self.method_name),
            params=self.payload(),
            read_timeout=read_timeout,
        )


class GetUpdates(Endpoint):
    method_name: ClassVar[str] = "getUpdates"

    offset: int | None = None
    limit: int | None = None
    timeout: int | None = None
    allowed_updates: list[str] | None = None


class GetMe(Endpoint):
    method_name: ClassVar[str] = "getMe"


class SendMessage(Endpoint):
    method_name: ClassVar[str] = "sendMessage"

    chat_id: Receiver
    text: str
    parse_mode: ParseMode | None = None
    disable_web_page_preview: bool | None = None
    disable_notification: bool | None = None
    reply_to_message_id: int | None = None
    reply_markup: ReplyMarkup | None = None


class SendDocument(Endpoint):
    """
    ``sendDocument``: a document given as ``InputFile`` is uploaded as
    multipart form data, a string is sent as a file id or URL reference.
    """

    method_name: ClassVar[str] = "sendDocument"

    chat_id: Receiver
    document: InputFile | str
    thumb: InputFile | str | None = None
    caption: str | None = None
    parse_mode: ParseMode | None = None
    disable_notification: bool | None = None
    reply_to_message_id: int | None = None
    reply_markup: ReplyMarkup | None = None

    def _uploads(self) -> dict[str, InputFile]:
        uploads = {}
        if isinstance(self.document, InputFile):
            uploads["document"] = self.document
        if isinstance(self.thumb, InputFile):
            uploads["thumb"] = self.thumb
        return uploads

    def request(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        read_timeout: float | None = None,
    ) -> ApiRequest:
        uploads = self._uploads()
        if not uploads:
            return super().request(token, base_url, read_timeout)

        fields = self.model_dump(
            mode="json", exclude_none=True, exclude=set(uploads)
        )
        form = {
            key: value if isinstance(value, str) else json.dumps(value)
            for key, value in fields.items()
        }
        return ApiRequest(
            method=self.method_name,
            url=build_method_url(base_url, token, self.method_name),
            params=form,
            files={
                name: (upload.filename, upload.content)
                for name, upload in uploads.items()
            },
            read_timeout=read_timeout,
        )
