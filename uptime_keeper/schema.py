from __future__ import annotations

from pydantic import BaseModel


class TelegramChat(BaseModel):
    id: int | str


class TelegramMessage(BaseModel):
    chat: TelegramChat
    text: str | None = None


class TelegramUpdate(BaseModel):
    """The subset of a Bot API ``Update`` the webhook reads. Other fields are ignored."""

    update_id: int | None = None
    message: TelegramMessage | None = None
