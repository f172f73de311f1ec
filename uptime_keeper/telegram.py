from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog


logger = structlog.get_logger(__name__)

TELEGRAM_MAX_MESSAGE_LEN = 3900


class Notifier(Protocol):
    async def notify(self, text: str) -> bool: ...


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    api_base_url: str = "https://api.telegram.org"

    def method_url(self, method: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/bot{self.bot_token}/{method}"


def split_report(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    """Pack whole report lines into messages of at most ``max_len`` characters.

    Lines are never broken unless a single line is longer than ``max_len``.
    """
    body = (text or "").strip()
    if not body:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    current = ""
    for line in body.split("\n"):
        while len(line) > max_len:
            if current.strip():
                parts.append(current.rstrip())
            current = ""
            parts.append(line[:max_len])
            line = line[max_len:]
        joined = f"{current}\n{line}" if current else line
        if len(joined) <= max_len:
            current = joined
        else:
            if current.strip():
                parts.append(current.rstrip())
            current = line
    if current.strip():
        parts.append(current.rstrip())
    return parts


def _redact(config: TelegramConfig, text: str) -> str:
    if config.bot_token:
        return text.replace(config.bot_token, "<redacted>")
    return text


async def call_telegram_api(
    client: httpx.AsyncClient, config: TelegramConfig, method: str, payload: dict
) -> tuple[bool, dict]:
    try:
        resp = await client.post(config.method_url(method), json=payload, timeout=15.0)
        data = resp.json()
        if not isinstance(data, dict):
            return False, {"ok": False, "error": f"unexpected response (status {resp.status_code})"}
        return bool(data.get("ok")), data
    except Exception as e:
        return False, {"ok": False, "error": _redact(config, f"{type(e).__name__}: {e}")}


async def send_telegram_message(
    client: httpx.AsyncClient, config: TelegramConfig, text: str
) -> tuple[bool, dict]:
    payload = {
        "chat_id": config.chat_id,
        "text": text,
        "disable_web_page_preview": True,
    }
    return await call_telegram_api(client, config, "sendMessage", payload)


async def send_report(
    client: httpx.AsyncClient,
    config: TelegramConfig,
    text: str,
    *,
    max_len: int = TELEGRAM_MAX_MESSAGE_LEN,
) -> tuple[bool, list[dict]]:
    """Send ``text`` as one or more messages, stopping at the first rejected part."""
    responses: list[dict] = []
    for part in split_report(text, max_len=max_len):
        ok, resp = await send_telegram_message(client, config, part)
        responses.append(resp)
        if not ok:
            return False, responses
    return True, responses


async def set_webhook(client: httpx.AsyncClient, config: TelegramConfig, url: str) -> tuple[bool, dict]:
    return await call_telegram_api(client, config, "setWebhook", {"url": url, "allowed_updates": ["message"]})


def redact_telegram_response(data: dict) -> str:
    safe = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("description"):
        safe["description"] = data.get("description")
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)


class TelegramNotifier:
    """Delivers plain-text reports to the operator chat.

    Delivery is best-effort: failures are logged and never raised or retried.
    """

    def __init__(self, client: httpx.AsyncClient, config: TelegramConfig) -> None:
        self.client = client
        self.config = config

    def is_configured(self) -> bool:
        return bool(self.config.bot_token and self.config.chat_id)

    async def notify(self, text: str) -> bool:
        if not self.is_configured():
            logger.warning("Telegram not configured, skipping notification")
            return False
        try:
            ok, responses = await send_report(self.client, self.config, text)
        except Exception as e:
            logger.error("Unexpected error sending Telegram notification", error=_redact(self.config, str(e)))
            return False
        if ok:
            logger.info("Telegram notification sent", parts=len(responses))
        else:
            logger.error(
                "Telegram notification failed",
                responses=[redact_telegram_response(r) for r in responses if not r.get("ok")],
            )
        return ok
