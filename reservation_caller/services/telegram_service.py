"""Telegram Bot API client for the human approval channel."""

import logging
from typing import Any

import httpx

from reservation_caller.config import Config, get_config

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"
CALLBACK_PREFIX = "rc"


def callback_data(decision: str, call_id: str) -> str:
    """Inline button payload, ``rc|<decision>|<call id>``."""
    return f"{CALLBACK_PREFIX}|{decision}|{call_id}"


def parse_callback_data(data: str) -> tuple[str, str] | None:
    """Split an inline button payload into (decision, call id)."""
    parts = data.split("|")
    if len(parts) != 3 or parts[0] != CALLBACK_PREFIX or not parts[2]:
        return None
    return parts[1], parts[2]


def format_approval_prompt(
    call_id: str,
    business_name: str,
    date: str,
    time: str,
    party_size: int,
    notes: str | None = None,
) -> str:
    lines = [
        "📞 Reservation approval needed",
        f"Call: {business_name}",
        f"When: {date} {time}",
        f"Party size: {party_size}",
    ]
    if notes:
        lines.append(f"Notes: {notes}")
    lines.extend(["", f"Call ID: {call_id}"])
    return "\n".join(lines)


class TelegramService:
    """Sends approval prompts and replies through a Telegram bot.

    Every method is best effort: when the bot is not configured it does
    nothing, and HTTP failures are logged rather than raised.
    """

    def __init__(
        self,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_config()
        self._client = client

    def is_configured(self) -> bool:
        return self.config.has_telegram_config()

    async def _post(self, method: str, body: dict[str, Any]) -> None:
        if not self.is_configured():
            return

        url = f"{TELEGRAM_API}/bot{self.config.telegram_bot_token}/{method}"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=body)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Telegram {method} failed: {e}")

    async def send_approval_prompt(
        self,
        call_id: str,
        business_name: str,
        date: str,
        time: str,
        party_size: int,
        notes: str | None = None,
    ) -> None:
        """Post the approve / revise / cancel prompt to the configured chat."""
        text = format_approval_prompt(
            call_id, business_name, date, time, party_size, notes
        )
        await self._post(
            "sendMessage",
            {
                "chat_id": self.config.telegram_chat_id,
                "text": text,
                "reply_markup": {
                    "inline_keyboard": [
                        [
                            {"text": "✅ Approve", "callback_data": callback_data("approve", call_id)},
                            {"text": "✏️ Revise", "callback_data": callback_data("revise", call_id)},
                            {"text": "❌ Cancel", "callback_data": callback_data("cancel", call_id)},
                        ]
                    ]
                },
            },
        )

    async def answer_callback_query(self, callback_query_id: str, text: str) -> None:
        await self._post(
            "answerCallbackQuery",
            {"callback_query_id": callback_query_id, "text": text, "show_alert": False},
        )

    async def edit_message(self, chat_id: str | int, message_id: int, text: str) -> None:
        await self._post(
            "editMessageText",
            {"chat_id": chat_id, "message_id": message_id, "text": text},
        )

    async def send_message(self, chat_id: str | int, text: str) -> None:
        await self._post("sendMessage", {"chat_id": chat_id, "text": text})
