"""Telegram notifications. Never log token or chat_id."""

from __future__ import annotations
import logging
from typing import Iterable, Optional

import requests

from wealth_drive.core.events import EngineEvent, EventType

logger = logging.getLogger("wealth_drive.utils.telegram")

DEFAULT_NOTIFY = (EventType.MARGIN_CALL, EventType.ERROR)


def send_telegram(text: str, bot_token: str = "", chat_id: str = "") -> bool:
    """Send message to Telegram. Returns True on success. No-op if not configured."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text}
        r = requests.post(url, json=payload, timeout=10)
        if r.status_code != 200:
            logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
            return False
        return True
    except requests.RequestException as e:
        logger.warning("Telegram error: %s", e)
        return False


class TelegramNotifier:
    """
    Engine listener that forwards selected events (margin calls and errors by
    default) to a Telegram chat.
    """

    def __init__(
        self,
        bot_token: str = "",
        chat_id: str = "",
        event_types: Optional[Iterable[EventType]] = None,
        prefix: str = "wealth_drive",
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.event_types = frozenset(event_types or DEFAULT_NOTIFY)
        self.prefix = prefix
        self.sent = 0

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def format(self, event: EngineEvent) -> str:
        text = f"[{self.prefix}] {event.type.value} at tick {event.tick}"
        if event.message:
            text += f": {event.message}"
        return text

    def __call__(self, event: EngineEvent) -> None:
        if event.type not in self.event_types or not self.enabled:
            return
        if send_telegram(self.format(event), self.bot_token, self.chat_id):
            self.sent += 1
