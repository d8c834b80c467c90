from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from automediarename.http_utils import DEFAULT_HEADERS, post_with_retry

LOGGER = logging.getLogger(__name__)


def notify(text: str, *, extra: dict[str, Any] | None = None) -> bool:
    """Best-effort notification.

    Supported methods:
    - TELEGRAM_BOT_TOKEN + TELEGRAM_CHAT_ID
    - NOTIFY_WEBHOOK_URL (generic POST)

    If no env is configured, this is a no-op. Returns whether a message was
    delivered.
    """

    token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")
    webhook = os.getenv("NOTIFY_WEBHOOK_URL")
    if not (token and chat_id) and not webhook:
        return False

    with httpx.Client(timeout=10.0, headers=DEFAULT_HEADERS) as client:
        if token and chat_id:
            try:
                url = f"https://api.telegram.org/bot{token}/sendMessage"
                payload = {
                    "chat_id": chat_id,
                    "text": text,
                    "disable_web_page_preview": True,
                }
                post_with_retry(client, url, json=payload).raise_for_status()
                return True
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Telegram notification failed: %s", exc)

        if webhook:
            try:
                payload = {"text": text}
                if extra:
                    payload["extra"] = extra
                post_with_retry(client, webhook, json=payload).raise_for_status()
                return True
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Webhook notification failed: %s", exc)
    return False
