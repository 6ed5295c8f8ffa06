"""Telegram push adapter — implements PushTransport.

Wraps a telegram.Bot instance. The subscription destination is
{"chat_id": <int>}; the message is the dispatcher payload
({"title", "body", "data"}), sent as plain text so user-written titles
never trip Telegram's entity parser.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import BadRequest, Forbidden, TelegramError

from src.ports.notification_port import DeliveryResult

logger = logging.getLogger(__name__)

# BadRequest messages that mean the chat will never accept messages again
_GONE_MARKERS = ("chat not found", "user is deactivated", "peer_id_invalid")


class TelegramNotifier:
    """Telegram implementation of PushTransport."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, destination: dict, message: dict) -> DeliveryResult:
        chat_id = destination.get("chat_id")
        if chat_id is None:
            logger.warning("Push destination has no chat_id: %s", destination)
            return DeliveryResult.PERMANENT_FAILURE

        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=format_push_message(message),
            )
        except Forbidden as exc:
            # Bot blocked or kicked: the chat is no longer reachable.
            logger.info("Telegram chat %s is unreachable: %s", chat_id, exc)
            return DeliveryResult.PERMANENT_FAILURE
        except BadRequest as exc:
            if any(marker in str(exc).lower() for marker in _GONE_MARKERS):
                logger.info("Telegram chat %s no longer exists: %s", chat_id, exc)
                return DeliveryResult.PERMANENT_FAILURE
            logger.warning("Telegram rejected message to %s: %s", chat_id, exc)
            return DeliveryResult.TRANSIENT_FAILURE
        except TelegramError as exc:
            logger.warning("Telegram delivery to %s failed: %s", chat_id, exc)
            return DeliveryResult.TRANSIENT_FAILURE

        return DeliveryResult.SUCCESS


def format_push_message(message: dict) -> str:
    """Render a dispatcher payload as Telegram text."""
    title = message.get("title", "")
    body = message.get("body", "")
    if title and body:
        return f"{title}\n{body}"
    return title or body
