"""Chat notifiers: deliver a text message to a channel.

``send`` returns True on delivery and False otherwise; it never raises.
Permission-denied and not-found channels are logged distinctly so that
operators can fix bot permissions or stale channel ids.
"""

from typing import Protocol

import httpx
from loguru import logger

from src.parsers.errors import DeliveryError

DISCORD_API_URL = "https://discord.com/api/v10"
DISCORD_SUPPRESS_EMBEDS_FLAG = 1 << 2
DISCORD_MAX_LENGTH = 2000
TELEGRAM_MAX_LENGTH = 4096


class Notifier(Protocol):
    async def send(self, channel_id: str, content: str) -> bool: ...

    async def close(self) -> None: ...


def _truncate(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[: limit - 1] + "…"


class BaseNotifier:
    """Turns DeliveryError from ``_deliver`` into a logged False."""

    name = "notifier"

    def __init__(self) -> None:
        self.sent = 0
        self.failures: dict[str, int] = {}

    async def _deliver(self, channel_id: str, content: str) -> None:
        raise NotImplementedError

    async def send(self, channel_id: str, content: str) -> bool:
        try:
            await self._deliver(channel_id, content)
        except DeliveryError as e:
            self.failures[e.kind] = self.failures.get(e.kind, 0) + 1
            if e.kind == DeliveryError.PERMISSION_DENIED:
                logger.error(f"[NOTIFY] {self.name}: no permission to post in channel {channel_id}")
            elif e.kind == DeliveryError.NOT_FOUND:
                logger.error(f"[NOTIFY] {self.name}: channel {channel_id} not found, may have been deleted")
            elif e.kind == DeliveryError.RATE_LIMITED:
                logger.warning(f"[NOTIFY] {self.name}: rate limited on channel {channel_id}")
            else:
                logger.error(f"[NOTIFY] {self.name}: send to {channel_id} failed: {e}")
            return False
        self.sent += 1
        return True

    async def close(self) -> None:
        return None


class DiscordNotifier(BaseNotifier):
    """Posts through the Discord REST API with a bot token. Embeds are suppressed."""

    name = "discord"

    def __init__(self, token: str, *, timeout: float = 10.0) -> None:
        super().__init__()
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=DISCORD_API_URL,
            timeout=timeout,
            headers={"Authorization": f"Bot {token}", "Content-Type": "application/json"},
        )

    async def _deliver(self, channel_id: str, content: str) -> None:
        if not self._token:
            raise DeliveryError("No Discord bot token configured", channel_id=channel_id)
        try:
            response = await self._client.post(
                f"/channels/{channel_id}/messages",
                json={
                    "content": _truncate(content, DISCORD_MAX_LENGTH),
                    "flags": DISCORD_SUPPRESS_EMBEDS_FLAG,
                },
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"{type(e).__name__}: {e}", channel_id=channel_id) from e

        if response.status_code < 400:
            return
        detail = f"Discord API error {response.status_code}: {response.text[:200]}"
        if response.status_code == 403:
            raise DeliveryError(detail, kind=DeliveryError.PERMISSION_DENIED, channel_id=channel_id)
        if response.status_code == 404:
            raise DeliveryError(detail, kind=DeliveryError.NOT_FOUND, channel_id=channel_id)
        if response.status_code == 429:
            raise DeliveryError(detail, kind=DeliveryError.RATE_LIMITED, channel_id=channel_id)
        raise DeliveryError(detail, channel_id=channel_id)

    async def close(self) -> None:
        await self._client.aclose()


class TelegramNotifier(BaseNotifier):
    """Sends plain-text messages through an aiogram Bot; channel_id is the chat id."""

    name = "telegram"

    def __init__(self, token: str = "", *, bot=None) -> None:
        super().__init__()
        self._token = token
        self._bot = bot

    def _get_bot(self):
        if self._bot is None:
            from aiogram import Bot

            if not self._token:
                raise DeliveryError("No Telegram bot token configured")
            self._bot = Bot(token=self._token)
        return self._bot

    async def _deliver(self, channel_id: str, content: str) -> None:
        from aiogram.exceptions import (
            TelegramAPIError,
            TelegramBadRequest,
            TelegramForbiddenError,
            TelegramNotFound,
            TelegramRetryAfter,
        )

        bot = self._get_bot()
        try:
            await bot.send_message(
                chat_id=channel_id,
                text=_truncate(content, TELEGRAM_MAX_LENGTH),
                disable_web_page_preview=True,
            )
        except TelegramForbiddenError as e:
            raise DeliveryError(str(e), kind=DeliveryError.PERMISSION_DENIED, channel_id=channel_id) from e
        except TelegramNotFound as e:
            raise DeliveryError(str(e), kind=DeliveryError.NOT_FOUND, channel_id=channel_id) from e
        except TelegramBadRequest as e:
            kind = DeliveryError.NOT_FOUND if "chat not found" in str(e).lower() else DeliveryError.ERROR
            raise DeliveryError(str(e), kind=kind, channel_id=channel_id) from e
        except TelegramRetryAfter as e:
            raise DeliveryError(str(e), kind=DeliveryError.RATE_LIMITED, channel_id=channel_id) from e
        except TelegramAPIError as e:
            raise DeliveryError(str(e), channel_id=channel_id) from e

    async def close(self) -> None:
        if self._bot is not None:
            await self._bot.session.close()
