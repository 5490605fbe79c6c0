"""
Рассылка сообщения администратора всем пользователям бота.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Iterable, List

from telegram.error import Forbidden, RetryAfter, TelegramError

logger = logging.getLogger(__name__)

Sender = Callable[[int, str], Awaitable[None]]


@dataclass
class BroadcastResult:
    total: int = 0
    sent: int = 0
    failed: int = 0
    blocked: int = 0
    failed_users: List[int] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return 100.0 * self.sent / self.total if self.total else 0.0


def _seconds(retry_after) -> float:
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    return float(retry_after)


async def broadcast(send: Sender, user_ids: Iterable[int], text: str) -> BroadcastResult:
    """
    Отправляет ``text`` каждому пользователю по очереди.

    Forbidden (бот заблокирован пользователем) считается отдельно от прочих
    ошибок; после RetryAfter отправка повторяется один раз.
    """
    result = BroadcastResult()
    for user_id in user_ids:
        result.total += 1
        try:
            try:
                await send(user_id, text)
            except RetryAfter as e:
                await asyncio.sleep(_seconds(e.retry_after))
                await send(user_id, text)
            result.sent += 1
        except Forbidden:
            result.blocked += 1
            logger.warning(f"User {user_id} has blocked the bot")
        except TelegramError as e:
            result.failed += 1
            result.failed_users.append(user_id)
            logger.error(f"Failed to send broadcast to user {user_id}: {e}")

    logger.info(
        f"Broadcast completed: {result.sent}/{result.total} sent, "
        f"{result.failed} failed, {result.blocked} blocked")
    return result
