import asyncio
import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    request_timestamps: List[float] = field(default_factory=list)
    blocked: bool = False
    block_until: float = 0.0


@dataclass(frozen=True)
class Decision:
    allowed: bool
    remaining_ms: float = 0.0
    newly_blocked: bool = False

    @property
    def remaining_seconds(self) -> int:
        return math.ceil(self.remaining_ms / 1000)


ALLOW = Decision(allowed=True)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class AdmissionGate:
    """
    Скользящее окно запросов на пользователя с временной блокировкой.

    Если за ``window`` мс пришло больше ``limit`` запросов, пользователь
    блокируется на ``block_timeout`` мс. Проверка и обновление записи одного
    пользователя выполняются под его собственным asyncio.Lock.
    """

    def __init__(
            self,
            window: float = 1000,
            limit: int = 5,
            block_timeout: float = 60000,
            clock: Optional[Callable[[], float]] = None):
        self.window = float(window)
        self.limit = int(limit)
        self.block_timeout = float(block_timeout)
        self._clock = clock or _monotonic_ms
        self._entries: Dict[int, RateLimitEntry] = {}
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def admit(self, identity: int, now: Optional[float] = None) -> Decision:
        lock = self._locks[identity]
        async with lock:
            try:
                return self.check(identity, self._clock() if now is None else now)
            except Exception as e:
                logger.error(f"Rate limiter failure for user {identity}: {e}")
                return ALLOW

    def check(self, identity: int, now: float) -> Decision:
        entry = self._entries.setdefault(identity, RateLimitEntry())

        if entry.blocked and now < entry.block_until:
            return Decision(allowed=False, remaining_ms=entry.block_until - now)
        if entry.blocked:
            entry.blocked = False

        entry.request_timestamps = [
            t for t in entry.request_timestamps if now - t < self.window]
        entry.request_timestamps.append(now)

        if len(entry.request_timestamps) > self.limit:
            entry.blocked = True
            entry.block_until = now + self.block_timeout
            decision = Decision(
                allowed=False,
                remaining_ms=self.block_timeout,
                newly_blocked=True)
            logger.warning(
                f"Rate limit exceeded for user {identity}, "
                f"blocked for {decision.remaining_seconds} seconds")
            return decision
        return ALLOW

    def is_blocked(self, identity: int, now: Optional[float] = None) -> bool:
        entry = self._entries.get(identity)
        if entry is None or not entry.blocked:
            return False
        return (self._clock() if now is None else now) < entry.block_until

    def reset(self, identity: int) -> None:
        """Снимает блокировку и забывает историю запросов пользователя"""
        self._entries.pop(identity, None)
        logger.info(f"Rate limit reset for user {identity}")

    def stats(self) -> Dict[str, float]:
        return {
            "tracked_users": len(self._entries),
            "blocked_users": sum(1 for e in self._entries.values() if e.blocked),
            "window": self.window,
            "limit": self.limit,
            "block_timeout": self.block_timeout,
        }
