"""
Реестр пользователей бота (users.json).

Пользователь записывается при первом обращении к боту; дальше обновляется
только ``lastActivity`` в памяти, на диск она попадает со следующей записью.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from feature_bot.errors import NotFound
from feature_bot.storage import JsonDocumentStore

logger = logging.getLogger(__name__)

ACTIVE_DAYS = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


def empty_users() -> Dict[str, Any]:
    return {"users": []}


class UserRegistry:
    def __init__(self, store: JsonDocumentStore, admin_ids=()):
        self.store = store
        self.admin_ids = admin_ids

    @property
    def _users(self) -> List[Dict[str, Any]]:
        return self.store.data.setdefault("users", [])

    def get(self, user_id: int) -> Optional[Dict[str, Any]]:
        return next((u for u in self._users if u.get("id") == user_id), None)

    def require(self, user_id: int) -> Dict[str, Any]:
        user = self.get(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    async def register(
            self,
            user_id: int,
            first_name: str = "",
            username: Optional[str] = None) -> Tuple[Dict[str, Any], bool]:
        """Возвращает (пользователь, создан ли он только что)"""
        stamp = _now().isoformat()
        user = self.get(user_id)
        if user is not None:
            user["lastActivity"] = stamp
            return user, False

        user = {
            "id": user_id,
            "first_name": first_name or "",
            "username": username,
            "isAdmin": user_id in self.admin_ids,
            "banned": False,
            "createdAt": stamp,
            "updatedAt": stamp,
            "lastActivity": stamp,
        }
        self._users.append(user)
        await self.store.write()
        logger.info(f"New user: {first_name} ({user_id})")
        return user, True

    def all(self) -> List[Dict[str, Any]]:
        """Все пользователи, последние активные первыми"""
        return sorted(
            self._users, key=lambda u: u.get("lastActivity") or "", reverse=True)

    def active(self, days: int = ACTIVE_DAYS, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        since = (now or _now()) - timedelta(days=days)
        active = []
        for user in self._users:
            try:
                last = datetime.fromisoformat(user.get("lastActivity") or "")
            except ValueError:
                continue
            if last > since:
                active.append(user)
        return active

    def recipients(self) -> List[int]:
        return [u["id"] for u in self._users if not u.get("banned")]

    async def ban(self, user_id: int, reason: str = "No reason provided") -> Dict[str, Any]:
        user = self.require(user_id)
        user.update(
            banned=True,
            banReason=reason,
            bannedAt=_now().isoformat(),
            updatedAt=_now().isoformat())
        await self.store.write()
        logger.info(f"User {user_id} banned: {reason}")
        return user

    async def unban(self, user_id: int) -> Dict[str, Any]:
        user = self.require(user_id)
        user.update(banned=False, banReason=None, bannedAt=None, updatedAt=_now().isoformat())
        await self.store.write()
        logger.info(f"User {user_id} unbanned")
        return user

    def is_banned(self, user_id: int) -> bool:
        try:
            user = self.get(user_id)
            return bool(user and user.get("banned"))
        except Exception as e:
            logger.error(f"Error checking ban status for user {user_id}: {e}")
            return False
