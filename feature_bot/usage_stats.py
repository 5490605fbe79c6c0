import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from feature_bot.storage import JsonDocumentStore

logger = logging.getLogger(__name__)


def empty_stats() -> Dict[str, Any]:
    return {"usageStats": {"commandsUsed": {}, "featuresUsed": {}, "userActivity": {}}}


class UsageStats:
    """Счётчики команд и функций в stats.json; ошибки только логируются"""

    def __init__(self, store: JsonDocumentStore):
        self.store = store

    @property
    def _stats(self) -> Dict[str, Any]:
        stats = self.store.data.setdefault("usageStats", {})
        for key in ("commandsUsed", "featuresUsed", "userActivity"):
            stats.setdefault(key, {})
        return stats

    def _touch_user(self, user_id: Optional[int], counter: str) -> None:
        if user_id is None:
            return
        activity = self._stats["userActivity"].setdefault(str(user_id), {
            "commandsUsed": 0,
            "featuresUsed": 0,
            "callbacksTriggered": 0,
        })
        activity[counter] = activity.get(counter, 0) + 1
        activity["lastActivity"] = datetime.now(timezone.utc).isoformat()

    async def track_feature(self, feature_id: str, user_id: Optional[int]) -> None:
        try:
            used = self._stats["featuresUsed"]
            used[feature_id] = used.get(feature_id, 0) + 1
            self._touch_user(user_id, "featuresUsed")
            await self.store.write()
        except Exception as e:
            logger.error(f"Error tracking feature usage: {e}")

    async def track_command(self, command: str, user_id: Optional[int]) -> None:
        try:
            used = self._stats["commandsUsed"]
            used[command] = used.get(command, 0) + 1
            self._touch_user(user_id, "commandsUsed")
            await self.store.write()
        except Exception as e:
            logger.error(f"Error tracking command usage: {e}")

    def feature_counts(self) -> Dict[str, int]:
        return dict(self._stats["featuresUsed"])

    def command_counts(self) -> Dict[str, int]:
        return dict(self._stats["commandsUsed"])

    def top_features(self, limit: int = 5) -> List[Tuple[str, int]]:
        counts = self._stats["featuresUsed"]
        return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]

    def user_activity(self, user_id: int) -> Dict[str, Any]:
        return dict(self._stats["userActivity"].get(str(user_id), {}))

    def total_users(self) -> int:
        return len(self._stats["userActivity"])
