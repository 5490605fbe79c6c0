import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from feature_bot.errors import ValidationError
from feature_bot.settings import settings as app_settings
from feature_bot.storage import JsonDocumentStore

logger = logging.getLogger(__name__)

# имя настройки -> ключ в settings.json
FIELDS = {
    "keyboard_style": "keyboardStyle",
    "notification_style": "notificationStyle",
    "language": "language",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserSettingsStore:
    """Персональные настройки пользователей в settings.json"""

    def __init__(self, store: JsonDocumentStore, config=app_settings):
        self.store = store
        self.config = config

    @property
    def _users(self) -> Dict[str, Dict[str, Any]]:
        return self.store.data.setdefault("userSettings", {})

    def default(self, field: str) -> str:
        """Значение по умолчанию: из botSettings, иначе из конфигурации"""
        return self.bot_settings().get(FIELDS[field]) or getattr(
            self.config, f"DEFAULT_{field.upper()}")

    def _defaults(self) -> Dict[str, Any]:
        stamp = _now()
        return {
            "keyboardStyle": self.default("keyboard_style"),
            "notificationStyle": self.default("notification_style"),
            "language": self.default("language"),
            "createdAt": stamp,
            "updatedAt": stamp,
        }

    def _allowed(self, field: str):
        if field == "keyboard_style":
            return self.config.KEYBOARD_STYLES
        if field == "notification_style":
            return self.config.NOTIFICATION_STYLES
        return list(self.config.LANGUAGES)

    async def get(self, user_id: int) -> Dict[str, Any]:
        key = str(user_id)
        if key not in self._users:
            self._users[key] = self._defaults()
            await self.store.write()
        return self._users[key]

    def _validated(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        document = {}
        for field, value in changes.items():
            if field not in FIELDS:
                raise ValidationError(f"Unknown setting: {field}")
            if value not in self._allowed(field):
                raise ValidationError(f"Invalid {field.replace('_', ' ')}: {value}")
            document[FIELDS[field]] = value
        return document

    async def update(self, user_id: int, **changes) -> Dict[str, Any]:
        document = self._validated(changes)
        key = str(user_id)
        current = self._users.get(key) or self._defaults()
        self._users[key] = {**current, **document, "updatedAt": _now()}
        await self.store.write()
        logger.info(f"Settings updated for user {user_id}")
        return self._users[key]

    async def keyboard_style(self, user_id: Optional[int]) -> str:
        if user_id is None:
            return self.default("keyboard_style")
        try:
            user = await self.get(user_id)
            return user.get("keyboardStyle") or self.default("keyboard_style")
        except Exception as e:
            logger.error(f"Error getting keyboard style for user {user_id}: {e}")
            return self.config.DEFAULT_KEYBOARD_STYLE

    def bot_settings(self) -> Dict[str, Any]:
        return self.store.data.setdefault("botSettings", {})

    def debug_mode(self) -> bool:
        return bool(self.bot_settings().get("debugMode", self.config.DEBUG_MODE))

    async def update_bot_settings(self, debug_mode: Optional[bool] = None, **changes) -> Dict[str, Any]:
        """Настройки по умолчанию для новых пользователей и режим отладки"""
        document = self._validated(changes)
        if debug_mode is not None:
            document["debugMode"] = bool(debug_mode)
        self.store.data["botSettings"] = {
            **self.bot_settings(), **document, "updatedAt": _now()}
        await self.store.write()
        logger.info("Bot settings updated")
        return self.store.data["botSettings"]
