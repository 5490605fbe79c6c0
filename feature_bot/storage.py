"""
Плоское JSON-хранилище документов (features.json, settings.json, stats.json).

Документ целиком живёт в памяти (``store.data``) и сбрасывается на диск
через ``await store.write()``. Ошибки чтения и записи логируются, бот при
этом продолжает работать на данных из памяти.
"""

import asyncio
import copy
import json
import logging
import os
from typing import Any, Dict

logger = logging.getLogger(__name__)


class JsonDocumentStore:
    def __init__(self, path: str, default: Dict[str, Any]):
        self.path = path
        self.default = default
        self.data: Dict[str, Any] = copy.deepcopy(default)
        self._write_lock = asyncio.Lock()

    async def read(self) -> Dict[str, Any]:
        """Читает документ с диска; при отсутствии файла создаёт его"""
        try:
            exists = await asyncio.to_thread(os.path.exists, self.path)
            if not exists:
                self.data = copy.deepcopy(self.default)
                await self.write()
                logger.info(f"Created database file: {self.path}")
                return self.data

            loaded = await asyncio.to_thread(self._load)
            if not isinstance(loaded, dict):
                raise ValueError("document root must be an object")
            for key, value in self.default.items():
                loaded.setdefault(key, copy.deepcopy(value))
            self.data = loaded
        except (OSError, ValueError) as e:
            logger.error(
                f"Error reading database file {self.path}: {e}. "
                "Using in-memory defaults")
            self.data = copy.deepcopy(self.default)
        return self.data

    async def write(self) -> bool:
        """Атомарно записывает документ; False, если запись не удалась"""
        async with self._write_lock:
            snapshot = copy.deepcopy(self.data)
            try:
                await asyncio.to_thread(self._dump, snapshot)
                return True
            except (OSError, TypeError) as e:
                logger.error(
                    f"Error writing database file {self.path}: {e}. "
                    "Changes kept in memory only")
                return False

    def _load(self) -> Any:
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def _dump(self, snapshot: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
