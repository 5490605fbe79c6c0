import asyncio
import importlib
import importlib.util
import json
import logging
import os
import sys
from typing import Any, Dict, Iterable, Optional

from feature_bot.errors import HandlerLoadError
from feature_bot.models.feature_models import Feature
from feature_bot.plugins.template_handler import TemplateHandler, build_handler_spec
from feature_bot.routing import is_valid_id

logger = logging.getLogger(__name__)


class PluginLoader:
    """
    Поиск обработчика функции по id.

    Порядок: обработчики, зарегистрированные в коде через ``register``,
    затем модуль ``<builtin_package>.<id>`` с фабрикой ``create_handler()``,
    затем JSON-описание ``<handlers_path>/<id>.json``.
    ``load`` отдаёт уже созданный обработчик из кэша; ``reload`` заново
    импортирует модуль или перечитывает JSON (горячая перезагрузка).
    """

    def __init__(self, handlers_path: str, builtin_package: str = "feature_bot.features"):
        self.handlers_path = handlers_path
        self.builtin_package = builtin_package
        self._registered: Dict[str, Any] = {}
        self._handlers: Dict[str, Any] = {}

    def register(self, feature_id: str, handler: Any) -> None:
        self._registered[feature_id] = handler
        self._handlers[feature_id] = handler

    def cached(self, feature_id: str) -> Optional[Any]:
        return self._handlers.get(feature_id)

    def spec_path(self, feature_id: str) -> str:
        return os.path.join(self.handlers_path, f"{feature_id}.json")

    async def load(self, feature_id: str) -> Any:
        if not is_valid_id(feature_id):
            raise HandlerLoadError(f"Invalid feature id: {feature_id!r}")
        handler = self._handlers.get(feature_id)
        if handler is not None:
            return handler
        return await self._resolve(feature_id, fresh=False)

    async def reload(self, feature_id: str) -> Any:
        if not is_valid_id(feature_id):
            raise HandlerLoadError(f"Invalid feature id: {feature_id!r}")
        self._handlers.pop(feature_id, None)
        return await self._resolve(feature_id, fresh=True)

    async def _resolve(self, feature_id: str, fresh: bool) -> Any:
        handler = self._registered.get(feature_id)
        if handler is None:
            handler = self._load_bundled(feature_id, fresh)
        if handler is None:
            handler = await self._load_spec(feature_id)
        if handler is None:
            self._handlers.pop(feature_id, None)
            raise HandlerLoadError(f"No handler found for feature {feature_id}")

        self._handlers[feature_id] = handler
        logger.debug(f"Loaded handler for feature {feature_id}: {handler!r}")
        return handler

    def has_bundled(self, feature_id: str) -> bool:
        try:
            return importlib.util.find_spec(
                f"{self.builtin_package}.{feature_id}") is not None
        except (ImportError, ValueError):
            return False

    def _load_bundled(self, feature_id: str, fresh: bool = False) -> Optional[Any]:
        if not self.has_bundled(feature_id):
            return None
        name = f"{self.builtin_package}.{feature_id}"
        try:
            if fresh and name in sys.modules:
                module = importlib.reload(sys.modules[name])
            else:
                module = importlib.import_module(name)
            factory = getattr(module, "create_handler", None)
            if factory is None:
                raise HandlerLoadError(f"Module {name} has no create_handler()")
            return factory()
        except HandlerLoadError:
            raise
        except Exception as e:
            raise HandlerLoadError(
                f"Error loading handler module {name}: {e}") from e

    async def _load_spec(self, feature_id: str) -> Optional[Any]:
        path = self.spec_path(feature_id)
        try:
            if not await asyncio.to_thread(os.path.exists, path):
                return None
            spec = await asyncio.to_thread(self._read_json, path)
        except (OSError, ValueError) as e:
            raise HandlerLoadError(
                f"Error reading handler spec {path}: {e}") from e
        if not isinstance(spec, dict) or spec.get("feature_id") != feature_id:
            raise HandlerLoadError(f"Malformed handler spec {path}")
        return TemplateHandler(spec)

    async def materialize(self, feature: Feature, regenerate: bool = False) -> bool:
        """Создаёт JSON-описание обработчика; True, если файл был записан"""
        if feature.id in self._registered or self.has_bundled(feature.id):
            return False
        path = self.spec_path(feature.id)
        if not regenerate and await asyncio.to_thread(os.path.exists, path):
            return False
        spec = build_handler_spec(feature)
        try:
            await asyncio.to_thread(self._write_json, path, spec)
        except OSError as e:
            raise HandlerLoadError(
                f"Error writing handler spec {path}: {e}") from e
        self._handlers.pop(feature.id, None)
        logger.info(
            f"{'Regenerated' if regenerate else 'Created'} handler for feature: {feature.id}")
        return True

    async def remove(self, feature_id: str) -> None:
        path = self.spec_path(feature_id)
        try:
            if await asyncio.to_thread(os.path.exists, path):
                await asyncio.to_thread(os.remove, path)
                logger.info(f"Deleted handler file for feature: {feature_id}")
        except OSError as e:
            logger.error(f"Error deleting handler for feature {feature_id}: {e}")
        self._handlers.pop(feature_id, None)

    async def initialize(self, application, features: Iterable[Feature]) -> int:
        loaded = 0
        for feature in features:
            try:
                # описание нужно и выключенным функциям: их могут включить позже
                await self.materialize(feature)
                if not feature.enabled:
                    logger.debug(f"Skipping disabled feature: {feature.id}")
                    continue
                handler = await self.reload(feature.id)
                init = getattr(handler, "init", None)
                if init is not None:
                    await init(application, feature)
                loaded += 1
            except Exception as e:
                logger.error(f"Error initializing feature {feature.id}: {e}")
        logger.info(f"Initialized {loaded} feature handlers")
        return loaded

    @staticmethod
    def _read_json(path: str) -> Any:
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: str, spec: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(spec, f, ensure_ascii=False, indent=2)
