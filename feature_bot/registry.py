import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import pydantic

from feature_bot.errors import DuplicateId, NotFound, ValidationError
from feature_bot.models.feature_models import Feature
from feature_bot.routing import is_valid_id
from feature_bot.storage import JsonDocumentStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "name", "description")
STRUCTURE_FIELDS = ("actions", "submenus")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_scope(scope: str, actions: List[Any]) -> None:
    seen = set()
    for action in actions or []:
        action_id = action.get("id") if isinstance(action, Mapping) else None
        if action_id in seen:
            raise ValidationError(
                f"Duplicate action id {action_id!r} in {scope}")
        seen.add(action_id)


def validate_feature_data(data: Mapping[str, Any]) -> Feature:
    """Проверяет сырой документ функции и строит модель"""
    if not isinstance(data, Mapping):
        raise ValidationError("Feature must be an object")
    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        raise ValidationError(
            "Feature must have id, name, and description "
            f"(missing: {', '.join(missing)})")
    if not isinstance(data["id"], str) or not is_valid_id(data["id"]):
        raise ValidationError(
            "Feature ID must contain only lowercase letters, numbers, "
            "and underscores")

    _check_scope("feature root", data.get("actions") or [])
    submenu_ids = set()
    for submenu in data.get("submenus") or []:
        if not isinstance(submenu, Mapping):
            raise ValidationError("Submenu must be an object")
        if submenu.get("id") in submenu_ids:
            raise ValidationError(f"Duplicate submenu id {submenu.get('id')!r}")
        submenu_ids.add(submenu.get("id"))
        _check_scope(f"submenu {submenu.get('id')!r}", submenu.get("actions") or [])

    try:
        return Feature.model_validate(dict(data))
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid feature data: {e}") from e


class FeatureRegistry:
    """
    CRUD над списком функций в документе ``{"features": [...]}``.

    Поиск линейный: функций десятки, максимум сотни. Гонки между
    одновременными update одной функции не исключаются (last write wins).
    """

    def __init__(
            self,
            store: JsonDocumentStore,
            loader=None,
            clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.loader = loader
        self._clock = clock or _utcnow

    @property
    def _documents(self) -> List[Dict[str, Any]]:
        return self.store.data.setdefault("features", [])

    async def load(self) -> int:
        await self.store.read()
        logger.info(f"Feature registry loaded: {len(self._documents)} features")
        return len(self._documents)

    def _index(self, feature_id: str) -> int:
        for i, document in enumerate(self._documents):
            if document.get("id") == feature_id:
                return i
        return -1

    def _parse(self, document: Dict[str, Any]) -> Optional[Feature]:
        try:
            return Feature.model_validate(document)
        except pydantic.ValidationError as e:
            logger.error(f"Skipping malformed feature {document.get('id')!r}: {e}")
            return None

    async def get(self, feature_id: str) -> Optional[Feature]:
        index = self._index(feature_id)
        if index == -1:
            return None
        return self._parse(self._documents[index])

    async def list(self, enabled: Optional[bool] = None) -> List[Feature]:
        features = []
        for document in self._documents:
            feature = self._parse(document)
            if feature is None:
                continue
            if enabled is not None and feature.enabled != enabled:
                continue
            features.append(feature)
        return features

    async def add(self, data: Mapping[str, Any]) -> Feature:
        data = copy.deepcopy(dict(data)) if isinstance(data, Mapping) else data
        feature = validate_feature_data(data)
        if self._index(feature.id) != -1:
            raise DuplicateId(f"Feature with ID {feature.id} already exists")

        stamp = self._clock().isoformat()
        feature = feature.model_copy(update={
            "created_at": stamp,
            "updated_at": stamp,
        })
        self._documents.append(feature.to_document())
        await self.store.write()
        logger.info(f"Added new feature: {feature.id}")

        if self.loader is not None:
            try:
                await self.loader.materialize(feature)
            except Exception as e:
                logger.error(f"Error creating handler for feature {feature.id}: {e}")
        return feature

    async def update(self, feature_id: str, patch: Mapping[str, Any]) -> Feature:
        index = self._index(feature_id)
        if index == -1:
            raise NotFound(f"Feature with ID {feature_id} not found")

        current = self._documents[index]
        changes = {
            k: v for k, v in dict(patch).items()
            if k not in ("id", "created_at", "createdAt")}
        merged = {**current, **changes, "id": feature_id}
        merged.pop("updated_at", None)
        merged["updatedAt"] = self._next_stamp(current.get("updatedAt"))
        feature = validate_feature_data(merged)

        self._documents[index] = feature.to_document()
        await self.store.write()
        logger.info(f"Updated feature: {feature_id}")

        if self.loader is not None:
            restructured = any(k in changes for k in STRUCTURE_FIELDS)
            enabled_now = feature.enabled and not current.get("enabled", True)
            try:
                if restructured:
                    await self.loader.materialize(feature, regenerate=True)
                elif enabled_now:
                    await self.loader.materialize(feature)
            except Exception as e:
                logger.error(f"Error regenerating handler for {feature_id}: {e}")
        return feature

    async def set_enabled(self, feature_id: str, enabled: bool) -> Feature:
        return await self.update(feature_id, {"enabled": bool(enabled)})

    async def remove(self, feature_id: str) -> None:
        index = self._index(feature_id)
        if index == -1:
            raise NotFound(f"Feature with ID {feature_id} not found")
        del self._documents[index]
        await self.store.write()
        if self.loader is not None:
            await self.loader.remove(feature_id)
        logger.info(f"Deleted feature: {feature_id}")

    def _next_stamp(self, previous: Optional[str]) -> str:
        # updatedAt строго растёт даже при двух обновлениях в одну микросекунду
        now = self._clock()
        if previous:
            try:
                prev = datetime.fromisoformat(previous)
            except ValueError:
                prev = None
            if prev is not None and prev.tzinfo is not None and now <= prev:
                now = prev + timedelta(microseconds=1)
        return now.isoformat()
