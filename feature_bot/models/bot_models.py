from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from .feature_models import Action, Feature, Submenu


class BotStatus(BaseModel):
    """Модель для статуса бота"""
    status: str
    message: str
    features_total: int = 0
    features_enabled: int = 0
    ai_enabled: bool = False


class FeatureListResponse(BaseModel):
    """Список функций из реестра"""
    features: List[Feature]


class FeatureUpdate(BaseModel):
    """Частичное обновление функции через HTTP API"""
    name: Optional[str] = None
    description: Optional[str] = None
    emoji: Optional[str] = None
    enabled: Optional[bool] = None
    submenus: Optional[List[Submenu]] = None
    actions: Optional[List[Action]] = None

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class WebhookResult(BaseModel):
    """Ответ эндпоинтов управления webhook"""
    status: str
    message: str
    webhook_url: Optional[str] = None
