from .feature_models import Action, Feature, Submenu
from .bot_models import (
    BotStatus,
    FeatureListResponse,
    FeatureUpdate,
    WebhookResult,
)

__all__ = [
    'Action',
    'Feature',
    'Submenu',
    'BotStatus',
    'FeatureListResponse',
    'FeatureUpdate',
    'WebhookResult',
]
