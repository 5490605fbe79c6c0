"""
Сборка всех компонентов бота в один объект.

Один ``BotServices`` на процесс: его используют и обработчики
python-telegram-bot (через ``application.bot_data``), и HTTP API.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from feature_bot.dispatcher import CallbackRouter
from feature_bot.feature_generator import FeatureGenerator
from feature_bot.plugins.loader import PluginLoader
from feature_bot.rate_limiter import AdmissionGate
from feature_bot.registry import FeatureRegistry
from feature_bot.screens import Screens
from feature_bot.settings import settings as default_settings
from feature_bot.storage import JsonDocumentStore
from feature_bot.usage_stats import UsageStats, empty_stats
from feature_bot.user_settings import UserSettingsStore
from feature_bot.users import UserRegistry, empty_users
from feature_bot.yandex_gpt import YandexGPTClient

logger = logging.getLogger(__name__)

DEFAULT_FEATURES = [
    {
        "id": "ping",
        "name": "Ping",
        "description": "Check that the bot is alive",
        "emoji": "🏓",
        "enabled": True,
        "submenus": [],
        "actions": [],
    },
    {
        "id": "echo",
        "name": "Echo",
        "description": "Send a message and get it back",
        "emoji": "🔁",
        "enabled": True,
        "submenus": [],
        "actions": [{
            "id": "start_echo",
            "name": "Start Echo",
            "description": "Echo your next message",
            "emoji": "💬",
        }],
    },
]


@dataclass
class BotServices:
    config: Any
    gate: AdmissionGate
    registry: FeatureRegistry
    loader: PluginLoader
    user_settings: UserSettingsStore
    stats: UsageStats
    users: UserRegistry
    generator: FeatureGenerator
    screens: Screens
    router: CallbackRouter


def _settings_defaults(config) -> Dict[str, Any]:
    return {
        "botSettings": {
            "keyboardStyle": config.DEFAULT_KEYBOARD_STYLE,
            "notificationStyle": config.DEFAULT_NOTIFICATION_STYLE,
            "language": config.DEFAULT_LANGUAGE,
        },
        "userSettings": {},
    }


def build_services(
        config=default_settings,
        generate_text: Optional[Callable[..., str]] = None) -> BotServices:
    """
    Создаёт все компоненты по конфигурации.

    Args:
        config: объект с атрибутами как у ``Settings``
        generate_text: функция генерации текста для ИИ; по умолчанию
            ``YandexGPTClient.generate_text``, если ИИ настроен
    """
    rate = config.RATE_LIMIT
    gate = AdmissionGate(
        window=rate['window'],
        limit=rate['limit'],
        block_timeout=rate['user_block_timeout'],
    )

    features_store = JsonDocumentStore(
        os.path.join(config.DB_PATH, 'features.json'),
        {"features": DEFAULT_FEATURES})
    settings_store = JsonDocumentStore(
        os.path.join(config.DB_PATH, 'settings.json'),
        _settings_defaults(config))
    stats_store = JsonDocumentStore(
        os.path.join(config.DB_PATH, 'stats.json'), empty_stats())
    users_store = JsonDocumentStore(
        os.path.join(config.DB_PATH, 'users.json'), empty_users())

    loader = PluginLoader(config.HANDLERS_PATH)
    registry = FeatureRegistry(features_store, loader=loader)
    user_settings = UserSettingsStore(settings_store, config)
    stats = UsageStats(stats_store)
    users = UserRegistry(users_store, admin_ids=config.ADMIN_IDS)

    if generate_text is None and config.AI_ENABLED:
        generate_text = YandexGPTClient(
            folder_id=config.FOLDER_ID,
            service_account_id=config.SERVICE_ACCOUNT_ID,
            key_id=config.KEY_ID,
            private_key=config.PRIVATE_KEY,
            llm_url=config.LLM_URL,
            timeout=config.AI_TIMEOUT,
        ).generate_text
    generator = FeatureGenerator(registry, generate_text, timeout=config.AI_TIMEOUT)

    screens = Screens(
        registry, loader, user_settings, stats, config,
        generator=generator, gate=gate, users=users)
    router = CallbackRouter(
        registry, loader, screens, on_feature_used=stats.track_feature)

    return BotServices(
        config=config,
        gate=gate,
        registry=registry,
        loader=loader,
        user_settings=user_settings,
        stats=stats,
        users=users,
        generator=generator,
        screens=screens,
        router=router,
    )


async def start(services: BotServices, application=None) -> int:
    """Читает хранилища и инициализирует обработчики функций"""
    await services.registry.load()
    await services.user_settings.store.read()
    await services.stats.store.read()
    await services.users.store.read()
    loaded = await services.loader.initialize(
        application, await services.registry.list())
    logger.info(
        f"{services.config.BOT_NAME} v{services.config.BOT_VERSION} ready, "
        f"AI generation {'enabled' if services.generator.ai_enabled else 'disabled'}")
    return loaded
