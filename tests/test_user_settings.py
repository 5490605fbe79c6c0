import json

import pytest

from feature_bot.errors import ValidationError
from feature_bot.storage import JsonDocumentStore
from feature_bot.usage_stats import UsageStats, empty_stats
from feature_bot.user_settings import UserSettingsStore


@pytest.fixture
def settings_store(tmp_path):
    return JsonDocumentStore(str(tmp_path / "settings.json"), {"userSettings": {}})


@pytest.fixture
def user_settings(settings_store, config):
    return UserSettingsStore(settings_store, config)


@pytest.fixture
def stats(tmp_path):
    return UsageStats(JsonDocumentStore(str(tmp_path / "stats.json"), empty_stats()))


@pytest.mark.asyncio
async def test_defaults_are_created_on_first_access(user_settings, settings_store, config):
    user = await user_settings.get(42)

    assert user["keyboardStyle"] == config.DEFAULT_KEYBOARD_STYLE
    assert user["language"] == config.DEFAULT_LANGUAGE
    with open(settings_store.path, encoding="utf-8") as f:
        assert "42" in json.load(f)["userSettings"]


@pytest.mark.asyncio
async def test_update_validates_values(user_settings):
    user = await user_settings.update(42, keyboard_style="compact", language="id")
    assert user["keyboardStyle"] == "compact"
    assert user["language"] == "id"

    with pytest.raises(ValidationError):
        await user_settings.update(42, keyboard_style="fancy")
    with pytest.raises(ValidationError):
        await user_settings.update(42, theme="dark")
    assert (await user_settings.get(42))["keyboardStyle"] == "compact"


@pytest.mark.asyncio
async def test_keyboard_style_falls_back_to_default(user_settings, config):
    assert await user_settings.keyboard_style(None) == config.DEFAULT_KEYBOARD_STYLE
    user_settings._users["7"] = {"language": "en"}
    assert await user_settings.keyboard_style(7) == config.DEFAULT_KEYBOARD_STYLE


@pytest.mark.asyncio
async def test_bot_settings_update(user_settings):
    updated = await user_settings.update_bot_settings(language="id", debug_mode=True)
    assert updated["language"] == "id"
    assert updated["debugMode"] is True
    assert "updatedAt" in user_settings.bot_settings()
    assert user_settings.debug_mode() is True

    with pytest.raises(ValidationError):
        await user_settings.update_bot_settings(language="de")
    with pytest.raises(ValidationError):
        await user_settings.update_bot_settings(theme="dark")
    assert user_settings.bot_settings()["language"] == "id"


@pytest.mark.asyncio
async def test_bot_defaults_apply_to_new_users_only(user_settings, config):
    await user_settings.get(1)
    await user_settings.update_bot_settings(keyboard_style="compact", notification_style="minimal")

    assert (await user_settings.get(1))["keyboardStyle"] == config.DEFAULT_KEYBOARD_STYLE
    newcomer = await user_settings.get(2)
    assert newcomer["keyboardStyle"] == "compact"
    assert newcomer["notificationStyle"] == "minimal"
    assert await user_settings.keyboard_style(None) == "compact"


def test_debug_mode_defaults_to_config(user_settings, config):
    assert user_settings.debug_mode() is config.DEBUG_MODE


@pytest.mark.asyncio
async def test_usage_stats_counts_and_ranks(stats):
    for _ in range(3):
        await stats.track_feature("ping", 42)
    await stats.track_feature("echo", 43)
    await stats.track_command("start", 42)

    assert stats.top_features() == [("ping", 3), ("echo", 1)]
    assert stats.top_features(limit=1) == [("ping", 3)]
    assert stats.command_counts() == {"start": 1}
    assert stats.total_users() == 2

    activity = stats.user_activity(42)
    assert activity["featuresUsed"] == 3
    assert activity["commandsUsed"] == 1
    assert "lastActivity" in activity


@pytest.mark.asyncio
async def test_usage_stats_ignore_anonymous_users(stats):
    await stats.track_feature("ping", None)
    assert stats.feature_counts() == {"ping": 1}
    assert stats.total_users() == 0
