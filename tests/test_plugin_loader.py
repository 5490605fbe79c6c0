import importlib
import json
import os

import pytest

from feature_bot.errors import HandlerLoadError
from feature_bot.features.ping import PONG, PingHandler
from feature_bot.models import Feature
from feature_bot.plugins.loader import PluginLoader
from feature_bot.plugins.template_handler import TemplateHandler, build_handler_spec

from tests.conftest import FakeChatContext, RecordingHandler, make_feature


@pytest.fixture
def loader(tmp_path):
    return PluginLoader(str(tmp_path / "handlers"))


@pytest.fixture
def weather():
    return Feature.model_validate(make_feature("weather", submenus=[{
        "id": "daily",
        "name": "Daily",
        "description": "Daily forecast",
        "actions": [{"id": "today", "name": "Today", "description": "Forecast for today"}],
    }]))


@pytest.mark.asyncio
async def test_registered_handler_wins(loader, weather):
    handler = RecordingHandler()
    loader.register("weather", handler)
    await loader.materialize(weather)

    assert await loader.load("weather") is handler
    assert loader.cached("weather") is handler


@pytest.mark.asyncio
async def test_bundled_handler_is_cached_until_reload(loader):
    first = await loader.load("ping")
    assert await loader.load("ping") is first

    second = await loader.reload("ping")
    assert type(first).__name__ == "PingHandler"
    assert first is not second
    assert loader.cached("ping") is second
    assert await loader.load("ping") is second


@pytest.mark.asyncio
async def test_load_does_not_reimport_bundled_modules(loader, monkeypatch):
    await loader.load("ping")
    calls = []
    monkeypatch.setattr(importlib, "reload", lambda module: calls.append(module) or module)

    for _ in range(3):
        await loader.load("ping")
    assert calls == []

    await loader.reload("ping")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_materialize_is_idempotent_unless_regenerating(loader, weather):
    assert await loader.materialize(weather) is True
    assert await loader.materialize(weather) is False
    assert await loader.materialize(weather, regenerate=True) is True

    handler = await loader.load("weather")
    assert isinstance(handler, TemplateHandler)


@pytest.mark.asyncio
async def test_materialize_skips_bundled_handlers(loader):
    ping = Feature.model_validate(make_feature("ping"))
    assert await loader.materialize(ping) is False


@pytest.mark.asyncio
async def test_missing_or_invalid_handlers_raise(loader):
    with pytest.raises(HandlerLoadError):
        await loader.load("ghost")
    with pytest.raises(HandlerLoadError):
        await loader.load("../etc")


@pytest.mark.asyncio
async def test_malformed_spec_raises(loader, tmp_path):
    (tmp_path / "handlers").mkdir()
    (tmp_path / "handlers" / "broken.json").write_text("{oops", encoding="utf-8")
    with pytest.raises(HandlerLoadError):
        await loader.load("broken")


@pytest.mark.asyncio
async def test_remove_deletes_spec_and_entry(loader, weather):
    await loader.materialize(weather)
    await loader.load("weather")
    await loader.remove("weather")

    assert loader.cached("weather") is None
    with pytest.raises(HandlerLoadError):
        await loader.load("weather")


@pytest.mark.asyncio
async def test_initialize_loads_enabled_features_and_calls_init(loader, weather):
    calls = []

    class WithInit(RecordingHandler):
        async def init(self, application, feature):
            calls.append(feature.id)

    loader.register("custom", WithInit())
    features = [
        weather,
        Feature.model_validate(make_feature("custom")),
        Feature.model_validate(make_feature("off", enabled=False)),
    ]

    assert await loader.initialize(None, features) == 2
    assert calls == ["custom"]
    assert loader.cached("off") is None
    assert os.path.exists(loader.spec_path("off"))


@pytest.mark.asyncio
async def test_initialize_logs_failures_and_continues(loader, weather, caplog):
    class BrokenInit(RecordingHandler):
        async def init(self, application, feature):
            raise RuntimeError("init failed")

    loader.register("broken", BrokenInit())
    features = [Feature.model_validate(make_feature("broken")), weather]

    assert await loader.initialize(None, features) == 1
    assert "init failed" in caplog.text


def test_handler_spec_shape(weather):
    spec = build_handler_spec(weather)
    assert spec["feature_id"] == "weather"
    assert spec["actions"]["run"]["title"] == "Run"
    assert spec["submenus"]["daily"]["buttons"][0] == ["⚙️ Today", "weather:daily:today"]
    assert spec["submenus"]["daily"]["buttons"][-1] == ["🔙 Back", "feature:weather"]
    assert spec["submenu_actions"]["daily:today"]["text"] == "Forecast for today"
    json.dumps(spec)


@pytest.mark.asyncio
async def test_template_handler_actions(weather):
    handler = TemplateHandler(build_handler_spec(weather))

    ctx = FakeChatContext()
    assert await handler.handle_action(ctx, weather.find_action("run"), weather)
    assert ctx.sent("Run")

    ctx = FakeChatContext()
    assert await handler.handle_action(ctx, weather.find_action("today"), weather)
    assert ctx.sent("Forecast for today")

    unknown = weather.actions[0].model_copy(update={"id": "nope"})
    assert not await handler.handle_action(FakeChatContext(), unknown, weather)


@pytest.mark.asyncio
async def test_template_handler_callbacks(weather):
    handler = TemplateHandler(build_handler_spec(weather))

    ctx = FakeChatContext()
    assert not await handler.handle_callback(ctx, "other:daily")
    assert ctx.answers == [] and ctx.texts == []

    ctx = FakeChatContext()
    assert await handler.handle_callback(ctx, "weather:daily")
    assert ctx.edits and "Daily" in ctx.edits[0][0]

    ctx = FakeChatContext()
    assert await handler.handle_callback(ctx, "weather:daily:today")
    assert ctx.sent("Forecast for today")

    for token in ("weather:nightly", "weather:daily:tonight", "weather:a:b:c"):
        ctx = FakeChatContext()
        assert not await handler.handle_callback(ctx, token)
        assert ctx.answers == [] and ctx.texts == []


@pytest.mark.asyncio
async def test_ping_replies_pong():
    ctx = FakeChatContext()
    assert await PingHandler().open(ctx, None)
    assert ctx.texts == [PONG]
