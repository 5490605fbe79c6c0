import json
import time

import pytest

from feature_bot import conversation
from feature_bot.errors import DuplicateId, GenerationError, GenerationTimeout, ValidationError
from feature_bot.feature_generator import FeatureGenerator, extract_json, parse_template_info
from feature_bot.services import build_services

from tests.conftest import ADMIN_ID, FakeChatContext

AI_FEATURE = {
    "id": "Trip-Planner",
    "name": "Trip Planner",
    "description": "Plan trips",
    "emoji": "🧳",
    "submenus": [{
        "id": "routes",
        "name": "Routes",
        "actions": [{"id": "find", "name": "Find"}],
    }],
    "actions": [{"id": "start", "name": "Start"}],
}


def test_parse_template_info():
    info = parse_template_info(
        "ID: Weather\nName: Weather Forecast\n"
        "Description: Get weather forecasts for any location\nEmoji: 🌤")
    assert info == {
        "id": "weather",
        "name": "Weather Forecast",
        "description": "Get weather forecasts for any location",
        "emoji": "🌤",
    }
    assert parse_template_info("ID: weather\nName: Weather") is None


def test_extract_json_from_fenced_block_and_prose():
    fenced = "Here you go:\n```json\n{\"id\": \"a\"}\n```\nEnjoy!"
    assert extract_json(fenced) == {"id": "a"}
    assert extract_json("Sure! {\"id\": \"b\", \"x\": {\"y\": 1}} hope it helps") == {
        "id": "b", "x": {"y": 1}}
    with pytest.raises(GenerationError):
        extract_json("no json here")


@pytest.mark.asyncio
async def test_create_from_template(services):
    feature = await services.generator.create_from_template(
        "weather", "Weather", "Forecasts", "🌤")
    assert [a.id for a in feature.actions] == ["get_started"]
    assert (await services.registry.get("weather")).emoji == "🌤"


@pytest.mark.asyncio
async def test_generate_with_ai_sanitises_id(config):
    prompts = []

    def fake_generate(prompt, system=None):
        prompts.append(prompt)
        return "```json\n" + json.dumps(AI_FEATURE) + "\n```"

    services = build_services(config, generate_text=fake_generate)
    feature = await services.generator.generate_with_ai("A feature to plan trips with friends")

    assert feature.id == "trip_planner"
    assert feature.find_action("find") is not None
    assert "plan trips with friends" in prompts[0]


@pytest.mark.asyncio
async def test_generate_with_ai_requires_configuration(services):
    assert not services.generator.ai_enabled
    with pytest.raises(GenerationError):
        await services.generator.generate_with_ai("anything at all")


@pytest.mark.asyncio
async def test_generate_with_ai_times_out(services):
    def slow(prompt, system=None):
        time.sleep(0.5)
        return json.dumps(AI_FEATURE)

    generator = FeatureGenerator(services.registry, slow, timeout=0.05)
    with pytest.raises(GenerationTimeout):
        await generator.generate_with_ai("A slow feature description")
    assert await services.registry.get("trip_planner") is None


@pytest.mark.asyncio
async def test_generate_with_ai_rejects_incomplete_output(services):
    generator = FeatureGenerator(services.registry, lambda p, s=None: '{"id": "x"}')
    with pytest.raises(GenerationError):
        await generator.generate_with_ai("Something incomplete please")


@pytest.mark.asyncio
async def test_import_json(services):
    feature = await services.generator.import_json(json.dumps({
        "id": "imported", "name": "Imported", "description": "From JSON", "emoji": "📦",
        "createdAt": "2000-01-01T00:00:00+00:00",
    }))
    assert feature.enabled
    assert feature.created_at != "2000-01-01T00:00:00+00:00"

    with pytest.raises(ValidationError):
        await services.generator.import_json("{broken")
    with pytest.raises(ValidationError):
        await services.generator.import_json(json.dumps({"id": "x", "name": "X", "description": "d"}))
    with pytest.raises(DuplicateId):
        await services.generator.import_json(json.dumps({
            "id": "imported", "name": "Again", "description": "d", "emoji": "📦"}))


@pytest.mark.asyncio
async def test_template_conversation_flow(services):
    ctx = FakeChatContext(user_id=ADMIN_ID, is_admin=True)
    conversation.arm(ctx, conversation.AWAITING_TEMPLATE_INFO)

    assert await conversation.handle_text(ctx, "just some words", services)
    assert ctx.sent("Invalid format")
    assert ctx.user_data[conversation.STATE_KEY] == conversation.AWAITING_TEMPLATE_INFO

    text = "ID: notes\nName: Notes\nDescription: Keep notes\nEmoji: 📝"
    assert await conversation.handle_text(ctx, text, services)
    assert ctx.sent("created successfully")
    assert conversation.STATE_KEY not in ctx.user_data
    assert await services.registry.get("notes") is not None


@pytest.mark.asyncio
async def test_admin_states_ignored_for_non_admins(services):
    ctx = FakeChatContext()
    conversation.arm(ctx, conversation.AWAITING_JSON_IMPORT)
    assert not await conversation.handle_text(ctx, '{"id": "x"}', services)


@pytest.mark.asyncio
async def test_cancel_clears_pending_state(services):
    ctx = FakeChatContext(user_id=ADMIN_ID, is_admin=True)
    conversation.arm(ctx, conversation.AWAITING_JSON_IMPORT)

    assert await conversation.handle_text(ctx, "/cancel", services)
    assert ctx.sent("cancelled")
    assert conversation.STATE_KEY not in ctx.user_data


@pytest.mark.asyncio
async def test_ai_timeout_is_reported_to_admin(services):
    def slow(prompt, system=None):
        time.sleep(0.5)
        return "{}"

    services.generator = FeatureGenerator(services.registry, slow, timeout=0.05)
    ctx = FakeChatContext(user_id=ADMIN_ID, is_admin=True)
    conversation.arm(ctx, conversation.AWAITING_AI_DESCRIPTION)

    assert await conversation.handle_text(ctx, "A feature that takes forever", services)
    assert ctx.sent("did not respond")
