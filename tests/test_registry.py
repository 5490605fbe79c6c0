import json
import os
from datetime import datetime, timezone

import pytest

from feature_bot.errors import DuplicateId, NotFound, ValidationError
from feature_bot.plugins.loader import PluginLoader
from feature_bot.registry import FeatureRegistry, validate_feature_data
from feature_bot.storage import JsonDocumentStore

from tests.conftest import make_feature


@pytest.fixture
def store(tmp_path):
    return JsonDocumentStore(str(tmp_path / "features.json"), {"features": []})


@pytest.fixture
def loader(tmp_path):
    return PluginLoader(str(tmp_path / "handlers"))


@pytest.fixture
def registry(store, loader):
    return FeatureRegistry(store, loader=loader)


def on_disk(store):
    with open(store.path, encoding="utf-8") as f:
        return json.load(f)


@pytest.mark.asyncio
async def test_add_stamps_persists_and_materializes(registry, store, loader):
    feature = await registry.add(make_feature("weather"))

    assert feature.created_at == feature.updated_at
    assert feature.enabled is True
    document = on_disk(store)["features"][0]
    assert document["id"] == "weather"
    assert document["createdAt"] == document["updatedAt"]
    assert os.path.exists(loader.spec_path("weather"))


@pytest.mark.asyncio
async def test_add_duplicate_id_leaves_registry_unchanged(registry):
    await registry.add(make_feature("weather"))
    with pytest.raises(DuplicateId):
        await registry.add(make_feature("weather", name="Other"))

    features = await registry.list()
    assert [f.name for f in features] == ["Weather"]


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [
    {"id": "weather", "name": "Weather"},
    make_feature("Weather"),
    make_feature("bad-id"),
    make_feature("dup", actions=[{"id": "a", "name": "A"}, {"id": "a", "name": "B"}]),
    make_feature("dup_sub", submenus=[
        {"id": "s", "name": "S", "actions": [{"id": "x", "name": "X"}, {"id": "x", "name": "Y"}]}]),
    make_feature("dup_menu", submenus=[{"id": "s", "name": "S"}, {"id": "s", "name": "T"}]),
    make_feature("bad_actions", actions=[{"name": "no id"}]),
])
async def test_add_rejects_invalid_features(registry, data):
    with pytest.raises(ValidationError):
        await registry.add(data)
    assert await registry.list() == []


def test_same_action_id_allowed_in_different_scopes():
    feature = validate_feature_data(make_feature("ok", submenus=[
        {"id": "s1", "name": "S1", "actions": [{"id": "run", "name": "Run"}]},
        {"id": "s2", "name": "S2", "actions": [{"id": "run", "name": "Run"}]},
    ]))
    assert [s.id for s in feature.submenus] == ["s1", "s2"]


@pytest.mark.asyncio
async def test_update_merges_and_ignores_identity_fields(registry):
    created = await registry.add(make_feature("weather"))
    updated = await registry.update("weather", {
        "name": "Forecast",
        "id": "other",
        "createdAt": "1999-01-01T00:00:00+00:00",
    })

    assert updated.id == "weather"
    assert updated.name == "Forecast"
    assert updated.description == created.description
    assert updated.created_at == created.created_at
    assert await registry.get("other") is None


@pytest.mark.asyncio
async def test_updated_at_strictly_increases_with_frozen_clock(store, loader):
    frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)
    registry = FeatureRegistry(store, loader=loader, clock=lambda: frozen)

    created = await registry.add(make_feature("weather"))
    first = await registry.update("weather", {"name": "One"})
    second = await registry.update("weather", {"name": "Two"})

    assert created.updated_at < first.updated_at < second.updated_at


@pytest.mark.asyncio
async def test_update_rejects_invalid_patch_without_mutation(registry):
    await registry.add(make_feature("weather"))
    with pytest.raises(ValidationError):
        await registry.update("weather", {"actions": [{"id": "a", "name": "A"}, {"id": "a", "name": "B"}]})
    assert [a.id for a in (await registry.get("weather")).actions] == ["run"]


@pytest.mark.asyncio
async def test_update_of_structure_regenerates_handler(registry, loader):
    await registry.add(make_feature("weather"))
    await registry.update("weather", {"actions": [{"id": "today", "name": "Today"}]})

    with open(loader.spec_path("weather"), encoding="utf-8") as f:
        spec = json.load(f)
    assert list(spec["actions"]) == ["today"]


@pytest.mark.asyncio
async def test_enabling_feature_recreates_missing_handler_spec(registry, loader):
    await registry.add(make_feature("weather"))
    await registry.set_enabled("weather", False)
    os.remove(loader.spec_path("weather"))

    await registry.set_enabled("weather", True)
    assert os.path.exists(loader.spec_path("weather"))
    handler = await loader.load("weather")
    assert handler.feature_id == "weather"


@pytest.mark.asyncio
async def test_set_enabled_and_list_filter(registry):
    await registry.add(make_feature("a"))
    await registry.add(make_feature("b"))
    await registry.set_enabled("a", False)

    assert [f.id for f in await registry.list()] == ["a", "b"]
    assert [f.id for f in await registry.list(enabled=True)] == ["b"]
    assert [f.id for f in await registry.list(enabled=False)] == ["a"]


@pytest.mark.asyncio
async def test_missing_features_raise_not_found(registry):
    with pytest.raises(NotFound):
        await registry.update("ghost", {"name": "x"})
    with pytest.raises(NotFound):
        await registry.remove("ghost")
    assert await registry.get("ghost") is None


@pytest.mark.asyncio
async def test_remove_deletes_record_and_handler(registry, store, loader):
    await registry.add(make_feature("weather"))
    await registry.remove("weather")

    assert on_disk(store)["features"] == []
    assert not os.path.exists(loader.spec_path("weather"))
    assert loader.cached("weather") is None


@pytest.mark.asyncio
async def test_unknown_keys_are_preserved(registry, store):
    await registry.add(make_feature("weather", category="utility"))
    assert on_disk(store)["features"][0]["category"] == "utility"


@pytest.mark.asyncio
async def test_load_reads_existing_document(store, loader, tmp_path):
    with open(store.path, "w", encoding="utf-8") as f:
        json.dump({"features": [make_feature("saved")]}, f)

    registry = FeatureRegistry(store, loader=loader)
    assert await registry.load() == 1
    assert (await registry.get("saved")).name == "Saved"


@pytest.mark.asyncio
async def test_load_survives_corrupt_file(store, loader):
    with open(store.path, "w", encoding="utf-8") as f:
        f.write("{not json")

    registry = FeatureRegistry(store, loader=loader)
    assert await registry.load() == 0
