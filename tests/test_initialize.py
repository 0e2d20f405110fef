from __future__ import annotations

import logging

import pytest

from populus import MemoryAdapter, Orm, OrmConfig, initialize
from populus.errors import (
    InitializationError,
    UnboundConnectionError,
    UnknownModelError,
    UnregisteredAdapterError,
)
from populus.schema import SchemaRegistry
from tests.helpers.models import PET, USER, memory_config


@pytest.mark.asyncio
async def test_initialize_builds_ontology():
    adapter = MemoryAdapter()
    ontology = await initialize([USER, PET], memory_config(adapter))

    assert set(ontology) == {"user", "pet"}
    assert ontology["User"] is ontology.collections["user"]
    assert ontology["user"].adapter is adapter
    assert set(adapter.schemas) == {"user", "pet"}
    assert ontology.bindings["pet"].connection == "default"
    assert ontology.bindings["pet"].adapter_name == "memory"


@pytest.mark.asyncio
async def test_builtin_adapter_by_name_gets_one_instance_per_connection():
    archive_pet = {**PET, "connection": "archive"}
    user = {**USER, "attributes": {k: v for k, v in USER["attributes"].items() if k != "pets"}}
    config = {
        "connections": {
            "default": {"adapter": "memory"},
            "archive": {"adapter": "memory"},
        }
    }
    ontology = await initialize([user, archive_pet], config)

    assert ontology["user"].adapter is not ontology["pet"].adapter
    assert len(ontology.bindings.adapters()) == 2


@pytest.mark.asyncio
async def test_missing_connection_is_reported():
    config = {"connections": {"other": {"adapter": "memory"}}}
    with pytest.raises(UnboundConnectionError) as exc:
        await initialize([USER, PET], config)
    assert exc.value.connection == "default"


@pytest.mark.asyncio
async def test_unregistered_adapter_is_reported():
    config = {"connections": {"default": {"adapter": "mongo"}}}
    with pytest.raises(UnregisteredAdapterError) as exc:
        await initialize([USER, PET], config)
    assert exc.value.adapter == "mongo"
    assert exc.value.connection == "default"


@pytest.mark.asyncio
async def test_schema_errors_surface_from_initialize():
    with pytest.raises(UnknownModelError):
        await initialize([USER], memory_config(MemoryAdapter()))


@pytest.mark.asyncio
async def test_initialize_is_one_shot():
    orm = Orm([USER]).load_collection(PET)
    await orm.initialize(OrmConfig.model_validate(memory_config(MemoryAdapter())))
    assert orm.state == "initialized"

    with pytest.raises(InitializationError):
        await orm.initialize(memory_config(MemoryAdapter()))
    with pytest.raises(InitializationError):
        orm.load_collection({"identity": "late"})


@pytest.mark.asyncio
async def test_failed_initialize_cannot_be_retried():
    orm = Orm([USER])
    with pytest.raises(UnknownModelError):
        await orm.initialize(memory_config(MemoryAdapter()))
    assert orm.state == "failed"
    with pytest.raises(InitializationError):
        await orm.initialize(memory_config(MemoryAdapter()))


@pytest.mark.asyncio
async def test_adapter_options_are_passed_to_adapter_class():
    config = {
        "connections": {"default": {"adapter": "sqlite", "database": ":memory:"}},
    }
    ontology = await initialize([USER, PET], config)
    try:
        created = await ontology["user"].create({"username": "neil"})
        assert created.id == 1
    finally:
        await ontology.teardown()


@pytest.mark.asyncio
async def test_teardown_runs_once_per_adapter():
    class Tracking(MemoryAdapter):
        closed = 0

        async def teardown(self):
            Tracking.closed += 1
            await super().teardown()

    ontology = await initialize([USER, PET], memory_config(Tracking()))
    await ontology.teardown()
    await ontology.teardown()
    assert Tracking.closed == 1


@pytest.mark.asyncio
async def test_bindings_lookup():
    adapter = MemoryAdapter()
    ontology = await initialize([USER, PET], memory_config(adapter))
    assert ontology.bindings.adapter_for("pet") is adapter
    assert ontology.bindings.adapters() == [adapter]
    with pytest.raises(UnknownModelError):
        ontology.bindings["ghost"]


class MinimalAdapter:
    """Only the four capability methods; no lifecycle hooks."""

    def __init__(self):
        self.inner = MemoryAdapter()
        self.defined = False

    async def _ensure(self):
        # the memory adapter needs its tables; defined lazily on first use
        if not self.defined:
            self.defined = True
            registry = SchemaRegistry.build([USER, PET])
            for identity, schema in registry.items():
                await self.inner.define(identity, schema)

    async def create(self, identity, values):
        await self._ensure()
        return await self.inner.create(identity, values)

    async def find(self, identity, criteria):
        await self._ensure()
        return await self.inner.find(identity, criteria)

    async def update(self, identity, criteria, changes):
        await self._ensure()
        return await self.inner.update(identity, criteria, changes)

    async def destroy(self, identity, criteria):
        await self._ensure()
        return await self.inner.destroy(identity, criteria)


@pytest.mark.asyncio
async def test_adapter_with_only_capability_methods():
    config = {"adapters": {"minimal": MinimalAdapter()}, "connections": {"default": {"adapter": "minimal"}}}
    ontology = await initialize([USER, PET], config)

    neil = await ontology["user"].create({"username": "neil"})
    await ontology["pet"].create({"name": "Astro", "owner": neil.id})
    found = await ontology["user"].find_one(neil.id).populate("pets")

    assert [p.name for p in found.pets] == ["Astro"]
    assert await ontology["pet"].count() == 1
    await ontology.teardown()


@pytest.mark.asyncio
async def test_log_level_is_applied_to_package_logger():
    logger = logging.getLogger("populus")
    previous = logger.level
    try:
        await initialize([USER, PET], memory_config(MemoryAdapter(), log_level="debug"))
        assert logger.level == logging.DEBUG

        logger.setLevel(logging.ERROR)
        await initialize([USER, PET], memory_config(MemoryAdapter()))
        assert logger.level == logging.ERROR
    finally:
        logger.setLevel(previous)
