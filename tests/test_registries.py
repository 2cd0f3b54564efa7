from typing import Any

import pytest
from pydantic import BaseModel

from portal.v1.core.registries import JobRegistry, Registry
from portal.v1.infra.jobs.errors import InvalidJobPayloadError, UnknownJobTypeError
from portal.v1.infra.jobs.handlers import (
    JobTypes,
    ProjectDevelopmentPayload,
)
from portal.v1.infra.jobs.registry_init import register_job_handlers


class GreetingPayload(BaseModel):
    name: str
    times: int = 1


class MockHandler:
    async def handle(self, session, job, payload) -> dict[str, Any]:
        return {"greeting": f"hello {payload.name}"}


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    # Test empty registry
    assert registry.list() == []

    # Test register and get
    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]
    assert "test_impl" in registry

    # Test KeyError for missing implementation
    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_keeps_first_registration():
    """Registering a taken name is a no-op."""
    registry = Registry[str]("Test")

    registry.register("impl", "first")
    registry.register("impl", "second")

    assert registry.get("impl") == "first"
    assert registry.list() == ["impl"]


def test_registry_freeze():
    """A frozen registry rejects new names."""
    registry = Registry[str]("Test")
    registry.register("impl1", "value1")

    registry.freeze()
    assert registry.is_frozen()

    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("impl2", "value2")

    # Existing names can still be looked up
    assert registry.get("impl1") == "value1"


def test_job_registry_resolves_definition():
    registry = JobRegistry()
    handler = MockHandler()
    registry.add("greet", handler, GreetingPayload)

    definition = registry.resolve("greet")

    assert definition.handler is handler
    assert definition.payload_model is GreetingPayload


def test_job_registry_unknown_type():
    registry = JobRegistry()

    with pytest.raises(UnknownJobTypeError, match="No handler registered for job type: nope"):
        registry.resolve("nope")


def test_job_registry_validates_payload():
    registry = JobRegistry()
    registry.add("greet", MockHandler(), GreetingPayload)

    payload = registry.validate_payload("greet", {"name": "Ada"})
    assert payload == GreetingPayload(name="Ada", times=1)

    with pytest.raises(InvalidJobPayloadError) as exc_info:
        registry.validate_payload("greet", {"times": "many"})

    assert exc_info.value.job_type == "greet"
    failed_fields = {error["loc"][0] for error in exc_info.value.errors}
    assert failed_fields == {"name", "times"}


def test_register_job_handlers_is_idempotent(store, settings, agent):
    registry = JobRegistry()

    register_job_handlers(registry, store, settings, agent)
    first = registry.resolve(JobTypes.PROJECT_DEVELOPMENT)
    register_job_handlers(registry, store, settings, agent)

    assert sorted(registry.list()) == sorted(
        [JobTypes.PROJECT_DEVELOPMENT, JobTypes.MAINTENANCE_CLEANUP]
    )
    assert registry.resolve(JobTypes.PROJECT_DEVELOPMENT) is first
    assert first.payload_model is ProjectDevelopmentPayload


def test_register_job_handlers_on_frozen_registry(store, settings, agent):
    registry = JobRegistry()
    register_job_handlers(registry, store, settings, agent)
    registry.freeze()

    # Already registered, so a later call must not trip the freeze
    register_job_handlers(registry, store, settings, agent)
