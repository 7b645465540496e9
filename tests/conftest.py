"""
Shared pytest fixtures for tablespine tests.

This module provides:
- A fresh metadata registry with the Customer/Order/... model per test
- An in-memory store with the ``app`` table
- A repository wired to both
- Auto-marking of tests by location

Usage:
    @pytest.mark.asyncio
    async def test_something(repo):
        customer = await repo.create(Customer, {"name": "Ada"})
"""

from pathlib import Path

import pytest

from tablespine import EntityRepository, InMemoryStore, MetadataRegistry
from tablespine.core.settings import clear_settings_cache
from tests._support.models import RecordingStore, build_schema, build_store


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.name == "test_end_to_end.py":
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def registry() -> MetadataRegistry:
    return build_schema(MetadataRegistry())


@pytest.fixture
def store() -> InMemoryStore:
    return build_store()


@pytest.fixture
def recording_store(store: InMemoryStore) -> RecordingStore:
    return RecordingStore(store)


@pytest.fixture
def repo(store: InMemoryStore, registry: MetadataRegistry) -> EntityRepository:
    return EntityRepository(store, registry)
