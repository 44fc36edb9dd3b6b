"""
Pytest configuration and fixtures for backend tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from prompt_resolution.config import ResolverSettings
from prompt_resolution.lib.context import clear_context
from prompt_resolution.lib.prompts.cache import InMemoryResolvedPromptCache
from prompt_resolution.lib.prompts.labels import LabelIndex
from prompt_resolution.lib.prompts.metrics import InMemoryMetricsSink
from prompt_resolution.lib.prompts.models import Prompt
from prompt_resolution.lib.prompts.resolver import Resolver
from prompt_resolution.lib.prompts.store import InMemoryPromptStore
from prompt_resolution.models.sql.database import Base, create_session_factory

PROJECT_ID = "proj-1"
T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_prompt(name, version, body="", labels=(), minutes=0, project_id=PROJECT_ID, **metadata):
    """Build a Prompt created `minutes` after T0."""
    return Prompt(
        project_id=project_id,
        name=name,
        version=version,
        prompt=body,
        labels=list(labels),
        created_at=T0 + timedelta(minutes=minutes),
        **metadata,
    )


@pytest.fixture(autouse=True)
def _reset_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture
def store():
    return InMemoryPromptStore()


@pytest.fixture
def cache():
    return InMemoryResolvedPromptCache(max_entries=100, default_ttl=300)


@pytest.fixture
def metrics():
    return InMemoryMetricsSink()


@pytest.fixture
def settings():
    return ResolverSettings()


@pytest.fixture
def resolver(store, cache, metrics, settings):
    return Resolver(store, cache, LabelIndex(store), metrics, settings)


@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    factory = create_session_factory("sqlite://")
    engine = factory.kw["bind"]
    Base.metadata.create_all(engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def prompt_factory():
    """make_prompt() as a fixture, for test modules."""
    return make_prompt
