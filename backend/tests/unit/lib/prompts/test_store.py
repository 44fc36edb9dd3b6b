"""Unit tests for prompt store adapters."""

import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from prompt_resolution.lib.exceptions import StoreUnavailable
from prompt_resolution.lib.prompts.models import PRODUCTION_LABEL
from prompt_resolution.lib.prompts.store import (
    InMemoryPromptStore,
    SqlPromptStore,
    sort_newest_first,
)
from prompt_resolution.models.sql.prompts import PromptVersion


def _seed(session_factory, *rows):
    with session_factory() as db:
        db.add_all(rows)
        db.commit()


def _row(name, version, body, labels=(), project_id="proj-1", **kwargs):
    return PromptVersion(
        project_id=project_id,
        name=name,
        version=version,
        prompt=body,
        labels=list(labels),
        tags=[],
        config={},
        **kwargs,
    )


class TestSqlPromptStore:
    """SqlPromptStore against an in-memory SQLite database."""

    @pytest.mark.asyncio
    async def test_fetch_versions_newest_first(self, session_factory):
        _seed(
            session_factory,
            _row("greeting", 1, "Hello"),
            _row("greeting", 3, "Hey", labels=[PRODUCTION_LABEL]),
            _row("greeting", 2, "Hi"),
            _row("farewell", 1, "Bye"),
        )
        store = SqlPromptStore(session_factory)

        versions = await store.fetch_versions("proj-1", "greeting")

        assert [p.version for p in versions] == [3, 2, 1]
        assert versions[0].is_active
        assert versions[0].created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_fetch_versions_is_scoped_to_project(self, session_factory):
        _seed(
            session_factory,
            _row("greeting", 1, "Hello"),
            _row("greeting", 1, "Other project", project_id="proj-2"),
        )
        store = SqlPromptStore(session_factory)

        versions = await store.fetch_versions("proj-2", "greeting")

        assert [p.prompt for p in versions] == ["Other project"]

    @pytest.mark.asyncio
    async def test_fetch_by_version(self, session_factory):
        _seed(session_factory, _row("farewell", 1, "Bye"), _row("farewell", 2, "Goodbye"))
        store = SqlPromptStore(session_factory)

        prompt = await store.fetch_by_version("proj-1", "farewell", 2)

        assert prompt.prompt == "Goodbye"
        assert await store.fetch_by_version("proj-1", "farewell", 9) is None

    @pytest.mark.asyncio
    async def test_fetch_by_label(self, session_factory):
        _seed(
            session_factory,
            _row("farewell", 1, "Bye", labels=[PRODUCTION_LABEL, "staging"]),
            _row("farewell", 2, "Goodbye"),
        )
        store = SqlPromptStore(session_factory)

        prompt = await store.fetch_by_label("proj-1", "farewell", "staging")

        assert prompt.version == 1
        assert prompt.labels == ("production", "staging")
        assert await store.fetch_by_label("proj-1", "farewell", "canary") is None

    @pytest.mark.asyncio
    async def test_unknown_name_is_empty_not_an_error(self, session_factory):
        store = SqlPromptStore(session_factory)
        assert await store.fetch_versions("proj-1", "missing") == []

    @pytest.mark.asyncio
    async def test_database_error_raises_store_unavailable(self):
        session = MagicMock()
        session.__enter__.return_value = session
        session.scalars.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        store = SqlPromptStore(lambda: session)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.fetch_versions("proj-1", "greeting")

        assert exc_info.value.error_code == "PROMPT_STORE_001"
        assert exc_info.value.details["operation"] == "_query_versions"

    @pytest.mark.asyncio
    async def test_timeout_raises_store_unavailable(self):
        def slow_session():
            time.sleep(0.3)
            return MagicMock()

        store = SqlPromptStore(slow_session, timeout=0.05)

        with pytest.raises(StoreUnavailable, match="timed out"):
            await store.fetch_by_version("proj-1", "greeting", 1)


class TestInMemoryPromptStore:
    """The dictionary-backed store and its small write path."""

    def test_create_version_increments(self):
        store = InMemoryPromptStore()
        first = store.create_version("proj-1", "greeting", "Hello")
        second = store.create_version("proj-1", "greeting", "Hi")

        assert (first.version, second.version) == (1, 2)
        assert second.created_at.utcoffset() == timedelta(0)

    def test_duplicate_version_is_rejected(self, prompt_factory):
        store = InMemoryPromptStore([prompt_factory("greeting", 1, "Hello")])
        with pytest.raises(ValueError):
            store.add(prompt_factory("greeting", 1, "Again"))

    @pytest.mark.asyncio
    async def test_adding_labelled_version_takes_the_label(self, prompt_factory):
        store = InMemoryPromptStore()
        store.add(prompt_factory("greeting", 1, "Hello", labels=[PRODUCTION_LABEL]))
        store.add(prompt_factory("greeting", 2, "Hi", labels=[PRODUCTION_LABEL]))

        holders = await store.fetch_label_holders("proj-1", "greeting", PRODUCTION_LABEL)

        assert [p.version for p in holders] == [2]

    @pytest.mark.asyncio
    async def test_move_label(self, prompt_factory):
        store = InMemoryPromptStore(
            [
                prompt_factory("greeting", 1, "Hello", labels=[PRODUCTION_LABEL]),
                prompt_factory("greeting", 2, "Hi"),
            ]
        )

        store.move_label("proj-1", "greeting", PRODUCTION_LABEL, 2)

        v1 = await store.fetch_by_version("proj-1", "greeting", 1)
        v2 = await store.fetch_by_version("proj-1", "greeting", 2)
        assert not v1.is_active
        assert v2.is_active

    def test_move_label_to_unknown_version(self):
        store = InMemoryPromptStore()
        with pytest.raises(ValueError):
            store.move_label("proj-1", "greeting", PRODUCTION_LABEL, 5)

    def test_sort_newest_first_orders_by_version_not_age(self, prompt_factory):
        prompts = [
            prompt_factory("g", 1, minutes=5),
            prompt_factory("g", 2, minutes=1),
            prompt_factory("g", 3, minutes=0),
        ]
        assert [p.version for p in sort_newest_first(prompts)] == [3, 2, 1]
