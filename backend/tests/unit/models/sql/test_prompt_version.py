"""Unit tests for the PromptVersion SQL model."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from prompt_resolution.models.sql.prompts import PromptVersion


def test_table_indexes(session_factory):
    engine = session_factory.kw["bind"]
    indexes = {ix["name"]: ix for ix in inspect(engine).get_indexes("prompts")}

    assert indexes["uq_prompts_project_name_version"]["unique"]
    assert indexes["uq_prompts_project_name_version"]["column_names"] == [
        "project_id", "name", "version",
    ]
    assert indexes["idx_prompts_project_name"]["column_names"] == ["project_id", "name"]


def test_defaults_are_applied(session_factory):
    with session_factory() as db:
        row = PromptVersion(project_id="proj-1", name="greeting", version=1, prompt="Hi")
        db.add(row)
        db.commit()
        db.refresh(row)

    assert row.id is not None
    assert row.type == "text"
    assert row.labels == []
    assert row.tags == []
    assert row.config == {}
    assert row.created_at is not None


def test_duplicate_version_is_rejected(session_factory):
    with session_factory() as db:
        db.add(PromptVersion(project_id="proj-1", name="greeting", version=1, prompt="a"))
        db.commit()
        db.add(PromptVersion(project_id="proj-1", name="greeting", version=1, prompt="b"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


def test_same_version_in_other_project_is_allowed(session_factory):
    with session_factory() as db:
        db.add(PromptVersion(project_id="proj-1", name="greeting", version=1, prompt="a"))
        db.add(PromptVersion(project_id="proj-2", name="greeting", version=1, prompt="b"))
        db.commit()


def test_repr():
    row = PromptVersion(
        project_id="proj-1", name="greeting", version=2, prompt="Hi", labels=["production"]
    )
    assert repr(row) == "<PromptVersion proj-1/greeting v2 [production]>"
