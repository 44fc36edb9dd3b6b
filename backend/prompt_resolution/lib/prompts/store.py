"""Read-only prompt store adapters.

The resolver reads prompts through the PromptStore interface only:

    versions = await store.fetch_versions(project_id, "greeting")
    prompt = await store.fetch_by_version(project_id, "farewell", 3)
    prompt = await store.fetch_by_label(project_id, "farewell", "production")

Every call is a point-in-time snapshot; nothing is transactional across
calls. "Not found" is None (or an empty list), never an exception. Transport
failures and timeouts raise StoreUnavailable and are not retried here.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from prompt_resolution.lib.exceptions import StoreUnavailable
from prompt_resolution.lib.prompts.models import Prompt
from prompt_resolution.models.sql.prompts import PromptVersion

logger = logging.getLogger(__name__)


def sort_newest_first(prompts: Iterable[Prompt]) -> List[Prompt]:
    """Order by version descending, then created_at descending."""
    return sorted(prompts, key=lambda p: (p.version, p.created_at), reverse=True)


class PromptStore(ABC):
    """Read-only accessor for prompt versions."""

    @abstractmethod
    async def fetch_versions(self, project_id: str, name: str) -> List[Prompt]:
        """All versions of a prompt name, newest version first."""

    @abstractmethod
    async def fetch_by_version(
        self, project_id: str, name: str, version: int
    ) -> Optional[Prompt]:
        """One specific version, or None."""

    @abstractmethod
    async def fetch_label_holders(
        self, project_id: str, name: str, label: str
    ) -> List[Prompt]:
        """Every version currently carrying `label`, newest first.

        Normally zero or one; more than one means a label move raced the read.
        """

    async def fetch_by_label(
        self, project_id: str, name: str, label: str
    ) -> Optional[Prompt]:
        """The version holding `label`, or None. Highest version wins ties."""
        holders = await self.fetch_label_holders(project_id, name, label)
        return holders[0] if holders else None


class SqlPromptStore(PromptStore):
    """PromptStore over the SQLAlchemy `prompts` table.

    Sessions are synchronous; each query runs in a worker thread so the
    event loop stays free, and is bounded by `timeout` seconds.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        timeout: float = 5.0,
    ):
        self._session_factory = session_factory
        self._timeout = timeout

    async def fetch_versions(self, project_id: str, name: str) -> List[Prompt]:
        return await self._run(self._query_versions, project_id, name)

    async def fetch_by_version(
        self, project_id: str, name: str, version: int
    ) -> Optional[Prompt]:
        return await self._run(self._query_version, project_id, name, version)

    async def fetch_label_holders(
        self, project_id: str, name: str, label: str
    ) -> List[Prompt]:
        # Labels are a JSON list; filter in Python so the same query works on
        # PostgreSQL and SQLite. One name rarely has many versions.
        versions = await self.fetch_versions(project_id, name)
        return [p for p in versions if label in p.labels]

    async def _run(self, fn, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self._timeout)
        except asyncio.TimeoutError as e:
            logger.error(
                "Prompt store call timed out after %.2fs", self._timeout,
                extra={"operation": fn.__name__},
            )
            raise StoreUnavailable(
                f"Prompt store timed out after {self._timeout}s",
                details={"operation": fn.__name__},
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Prompt store query failed: %s", e,
                extra={"operation": fn.__name__},
            )
            raise StoreUnavailable(
                "Prompt store query failed",
                details={"operation": fn.__name__, "error": str(e)},
            ) from e

    def _query_versions(self, project_id: str, name: str) -> List[Prompt]:
        with self._session_factory() as db:
            stmt = (
                select(PromptVersion)
                .where(PromptVersion.project_id == project_id, PromptVersion.name == name)
                .order_by(PromptVersion.version.desc(), PromptVersion.created_at.desc())
            )
            return [_to_prompt(row) for row in db.scalars(stmt).all()]

    def _query_version(self, project_id: str, name: str, version: int) -> Optional[Prompt]:
        with self._session_factory() as db:
            stmt = select(PromptVersion).where(
                PromptVersion.project_id == project_id,
                PromptVersion.name == name,
                PromptVersion.version == version,
            )
            row = db.scalars(stmt).first()
            return _to_prompt(row) if row is not None else None


def _to_prompt(row: PromptVersion) -> Prompt:
    created_at = row.created_at
    if created_at is not None and created_at.tzinfo is None:
        # SQLite drops tzinfo; stored values are UTC
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Prompt(
        project_id=row.project_id,
        name=row.name,
        version=row.version,
        prompt=row.prompt,
        labels=row.labels or [],
        created_at=created_at,
        type=row.type or "text",
        tags=row.tags or [],
        config=row.config or {},
        created_by=row.created_by,
        commit_message=row.commit_message,
    )


class InMemoryPromptStore(PromptStore):
    """Dictionary-backed PromptStore for tests and embedded use.

    Includes a minimal write path (add, move_label) that keeps the
    one-holder-per-label invariant.
    """

    def __init__(self, prompts: Iterable[Prompt] = ()):
        self._lock = RLock()
        self._versions: Dict[Tuple[str, str], Dict[int, Prompt]] = defaultdict(dict)
        for prompt in prompts:
            self.add(prompt)

    def add(self, prompt: Prompt) -> Prompt:
        """Insert a version. Labels it carries are taken from other versions."""
        with self._lock:
            versions = self._versions[(prompt.project_id, prompt.name)]
            if prompt.version in versions:
                raise ValueError(f"Version already exists: {prompt.key}")
            for label in prompt.labels:
                self._strip_label(prompt.project_id, prompt.name, label)
            versions[prompt.version] = prompt
            return prompt

    def create_version(
        self,
        project_id: str,
        name: str,
        prompt: str,
        labels: Iterable[str] = (),
        created_at: Optional[datetime] = None,
        **metadata,
    ) -> Prompt:
        """Append the next version number for `name`."""
        with self._lock:
            versions = self._versions[(project_id, name)]
            next_version = max(versions, default=0) + 1
            return self.add(
                Prompt(
                    project_id=project_id,
                    name=name,
                    version=next_version,
                    prompt=prompt,
                    labels=list(labels),
                    created_at=created_at or datetime.now(timezone.utc),
                    **metadata,
                )
            )

    def move_label(self, project_id: str, name: str, label: str, version: int) -> None:
        """Point `label` at `version`, removing it from whichever version held it."""
        with self._lock:
            versions = self._versions[(project_id, name)]
            if version not in versions:
                raise ValueError(f"Unknown version {version} for {project_id}/{name}")
            self._strip_label(project_id, name, label)
            target = versions[version]
            versions[version] = target.model_copy(
                update={"labels": tuple(sorted(set(target.labels) | {label}))}
            )

    def _strip_label(self, project_id: str, name: str, label: str) -> None:
        versions = self._versions[(project_id, name)]
        for number, existing in list(versions.items()):
            if label in existing.labels:
                versions[number] = existing.model_copy(
                    update={"labels": tuple(l for l in existing.labels if l != label)}
                )

    async def fetch_versions(self, project_id: str, name: str) -> List[Prompt]:
        with self._lock:
            return sort_newest_first(self._versions.get((project_id, name), {}).values())

    async def fetch_by_version(
        self, project_id: str, name: str, version: int
    ) -> Optional[Prompt]:
        with self._lock:
            return self._versions.get((project_id, name), {}).get(version)

    async def fetch_label_holders(
        self, project_id: str, name: str, label: str
    ) -> List[Prompt]:
        versions = await self.fetch_versions(project_id, name)
        return [p for p in versions if label in p.labels]
