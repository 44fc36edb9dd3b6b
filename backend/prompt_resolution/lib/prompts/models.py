"""Domain models for prompt resolution.

- Prompt: one immutable version of a named prompt, as read from the store
- Reference: an in-body pointer to another prompt (name + version or label)
- ResolvedDocument: the flattened result of resolving a Prompt
- ResolutionContext: per-call chain of (name, version) pairs being expanded

The SQLAlchemy row lives in prompt_resolution/models/sql/prompts.py; the
store converts rows into these models so the engine never holds a session.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from prompt_resolution.lib.exceptions import CyclicReferenceError

PRODUCTION_LABEL = "production"
LATEST_LABEL = "latest"


class CacheKey(NamedTuple):
    """Immutable identity of one prompt version."""

    project_id: str
    name: str
    version: int

    def __str__(self) -> str:
        return f"{self.project_id}:{self.name}:v{self.version}"


def _normalize_labels(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    return tuple(sorted(set(value)))


class Prompt(BaseModel):
    """A single stored prompt version."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    name: str
    version: int
    prompt: str = ""
    labels: Tuple[str, ...] = ()
    created_at: datetime
    type: str = "text"
    tags: Tuple[str, ...] = ()
    config: Dict[str, Any] = {}
    created_by: Optional[str] = None
    commit_message: Optional[str] = None

    @field_validator("labels", "tags", mode="before")
    @classmethod
    def _normalize_sets(cls, value: Any) -> Tuple[str, ...]:
        return _normalize_labels(value)

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.project_id, self.name, self.version)

    @property
    def is_active(self) -> bool:
        return PRODUCTION_LABEL in self.labels


@dataclass(frozen=True)
class Reference:
    """A reference found in a prompt body.

    `selector` is an int for explicit versions and a str for labels.
    Malformed references carry `error` and no name.
    """

    raw: str
    start: int
    end: int
    name: Optional[str] = None
    selector: Union[int, str, None] = None
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None

    @property
    def label(self) -> Optional[str]:
        return self.selector if isinstance(self.selector, str) else None

    @property
    def version(self) -> Optional[int]:
        return self.selector if isinstance(self.selector, int) else None

    def describe(self) -> str:
        """Short human-readable form, e.g. 'farewell@production'."""
        if not self.is_valid:
            return self.raw
        return f"{self.name}@{self.selector}"


class LabelBinding(BaseModel):
    """A label lookup that was followed while resolving a document."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    version: int


class ResolvedDependency(BaseModel):
    """Provenance edge: `parent` referenced `name@version` via `selector`."""

    model_config = ConfigDict(frozen=True)

    parent_name: str
    parent_version: int
    name: str
    version: int
    selector: str


class ResolvedDocument(BaseModel):
    """Fully flattened prompt version.

    `resolved_at` is a logical timestamp: the newest created_at among the
    root and every prompt spliced into it. It does not change between a
    computation and later cache hits.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    name: str
    version: int
    prompt: str
    labels: Tuple[str, ...] = ()
    is_active: bool = False
    resolved_at: datetime
    type: str = "text"
    tags: Tuple[str, ...] = ()
    config: Dict[str, Any] = {}
    created_at: datetime
    created_by: Optional[str] = None
    commit_message: Optional[str] = None
    dependencies: Tuple[ResolvedDependency, ...] = ()
    label_bindings: Tuple[LabelBinding, ...] = ()
    missing_references: Tuple[str, ...] = ()

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.project_id, self.name, self.version)

    @property
    def partially_resolved(self) -> bool:
        return bool(self.missing_references)


@dataclass
class ResolutionContext:
    """Cycle-tracking state for one top-level resolution call.

    Never share an instance between concurrent calls.
    """

    chain: List[Tuple[str, int]] = field(default_factory=list)
    _members: Set[Tuple[str, int]] = field(default_factory=set, repr=False)

    def push(self, name: str, version: int) -> None:
        """Enter (name, version); raise CyclicReferenceError if already expanding."""
        key = (name, version)
        if key in self._members:
            start = self.chain.index(key)
            raise CyclicReferenceError(self.chain[start:] + [key])
        self.chain.append(key)
        self._members.add(key)

    def pop(self) -> Tuple[str, int]:
        key = self.chain.pop()
        self._members.discard(key)
        return key

    @property
    def depth(self) -> int:
        return len(self.chain)


@dataclass(frozen=True)
class ResolutionOutcome:
    """Per-version result of a batch resolution: a document or an error."""

    name: str
    version: int
    document: Optional[ResolvedDocument] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.document is not None
