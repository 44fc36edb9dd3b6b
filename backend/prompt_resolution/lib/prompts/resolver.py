"""Recursive prompt resolution.

Turns a stored prompt version into a flattened document by replacing every
{{ref:...}} in its body with the resolved body of the referenced prompt.

The walk is depth-first over an explicit stack of frames, one frame per
prompt version being expanded. The ResolutionContext chain mirrors that
stack and is what detects cycles; Python recursion is never used, so nesting
depth does not grow the interpreter stack.

Usage:
    resolver = Resolver(store, cache, LabelIndex(store), metrics)
    document = await resolver.resolve(prompt)
    outcomes = await resolver.resolve_batch(all_versions)

Each store and cache call is a separate await with nothing held across it,
so concurrent resolutions only share the cache.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from prompt_resolution.config import MissingReferencePolicy, ResolverSettings
from prompt_resolution.lib.exceptions import (
    CyclicReferenceError,
    MaxNestingDepthError,
    MissingReferenceError,
    PromptResolutionError,
    StoreUnavailable,
)
from prompt_resolution.lib.prompts.cache import ResolvedPromptCache
from prompt_resolution.lib.prompts.labels import LabelIndex
from prompt_resolution.lib.prompts.metrics import MetricEvent, MetricsSink, record
from prompt_resolution.lib.prompts.models import (
    CacheKey,
    LabelBinding,
    Prompt,
    Reference,
    ResolutionContext,
    ResolutionOutcome,
    ResolvedDependency,
    ResolvedDocument,
)
from prompt_resolution.lib.prompts.references import parse, render_literal
from prompt_resolution.lib.prompts.store import PromptStore, sort_newest_first

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = "[unresolved prompt reference: {}]"


def placeholder_for(reference: Reference) -> str:
    """Deterministic stand-in text for a reference that could not be resolved."""
    return PLACEHOLDER_TEMPLATE.format(reference.describe())


def _with_current_labels(document: ResolvedDocument, prompt: Prompt) -> ResolvedDocument:
    """Stamp the root row's current labels onto a cached document.

    Labels are the only mutable part of a version, so a cached copy may carry
    labels that have since moved to another version.
    """
    if document.labels == prompt.labels:
        return document
    return document.model_copy(update={"labels": prompt.labels, "is_active": prompt.is_active})


@dataclass
class _Frame:
    """One prompt version being expanded."""

    prompt: Prompt
    references: Iterator[Reference]
    resolved_at: datetime
    pieces: List[str] = field(default_factory=list)
    cursor: int = 0
    dependencies: List[ResolvedDependency] = field(default_factory=list)
    bindings: Dict[LabelBinding, None] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    # Reference waiting for the frame above this one to finish
    pending: Optional[Tuple[Reference, Optional[LabelBinding]]] = None

    def _take_literal(self, upto: int) -> None:
        self.pieces.append(render_literal(self.prompt.prompt[self.cursor:upto]))

    def add_placeholder(self, reference: Reference) -> None:
        self._take_literal(reference.start)
        self.pieces.append(placeholder_for(reference))
        self.cursor = reference.end
        self.missing.append(reference.raw)

    def splice(
        self,
        reference: Reference,
        document: ResolvedDocument,
        binding: Optional[LabelBinding],
    ) -> None:
        """Replace `reference` with the body of `document`, exactly once."""
        self._take_literal(reference.start)
        self.pieces.append(document.prompt)
        self.cursor = reference.end

        self.dependencies.append(
            ResolvedDependency(
                parent_name=self.prompt.name,
                parent_version=self.prompt.version,
                name=document.name,
                version=document.version,
                selector=str(reference.selector),
            )
        )
        self.dependencies.extend(document.dependencies)
        if binding is not None:
            self._bind(binding)
        for nested in document.label_bindings:
            self._bind(nested)
        self.missing.extend(document.missing_references)
        self.resolved_at = max(self.resolved_at, document.resolved_at)

    def _bind(self, binding: LabelBinding) -> None:
        self.bindings.setdefault(binding)

    def close(self) -> ResolvedDocument:
        self._take_literal(len(self.prompt.prompt))
        prompt = self.prompt
        return ResolvedDocument(
            project_id=prompt.project_id,
            name=prompt.name,
            version=prompt.version,
            prompt="".join(self.pieces),
            labels=prompt.labels,
            is_active=prompt.is_active,
            resolved_at=self.resolved_at,
            type=prompt.type,
            tags=prompt.tags,
            config=prompt.config,
            created_at=prompt.created_at,
            created_by=prompt.created_by,
            commit_message=prompt.commit_message,
            dependencies=tuple(self.dependencies),
            label_bindings=tuple(self.bindings),
            missing_references=tuple(self.missing),
        )


class Resolver:
    """Resolve prompt versions into flattened documents."""

    def __init__(
        self,
        store: PromptStore,
        cache: ResolvedPromptCache,
        label_index: Optional[LabelIndex] = None,
        metrics: Optional[MetricsSink] = None,
        settings: Optional[ResolverSettings] = None,
    ):
        self._store = store
        self._cache = cache
        self._labels = label_index or LabelIndex(store)
        self._metrics = metrics
        self._settings = settings or ResolverSettings()

    @property
    def settings(self) -> ResolverSettings:
        return self._settings

    @property
    def metrics(self) -> Optional[MetricsSink]:
        return self._metrics

    async def resolve(
        self,
        root: Prompt,
        ctx: Optional[ResolutionContext] = None,
    ) -> ResolvedDocument:
        """Resolve `root` and every prompt it references.

        Raises:
            CyclicReferenceError: a reference chain revisits a version being expanded
            MaxNestingDepthError: nesting exceeds settings.max_depth
            MissingReferenceError: a target is missing and the policy is strict
            StoreUnavailable: the store failed or timed out
        """
        ctx = ctx if ctx is not None else ResolutionContext()
        project_id = root.project_id
        record(self._metrics, MetricEvent.RESOLUTION_ATTEMPTED, project_id)

        cached = await self._cache_get(root.key)
        if cached is not None:
            return _with_current_labels(cached, root)

        base_depth = ctx.depth
        self._enter(ctx, root)
        stack = [self._open(root)]
        try:
            while True:
                frame = stack[-1]
                reference = next(frame.references, None)

                if reference is None:
                    document = frame.close()
                    stack.pop()
                    ctx.pop()
                    await self._cache_put(document)
                    if not stack:
                        return document
                    parent = stack[-1]
                    pending_ref, binding = parent.pending
                    parent.pending = None
                    parent.splice(pending_ref, document, binding)
                    continue

                target, binding = await self._lookup(project_id, reference)
                if target is None:
                    self._missing(frame, reference)
                    continue

                record(self._metrics, MetricEvent.REFERENCE_RESOLVED, project_id)

                cached = await self._cache_get(target.key)
                if cached is not None:
                    frame.splice(reference, cached, binding)
                    continue

                self._enter(ctx, target)
                if len(stack) > self._settings.max_depth:
                    raise MaxNestingDepthError(
                        f"Prompt references nested deeper than {self._settings.max_depth} "
                        f"levels below {root.name}@{root.version}",
                        details={"chain": [f"{n}@{v}" for n, v in ctx.chain[base_depth:]]},
                    )
                frame.pending = (reference, binding)
                stack.append(self._open(target))
        finally:
            while ctx.depth > base_depth:
                ctx.pop()

    async def resolve_batch(self, prompts: Sequence[Prompt]) -> List[ResolutionOutcome]:
        """Resolve every prompt concurrently, one ResolutionContext each.

        A failure in one version is returned as that version's outcome and
        never affects the others. Outcomes are ordered newest version first.
        """
        ordered = sort_newest_first(prompts)
        return list(await asyncio.gather(*(self._resolve_outcome(p) for p in ordered)))

    async def _resolve_outcome(self, prompt: Prompt) -> ResolutionOutcome:
        try:
            document = await self.resolve(prompt, ResolutionContext())
        except PromptResolutionError as e:
            logger.warning(
                "Failed to resolve %s v%s: %s", prompt.name, prompt.version, e,
                extra={"error_code": e.error_code, "version": prompt.version},
            )
            return ResolutionOutcome(name=prompt.name, version=prompt.version, error=e)
        except Exception as e:
            logger.error(
                "Unexpected error resolving %s v%s", prompt.name, prompt.version,
                exc_info=True,
            )
            return ResolutionOutcome(name=prompt.name, version=prompt.version, error=e)
        return ResolutionOutcome(name=prompt.name, version=prompt.version, document=document)

    # ------------------------------------------------------------------
    # Walk helpers
    # ------------------------------------------------------------------

    def _open(self, prompt: Prompt) -> _Frame:
        return _Frame(
            prompt=prompt,
            references=parse(prompt.prompt),
            resolved_at=prompt.created_at,
        )

    def _enter(self, ctx: ResolutionContext, prompt: Prompt) -> None:
        try:
            ctx.push(prompt.name, prompt.version)
        except CyclicReferenceError as e:
            record(self._metrics, MetricEvent.CYCLE_DETECTED, prompt.project_id)
            logger.warning(str(e), extra={"error_code": e.error_code})
            raise

    def _missing(self, frame: _Frame, reference: Reference) -> None:
        record(self._metrics, MetricEvent.REFERENCE_MISSING, frame.prompt.project_id)
        reason = reference.error or "target not found"

        if self._settings.missing_reference_policy == MissingReferencePolicy.STRICT:
            raise MissingReferenceError(
                f"Unresolved prompt reference {reference.describe()} in "
                f"{frame.prompt.name}@{frame.prompt.version}: {reason}",
                reference=reference.raw,
            )

        logger.warning(
            "Unresolved prompt reference %s in %s v%s (%s)",
            reference.describe(), frame.prompt.name, frame.prompt.version, reason,
        )
        frame.add_placeholder(reference)

    async def _lookup(
        self, project_id: str, reference: Reference
    ) -> Tuple[Optional[Prompt], Optional[LabelBinding]]:
        """Find the prompt a reference points at right now."""
        if not reference.is_valid:
            return None, None

        if reference.version is not None:
            target = await self._store_call(
                self._store.fetch_by_version(project_id, reference.name, reference.version)
            )
            return target, None

        version = await self._store_call(
            self._labels.resolve(project_id, reference.name, reference.label)
        )
        if version is None:
            return None, None

        target = await self._store_call(
            self._store.fetch_by_version(project_id, reference.name, version)
        )
        if target is None:
            return None, None
        return target, LabelBinding(name=reference.name, label=reference.label, version=version)

    async def _store_call(self, awaitable):
        timeout = self._settings.store_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Prompt store timed out after {timeout}s") from e

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    async def _cache_get(self, key: CacheKey) -> Optional[ResolvedDocument]:
        try:
            document = await asyncio.wait_for(
                self._cache.get(key), self._settings.cache_timeout_seconds
            )
        except Exception as e:
            logger.warning("Resolved prompt cache unavailable for %s: %s", key, e)
            document = None

        if document is not None and not await self._bindings_current(document):
            logger.debug("Cached %s followed a label that has since moved", key)
            await self._cache_delete(key)
            document = None

        event = MetricEvent.CACHE_HIT if document is not None else MetricEvent.CACHE_MISS
        record(self._metrics, event, key.project_id)
        return document

    async def _bindings_current(self, document: ResolvedDocument) -> bool:
        if not self._settings.verify_label_bindings:
            return True
        for binding in document.label_bindings:
            current = await self._store_call(
                self._labels.resolve(document.project_id, binding.name, binding.label)
            )
            if current != binding.version:
                return False
        return True

    async def _cache_put(self, document: ResolvedDocument) -> None:
        try:
            await asyncio.wait_for(
                self._cache.put(document.key, document, ttl=self._settings.cache_ttl_seconds),
                self._settings.cache_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Failed to cache resolved prompt %s: %s", document.key, e)

    async def _cache_delete(self, key: CacheKey) -> None:
        try:
            await asyncio.wait_for(self._cache.delete(key), self._settings.cache_timeout_seconds)
        except Exception as e:
            logger.warning("Failed to drop stale resolved prompt %s: %s", key, e)
