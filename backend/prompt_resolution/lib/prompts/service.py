"""Prompt service: resolve every version of a prompt name.

The resolver works on prompt versions already read from the store. This
service is the entry point callers use:
- Fetching all versions of a name (newest first)
- Resolving them concurrently, one failure per row at most
- Gating access by project scope and rate limit

Usage:
    from prompt_resolution.lib.prompts.factory import build_prompt_service

    service = build_prompt_service()

    # Internal callers that already know the project
    outcomes = await service.resolve_all_versions("proj-1", "greeting")

    # Public boundary
    response = await service.get_prompt_versions(
        AuthScope(project_id="proj-1", access_level="project"),
        "greeting",
        rate_limiter=limiter,
    )
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict

from prompt_resolution.lib.context import set_current_project_id, set_current_prompt_name
from prompt_resolution.lib.exceptions import (
    ForbiddenError,
    PromptNotFoundError,
    RateLimitedError,
)
from prompt_resolution.lib.prompts.models import (
    Prompt,
    ResolutionOutcome,
    ResolvedDependency,
)
from prompt_resolution.lib.prompts.resolver import Resolver
from prompt_resolution.lib.prompts.store import PromptStore

logger = logging.getLogger(__name__)

PROJECT_ACCESS = "project"
RATE_LIMIT_RESOURCE = "prompts"


class AuthScope(BaseModel):
    """Authenticated caller scope, as produced by API key verification."""

    model_config = ConfigDict(frozen=True)

    project_id: Optional[str] = None
    access_level: str = PROJECT_ACCESS


class RateLimitResult(Protocol):
    def is_rate_limited(self) -> bool:
        ...


class RateLimiter(Protocol):
    """Anything that can rate limit a scope for a resource class."""

    async def rate_limit_request(
        self, scope: AuthScope, resource: str
    ) -> Optional[RateLimitResult]:
        ...


class ResolvedPromptItem(BaseModel):
    """One row of a versions response.

    Rows that failed to resolve keep their stored metadata, have no
    `prompt`, and carry `error` (the error kind) and `message`.
    """

    name: str
    version: int
    prompt: Optional[str] = None
    labels: Tuple[str, ...] = ()
    is_active: bool = False
    type: str = "text"
    tags: Tuple[str, ...] = ()
    config: Dict[str, Any] = {}
    created_at: datetime
    created_by: Optional[str] = None
    commit_message: Optional[str] = None
    resolved_at: Optional[datetime] = None
    dependencies: Tuple[ResolvedDependency, ...] = ()
    missing_references: Tuple[str, ...] = ()
    partially_resolved: bool = False
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_outcome(cls, prompt: Prompt, outcome: ResolutionOutcome) -> "ResolvedPromptItem":
        base = dict(
            name=prompt.name,
            version=prompt.version,
            labels=prompt.labels,
            is_active=prompt.is_active,
            type=prompt.type,
            tags=prompt.tags,
            config=prompt.config,
            created_at=prompt.created_at,
            created_by=prompt.created_by,
            commit_message=prompt.commit_message,
        )
        if not outcome.ok:
            return cls(
                **base,
                error=type(outcome.error).__name__,
                message=str(outcome.error),
            )

        document = outcome.document
        return cls(
            **base,
            prompt=document.prompt,
            resolved_at=document.resolved_at,
            dependencies=document.dependencies,
            missing_references=document.missing_references,
            partially_resolved=document.partially_resolved,
        )


class VersionsMeta(BaseModel):
    total_versions: int
    prompt_name: str


class PromptVersionsResponse(BaseModel):
    data: List[ResolvedPromptItem]
    meta: VersionsMeta


class PromptService:
    """Resolve all versions of a prompt name for one project."""

    def __init__(self, store: PromptStore, resolver: Resolver):
        self.store = store
        self.resolver = resolver

    async def resolve_all_versions(
        self, project_id: str, prompt_name: str
    ) -> List[ResolutionOutcome]:
        """Resolve every stored version of `prompt_name`, newest first.

        Raises:
            PromptNotFoundError: the name has no versions in this project
            StoreUnavailable: the initial fetch failed
        """
        _, outcomes = await self._resolve_versions(project_id, prompt_name)
        return outcomes

    async def get_prompt_versions(
        self,
        scope: AuthScope,
        prompt_name: str,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> PromptVersionsResponse:
        """Scope-checked, rate-limited form of resolve_all_versions().

        Raises:
            ForbiddenError: the scope is not a project-level API key
            RateLimitedError: the rate limiter refused the call
            PromptNotFoundError: the name has no versions in this project
        """
        if scope.access_level != PROJECT_ACCESS or not scope.project_id:
            raise ForbiddenError(
                "Access denied: Bearer auth and org api keys are not allowed to access",
                details={"access_level": scope.access_level},
            )

        if rate_limiter is not None:
            result = await rate_limiter.rate_limit_request(scope, RATE_LIMIT_RESOURCE)
            if result is not None and result.is_rate_limited():
                logger.info(
                    "Rate limited prompt versions request for %s", prompt_name,
                    extra={"resource": RATE_LIMIT_RESOURCE},
                )
                raise RateLimitedError(
                    f"Rate limit exceeded for resource '{RATE_LIMIT_RESOURCE}'",
                    result=result,
                )

        prompts, outcomes = await self._resolve_versions(scope.project_id, prompt_name)
        items = [
            ResolvedPromptItem.from_outcome(prompt, outcome)
            for prompt, outcome in zip(prompts, outcomes)
        ]
        return PromptVersionsResponse(
            data=items,
            meta=VersionsMeta(total_versions=len(prompts), prompt_name=prompt_name),
        )

    async def _resolve_versions(
        self, project_id: str, prompt_name: str
    ) -> Tuple[List[Prompt], List[ResolutionOutcome]]:
        set_current_project_id(project_id)
        set_current_prompt_name(prompt_name)

        prompts = await self.store.fetch_versions(project_id, prompt_name)
        if not prompts:
            raise PromptNotFoundError(
                "No versions found for the specified prompt name",
                details={"prompt_name": prompt_name},
            )

        # resolve_batch orders newest first; keep rows aligned with it
        outcomes = await self.resolver.resolve_batch(prompts)
        by_key = {(p.name, p.version): p for p in prompts}
        ordered = [by_key[(o.name, o.version)] for o in outcomes]

        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(
            "Resolved %d versions of %s (%d failed)", len(outcomes), prompt_name, failed,
            extra={"total_versions": len(outcomes), "failed_versions": failed},
        )
        return ordered, outcomes
