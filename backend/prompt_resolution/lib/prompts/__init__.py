"""Prompt resolution module.

This module provides:
- Reference parsing ({{ref:name}}, {{ref:name@label}}, {{ref:name@3}})
- Recursive resolution of prompt versions into flattened documents
- A resolved document cache keyed by immutable version identity
- The boundary service that resolves every version of a prompt name

Usage:
    from prompt_resolution.lib.prompts import build_prompt_service

    service = await build_prompt_service()
    outcomes = await service.resolve_all_versions("proj-1", "greeting")
    for outcome in outcomes:
        if outcome.ok:
            print(outcome.version, outcome.document.prompt)
"""

from .cache import (
    InMemoryResolvedPromptCache,
    NullResolvedPromptCache,
    RedisResolvedPromptCache,
    ResolvedPromptCache,
)
from .factory import build_prompt_service, shutdown
from .labels import LabelIndex
from .metrics import (
    InMemoryMetricsSink,
    MetricEvent,
    NullMetricsSink,
    PrometheusMetricsSink,
    get_default_metrics_sink,
)
from .models import (
    LATEST_LABEL,
    PRODUCTION_LABEL,
    CacheKey,
    Prompt,
    Reference,
    ResolutionContext,
    ResolutionOutcome,
    ResolvedDocument,
)
from .references import parse, parse_all
from .resolver import Resolver
from .service import AuthScope, PromptService, PromptVersionsResponse, ResolvedPromptItem
from .store import InMemoryPromptStore, PromptStore, SqlPromptStore

__all__ = [
    # Models
    "LATEST_LABEL",
    "PRODUCTION_LABEL",
    "CacheKey",
    "Prompt",
    "Reference",
    "ResolutionContext",
    "ResolutionOutcome",
    "ResolvedDocument",
    # Parsing
    "parse",
    "parse_all",
    # Store and labels
    "PromptStore",
    "SqlPromptStore",
    "InMemoryPromptStore",
    "LabelIndex",
    # Cache
    "ResolvedPromptCache",
    "InMemoryResolvedPromptCache",
    "RedisResolvedPromptCache",
    "NullResolvedPromptCache",
    # Metrics
    "MetricEvent",
    "InMemoryMetricsSink",
    "NullMetricsSink",
    "PrometheusMetricsSink",
    "get_default_metrics_sink",
    # Resolution
    "Resolver",
    "PromptService",
    "AuthScope",
    "PromptVersionsResponse",
    "ResolvedPromptItem",
    "build_prompt_service",
    "shutdown",
]
