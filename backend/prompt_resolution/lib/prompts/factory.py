"""Process-start wiring for the prompt resolution engine.

Call build_prompt_service() once when the worker starts, keep the returned
service for the life of the process, and await shutdown() on exit.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry

from prompt_resolution.config import (
    CacheBackend,
    ResolverSettings,
    get_cache_backend,
    get_cache_max_entries,
    load_resolver_settings,
)
from prompt_resolution.lib.prompts.cache import (
    InMemoryResolvedPromptCache,
    NullResolvedPromptCache,
    RedisResolvedPromptCache,
    ResolvedPromptCache,
)
from prompt_resolution.lib.prompts.labels import LabelIndex
from prompt_resolution.lib.prompts.metrics import (
    MetricsSink,
    PrometheusMetricsSink,
    get_default_metrics_sink,
)
from prompt_resolution.lib.prompts.resolver import Resolver
from prompt_resolution.lib.prompts.service import PromptService
from prompt_resolution.lib.prompts.store import PromptStore, SqlPromptStore
from prompt_resolution.lib.redis_client import close_redis, get_redis
from prompt_resolution.models.sql.database import get_session_factory

logger = logging.getLogger(__name__)


async def build_cache(
    backend: CacheBackend,
    settings: ResolverSettings,
) -> ResolvedPromptCache:
    """Create the resolved prompt cache for `backend`."""
    if backend == CacheBackend.REDIS:
        client = await get_redis()
        return RedisResolvedPromptCache(
            client,
            default_ttl=settings.cache_ttl_seconds,
            timeout=settings.cache_timeout_seconds,
        )
    if backend == CacheBackend.NONE:
        return NullResolvedPromptCache()
    return InMemoryResolvedPromptCache(
        max_entries=get_cache_max_entries(),
        default_ttl=settings.cache_ttl_seconds,
    )


async def build_prompt_service(
    store: Optional[PromptStore] = None,
    cache: Optional[ResolvedPromptCache] = None,
    metrics: Optional[MetricsSink] = None,
    settings: Optional[ResolverSettings] = None,
    registry: Optional[CollectorRegistry] = None,
) -> PromptService:
    """Build a PromptService from the environment.

    Any collaborator passed in is used as-is instead of the configured one.
    Without `metrics` or `registry`, every call shares the one sink
    registered on the global prometheus REGISTRY.

    Raises:
        ConfigurationError: PROMPT_CACHE_BACKEND or
            PROMPT_MISSING_REFERENCE_POLICY is invalid
    """
    settings = settings or load_resolver_settings()

    if store is None:
        store = SqlPromptStore(get_session_factory(), timeout=settings.store_timeout_seconds)
    if cache is None:
        cache = await build_cache(get_cache_backend(), settings)
    if metrics is None and registry is not None:
        metrics = PrometheusMetricsSink(registry=registry)
    elif metrics is None:
        metrics = get_default_metrics_sink()

    resolver = Resolver(
        store,
        cache,
        label_index=LabelIndex(store),
        metrics=metrics,
        settings=settings,
    )
    logger.info(
        "Prompt service ready (cache=%s, policy=%s, max_depth=%d)",
        type(cache).__name__,
        settings.missing_reference_policy.value,
        settings.max_depth,
    )
    return PromptService(store, resolver)


async def shutdown() -> None:
    """Release process-wide connections."""
    await close_redis()
