"""Configuration management for the prompt resolution engine."""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from prompt_resolution.lib.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Load .env from PROMPT_RESOLUTION_ENV_FILE, or ~/.prompt_resolution/.env.
# Values already present in the process environment win.

_env_loaded_from: Optional[str] = None


def _load_env_file() -> Optional[str]:
    """Load .env from the configured location, if it exists."""
    explicit = os.getenv('PROMPT_RESOLUTION_ENV_FILE')
    env_path = Path(explicit) if explicit else Path.home() / '.prompt_resolution' / '.env'

    if env_path.exists():
        load_dotenv(env_path)
        return str(env_path)

    return None


_env_loaded_from = _load_env_file()

if not _env_loaded_from:
    logger.debug("No .env file found, using process environment only")


class CacheBackend(str, Enum):
    """Backing store for resolved prompt documents."""

    MEMORY = "memory"
    REDIS = "redis"
    NONE = "none"


class MissingReferencePolicy(str, Enum):
    """What to do when a reference target cannot be found."""

    PLACEHOLDER = "placeholder"  # substitute a marker, keep resolving
    STRICT = "strict"  # fail the prompt version being resolved


@dataclass(frozen=True)
class ResolverSettings:
    """Tunables for a Resolver instance."""

    missing_reference_policy: MissingReferencePolicy = MissingReferencePolicy.PLACEHOLDER
    max_depth: int = 10
    cache_ttl_seconds: int = 300
    verify_label_bindings: bool = True
    store_timeout_seconds: float = 5.0
    cache_timeout_seconds: float = 1.0


def _get_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} '{raw}', using default {default}")
        return default
    if value < minimum:
        logger.warning(f"{name} must be >= {minimum}, using default {default}")
        return default
    return value


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name} '{raw}', using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, using default {default}")
        return default
    return value


def get_log_level() -> str:
    """Get log level from environment, default to INFO."""
    level = os.getenv('LOG_LEVEL', 'INFO').upper()
    valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

    if level not in valid_levels:
        logger.warning(f"Invalid log level '{level}', defaulting to INFO")
        return 'INFO'

    return level


def get_log_format() -> str:
    """Get log output format ('json' or 'simple'), default json."""
    value = os.getenv('LOG_FORMAT', '').lower()
    return 'simple' if value == 'simple' else 'json'


def get_database_url() -> str:
    """Get primary PostgreSQL database connection URL."""
    db_user = os.getenv('POSTGRES_USER', 'postgres')
    db_pass = os.getenv('POSTGRES_PASSWORD', 'postgres')
    db_host = os.getenv('POSTGRES_HOST', 'postgres')
    db_port = os.getenv('POSTGRES_PORT', '5432')
    db_name = os.getenv('POSTGRES_DB', 'prompts')

    return f"postgresql://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"


def get_app_database_url() -> str:
    """Get the application database URL.

    Reads from DATABASE_URL environment variable, falling back to constructed
    URL from individual POSTGRES_* variables.
    """
    return os.getenv('DATABASE_URL', get_database_url())


def get_redis_url() -> str:
    """Get Redis URL from environment."""
    return os.getenv('REDIS_URL', 'redis://localhost:6379/0')


def get_cache_backend() -> CacheBackend:
    """Get the resolved prompt cache backend."""
    value = os.getenv('PROMPT_CACHE_BACKEND', CacheBackend.MEMORY.value).lower()
    try:
        return CacheBackend(value)
    except ValueError:
        valid = [b.value for b in CacheBackend]
        raise ConfigurationError(
            f"Invalid PROMPT_CACHE_BACKEND: {value}. Must be one of {valid}"
        )


def get_cache_ttl_seconds() -> int:
    """TTL for resolved prompt cache entries."""
    return _get_int('PROMPT_CACHE_TTL_SECONDS', 300, minimum=1)


def get_cache_max_entries() -> int:
    """Capacity of the in-memory resolved prompt cache."""
    return _get_int('PROMPT_CACHE_MAX_ENTRIES', 1000, minimum=1)


def should_verify_label_bindings() -> bool:
    """Check whether cache hits re-verify the labels they followed."""
    value = os.getenv('PROMPT_CACHE_VERIFY_LABELS', 'true')
    if value.lower() in ['false', 'no', '0']:
        return False
    return True


def get_missing_reference_policy() -> MissingReferencePolicy:
    """Get the policy applied to references whose target is missing."""
    value = os.getenv(
        'PROMPT_MISSING_REFERENCE_POLICY', MissingReferencePolicy.PLACEHOLDER.value
    ).lower()
    try:
        return MissingReferencePolicy(value)
    except ValueError:
        valid = [p.value for p in MissingReferencePolicy]
        raise ConfigurationError(
            f"Invalid PROMPT_MISSING_REFERENCE_POLICY: {value}. Must be one of {valid}"
        )


def get_max_nesting_depth() -> int:
    """Maximum reference nesting depth below a root prompt."""
    return _get_int('PROMPT_MAX_NESTING_DEPTH', 10, minimum=1)


def get_store_timeout_seconds() -> float:
    """Deadline applied to each prompt store call."""
    return _get_float('PROMPT_STORE_TIMEOUT_SECONDS', 5.0)


def get_cache_timeout_seconds() -> float:
    """Deadline applied to each cache backend call."""
    return _get_float('PROMPT_CACHE_TIMEOUT_SECONDS', 1.0)


def load_resolver_settings() -> ResolverSettings:
    """Build ResolverSettings from the environment."""
    return ResolverSettings(
        missing_reference_policy=get_missing_reference_policy(),
        max_depth=get_max_nesting_depth(),
        cache_ttl_seconds=get_cache_ttl_seconds(),
        verify_label_bindings=should_verify_label_bindings(),
        store_timeout_seconds=get_store_timeout_seconds(),
        cache_timeout_seconds=get_cache_timeout_seconds(),
    )
