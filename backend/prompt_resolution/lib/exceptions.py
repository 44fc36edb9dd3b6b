"""Custom exception classes for the prompt resolution engine."""

from typing import Optional, Dict, Any, Sequence, Tuple


class PromptResolutionError(Exception):
    """Base exception for prompt resolution errors."""

    ERROR_CODE = "PROMPT_000"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Initialize exception with message, code, and optional details.

        Args:
            message: Error message
            error_code: Optional error code override
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.error_code = error_code or self.ERROR_CODE
        self.details = details or {}


class CyclicReferenceError(PromptResolutionError):
    """Raised when a prompt references itself, directly or transitively."""

    ERROR_CODE = "PROMPT_CYCLE_001"

    def __init__(
        self,
        cycle: Sequence[Tuple[str, int]],
        error_code: Optional[str] = None,
    ):
        """Initialize with the (name, version) pairs forming the cycle.

        The first and last entries are the same key.
        """
        self.cycle = [(name, version) for name, version in cycle]
        path = " -> ".join(f"{name}@{version}" for name, version in self.cycle)
        super().__init__(
            f"Cyclic prompt reference detected: {path}",
            error_code,
            details={"cycle": [{"name": n, "version": v} for n, v in self.cycle]},
        )


class MissingReferenceError(PromptResolutionError):
    """Raised when a referenced prompt does not exist (strict policy only)."""

    ERROR_CODE = "PROMPT_REF_001"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        reference: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.reference = reference
        self.details["reference"] = reference


class ReferenceParseError(PromptResolutionError):
    """Raised for a malformed reference in a prompt body."""

    ERROR_CODE = "PROMPT_REF_002"


class LabelAmbiguous(PromptResolutionError):
    """Raised (and logged) when more than one version holds the same label."""

    ERROR_CODE = "PROMPT_LABEL_001"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        versions: Optional[list] = None,
    ):
        super().__init__(message, error_code)
        self.versions = versions or []
        self.details["versions"] = self.versions


class MaxNestingDepthError(PromptResolutionError):
    """Raised when references are nested deeper than the configured limit."""

    ERROR_CODE = "PROMPT_DEPTH_001"


class StoreUnavailable(PromptResolutionError):
    """Raised when the prompt store fails or times out."""

    ERROR_CODE = "PROMPT_STORE_001"


class PromptNotFoundError(PromptResolutionError):
    """Raised when a prompt name has no versions at all."""

    ERROR_CODE = "PROMPT_NOT_FOUND_001"


class ForbiddenError(PromptResolutionError):
    """Raised when the caller's scope may not access the engine."""

    ERROR_CODE = "PROMPT_FORBIDDEN_001"


class RateLimitedError(PromptResolutionError):
    """Raised when the rate limiter rejects the call."""

    ERROR_CODE = "PROMPT_RATE_LIMIT_001"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        result: Any = None,
    ):
        """Initialize with the rate limiter's ready-made result."""
        super().__init__(message, error_code)
        self.result = result


class ConfigurationError(PromptResolutionError):
    """Raised when configuration is invalid."""

    ERROR_CODE = "CONFIG_001"
