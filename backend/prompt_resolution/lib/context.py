"""Context variables for request-scoped data.

This module provides context variables for tracking request-scoped data
across async boundaries. The boundary service sets them at the start of
each call; the logging filter reads them into every log record.

Usage:
    # In PromptService.resolve_all_versions():
    set_current_project_id(project_id)
    set_current_prompt_name(prompt_name)

    # Anywhere below it:
    project_id = get_current_project_id()

Note: These use contextvars which are properly isolated per async task.
Tasks created by asyncio.gather() inherit a copy of the caller's values.
"""

from contextvars import ContextVar
from typing import Optional

_current_request_id: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
_current_project_id: ContextVar[Optional[str]] = ContextVar('project_id', default=None)
_current_prompt_name: ContextVar[Optional[str]] = ContextVar('prompt_name', default=None)


def set_current_request_id(request_id: str) -> None:
    """Set the correlation ID supplied by the calling layer."""
    _current_request_id.set(request_id)


def get_current_request_id() -> Optional[str]:
    """Get the current correlation ID, if any."""
    return _current_request_id.get()


def set_current_project_id(project_id: str) -> None:
    """Set the project whose prompts are being resolved.

    Args:
        project_id: Project identifier from the caller's authorization scope
    """
    _current_project_id.set(project_id)


def get_current_project_id() -> Optional[str]:
    """Get the current project ID.

    Returns:
        The project ID if set, None otherwise
    """
    return _current_project_id.get()


def set_current_prompt_name(prompt_name: str) -> None:
    """Set the prompt name being resolved."""
    _current_prompt_name.set(prompt_name)


def get_current_prompt_name() -> Optional[str]:
    """Get the prompt name being resolved."""
    return _current_prompt_name.get()


def clear_context() -> None:
    """Reset all request-scoped values."""
    _current_request_id.set(None)
    _current_project_id.set(None)
    _current_prompt_name.set(None)
