"""SQL models module."""

from .database import Base, create_session_factory, get_session_factory
from .prompts import PromptVersion

__all__ = [
    "Base",
    "PromptVersion",
    "create_session_factory",
    "get_session_factory",
]
