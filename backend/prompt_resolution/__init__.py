"""Prompt resolution engine: versioned, labelled prompts with nested references."""

__version__ = "0.1.0"
