"""Organize GitHub starred repositories into GitHub Lists with an LLM."""

__version__ = "0.1.0"
