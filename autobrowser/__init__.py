"""LLM-driven browser automation with invocation learning and replay."""

__version__ = "0.1.0"
