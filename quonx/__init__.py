"""Quonx: multi-agent orchestration service for a coding assistant."""

__version__ = "1.0.0"
