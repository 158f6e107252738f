"""Parallel build orchestrator for dependency graphs of project builds."""

__version__ = "0.4.0"
