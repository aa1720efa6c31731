"""Scenario-driven evaluation runs for conversational agents."""

__version__ = "0.1.0"
