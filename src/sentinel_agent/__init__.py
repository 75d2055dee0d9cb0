"""Orchestration core for a language-model driven conversational agent."""

__version__ = "0.1.0"
