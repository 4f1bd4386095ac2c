"""Markdown for AI agents, served from the edge."""

__version__ = "0.1.0"
