"""Skribe: streaming document agent with a deterministic markdown patch engine."""

__version__ = "0.1.0"
