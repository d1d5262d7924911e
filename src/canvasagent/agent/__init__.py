"""Streaming agent-action engine."""
