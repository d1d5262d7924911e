"""Typed domain models shared across the agent engine."""
