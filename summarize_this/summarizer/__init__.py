"""Summarization strategies, their registry and request validation."""
