"""Shared utilities: tracing and caller-owned scheduling."""
