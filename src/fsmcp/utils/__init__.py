"""Shared utilities: logging setup and tracing helpers."""
