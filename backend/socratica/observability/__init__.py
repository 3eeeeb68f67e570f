"""Tracing and observability hooks."""
