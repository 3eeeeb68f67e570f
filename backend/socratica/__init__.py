"""Socratica: Socratic tutoring backend."""
