"""Shared infrastructure: configuration-independent errors, logging, pacing and audit."""
