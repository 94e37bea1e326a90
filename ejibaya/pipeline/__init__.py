"""Subscriber-record ingestion pipeline.

Modular importers per source type, a canonical-record builder, and a
batched loader that pushes records to the remote store.
"""
