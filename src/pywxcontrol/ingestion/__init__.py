"""Ingestion layer.

Turns raw provider responses into validated snapshots.
"""

__all__: list[str] = []
