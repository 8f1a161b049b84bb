"""Batching components for the embedding service.

Key pieces
- ``device_selector``: maps ``cpu``/``cuda``/``metal``/``auto`` onto an
  available torch device, falling back to CPU when an accelerator is missing.
"""
