"""Runtime helpers for the embedding service.

- ``metrics``: service-local facade over the shared Prometheus collector.
- ``retry``: caller-side retry with exponential backoff.
"""
