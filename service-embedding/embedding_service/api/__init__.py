"""API subpackage for the embedding service.

Contains the FastAPI router that exposes endpoints for:
- Single and batch encoding (``/encode``, ``/encode/batch``)
- Model information and switching (``/model/info``, ``/model/switch``)
"""
