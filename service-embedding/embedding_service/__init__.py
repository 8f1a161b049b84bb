"""Embedding service package.

Layout:
- ``api``: FastAPI route handlers.
- ``batching``: device selection for inference.
- ``encoders``: tokenizer adapter, model loader, model registry, inference
  engine, and the ``EmbeddingService`` facade.
- ``runtime``: service-local metrics and retry helpers.
- ``models`` / ``errors``: data records and the error taxonomy.

Import convenience:
- from embedding_service.encoders.service import EmbeddingService
"""
