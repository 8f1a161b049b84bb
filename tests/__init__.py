"""Tests for the embedding service.

Models and tokenizers are tiny in-memory BERT encoders (see
``model_fixtures``), so the suite runs offline on CPU.
"""
