"""Embedding encoders.

Holds the model lifecycle (``loader``, ``registry``), the ``tokenizer``
adapter, the inference ``engine``, and the ``EmbeddingService`` facade. Keep
heavy ML imports within implementation modules to minimize import overhead
for unrelated paths.
"""
