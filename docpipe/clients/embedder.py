"""
Embedding backend for the pipeline.

Wraps a sentence-transformers model behind the EmbeddingClient contract. The
model is loaded once per process and encoding runs in a worker thread.
"""

import asyncio

import numpy as np
from sentence_transformers import SentenceTransformer

from docpipe.core.config import Settings

# Global model instance for caching
_model = None
_settings = None


def load_model() -> SentenceTransformer:
    """
    Load the embedding model configured by ``EMBEDDING_MODEL``.

    The model is cached globally; call this at worker startup to avoid paying
    the load on the first document.
    """
    global _model, _settings

    if _model is None:
        if _settings is None:
            _settings = Settings()
        _model = SentenceTransformer(_settings.EMBEDDING_MODEL)

    return _model


def embed_texts(texts: list[str], batch_size: int | None = None) -> np.ndarray:
    """
    Embed a list of texts with optional batching.

    Args:
        texts: List of text strings to embed
        batch_size: Optional batch size for processing

    Returns:
        NumPy array of embeddings with shape (len(texts), embedding_dim)

    Raises:
        ValueError: If the model produced NaN values
    """
    if not texts:
        return np.array([])

    model = load_model()

    if batch_size and len(texts) > batch_size:
        batches = [
            model.encode(texts[i : i + batch_size], convert_to_numpy=True) for i in range(0, len(texts), batch_size)
        ]
        result = np.vstack(batches)
    else:
        result = model.encode(texts, convert_to_numpy=True)

    if len(result.shape) == 1:
        result = result.reshape(1, -1)

    if np.isnan(result).any():
        raise ValueError("Embeddings contain NaN values")

    return result


class SentenceTransformerEmbedder:
    """EmbeddingClient backed by the module-level sentence-transformers model."""

    def __init__(self, batch_size: int | None = None):
        self.batch_size = batch_size or Settings().EMBEDDING_BATCH_SIZE

    async def embed(self, texts: list[str]) -> list[list[float]]:
        vectors = await asyncio.to_thread(embed_texts, texts, self.batch_size)
        if len(texts) and vectors.shape[0] != len(texts):
            raise RuntimeError("Mismatch between number of texts and generated embeddings.")
        return vectors.tolist()
