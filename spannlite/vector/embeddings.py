"""
Embedding providers. The engine only needs ready() and embed(texts);
vectors come back as a (n, dim) float32 array.
"""

import asyncio
import hashlib
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from .types import EmbeddingBatch

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    async def ready(self) -> None:
        """Resolve once the model is loaded and able to embed."""
        return None

    @abstractmethod
    async def embed(self, texts: List[str]) -> EmbeddingBatch:
        """Generate one embedding vector per input text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic token-hashing embedding provider for tests and offline use.

    Every lowercase token is hashed into a bucket with a hash-derived sign, so
    texts that share words land close together under cosine similarity
    without requiring external model dependencies.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        """Generate deterministic embedding vector using hash function."""
        vector = np.zeros(self.dimension, dtype=np.float32)

        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode()).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        # Text without tokens still gets a stable, non-zero vector
        if not vector.any():
            digest = hashlib.md5(text.encode()).digest()
            vector[int.from_bytes(digest[:4], "big") % self.dimension] = 1.0

        return vector.tolist()

    async def embed(self, texts: List[str]) -> EmbeddingBatch:
        vectors = np.array([self.embed_text(text) for text in texts], dtype=np.float32)
        return EmbeddingBatch(vectors=vectors.reshape(len(texts), self.dimension), dim=self.dimension)

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    The model is loaded lazily on ready() or first use. Encoding runs in the
    default executor so it never blocks the event loop.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", batch_size: int = 32):
        self.model_name = model_name
        self.batch_size = batch_size
        self._model = None
        self._dimension: Optional[int] = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def ready(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self.model)

    def _encode(self, texts: List[str]) -> np.ndarray:
        return self.model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            convert_to_numpy=True,
        )

    async def embed(self, texts: List[str]) -> EmbeddingBatch:
        if not texts:
            return EmbeddingBatch(vectors=np.zeros((0, self.get_dimension()), dtype=np.float32), dim=self.get_dimension())

        loop = asyncio.get_running_loop()
        vectors = await loop.run_in_executor(None, self._encode, texts)
        vectors = np.asarray(vectors, dtype=np.float32)
        return EmbeddingBatch(vectors=vectors, dim=vectors.shape[1])

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension
