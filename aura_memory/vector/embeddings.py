"""
Embedding providers and the cache-then-provider embedding service.
A provider failure always surfaces as EmbeddingUnavailable; no fallback vector is ever synthesized.
"""

from abc import ABC, abstractmethod
import hashlib
import re
import threading
from typing import List, Optional

import numpy as np

from .cache import EmbeddingCache
from .errors import EmbeddingUnavailable, raise_if_cancelled
from ..util.logging import logger

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Generate one embedding vector per input text."""
        return [self.embed_text(text) for text in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic feature-hashing embedding provider for tests and offline use.

    Each lower-cased alphanumeric token is hashed to one signed bucket, so
    texts sharing words share vector components. This is a lexical signal,
    not a semantic model: use it where reproducibility matters more than
    meaning.
    """

    def __init__(self, dimension: int = 384):
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1: {dimension}")
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        """Generate deterministic embedding vector using hash function."""
        vector = [0.0] * self.dimension
        for token in _TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign
        return vector

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Uses the all-mpnet-base-v2 model by default.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None
        self._lock = threading.Lock()

    @property
    def model(self):
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        embeddings = self.model.encode(texts, convert_to_tensor=False)
        return [row.tolist() for row in embeddings]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = int(self.model.get_sentence_embedding_dimension())
        return self._dimension


class OllamaEmbedding(IEmbeddingProvider):
    """Embedding provider backed by a local Ollama instance."""

    def __init__(self, model_name: str = "nomic-embed-text"):
        self.model_name = model_name
        self._dimension = None

    def embed_text(self, text: str) -> List[float]:
        import ollama

        response = ollama.embeddings(model=self.model_name, prompt=text)
        embedding = response["embedding"]
        if not embedding:
            raise ValueError(f"Ollama model '{self.model_name}' returned an empty embedding")
        return list(embedding)

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed_text("dimension probe"))
        return self._dimension


class EmbeddingsService:
    """
    Resolves text to vectors through the cache first, then the provider.

    Every provider error (including a missing provider) is raised as
    EmbeddingUnavailable. Results are float32 numpy arrays.
    """

    def __init__(self, provider: Optional[IEmbeddingProvider], cache: Optional[EmbeddingCache] = None):
        """
        Initialize the embeddings service.

        Args:
            provider: Embedding provider, may be None (every lookup then fails)
            cache: Embedding cache, defaults to a 30 minute / 10000 entry cache
        """
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()

    @property
    def available(self) -> bool:
        return self.provider is not None

    def embed(self, text: str, cancel_event: Optional[threading.Event] = None) -> np.ndarray:
        """
        Embed a single text.

        Raises:
            EmbeddingUnavailable: provider missing, failed, or returned an empty vector
            OperationCancelled: cancel_event was set before the provider call
        """
        cached = self.cache.get(text)
        if cached is not None:
            return cached

        if self.provider is None:
            raise EmbeddingUnavailable("No embedding provider configured")

        raise_if_cancelled(cancel_event, "embedding")

        try:
            raw = self.provider.embed_text(text)
        except Exception as e:
            raise self._provider_failed(e)

        vector = self._to_array(raw)
        self.cache.put(text, vector)
        return vector

    def embed_texts(self, texts: List[str], cancel_event: Optional[threading.Event] = None) -> List[np.ndarray]:
        """
        Embed several texts in order.

        Cache hits are resolved first; the remaining distinct texts go to the
        provider in a single batch call. Nothing is cached unless the whole
        batch succeeds.

        Raises:
            EmbeddingUnavailable: provider missing, failed, or returned the wrong number of vectors
            OperationCancelled: cancel_event was set before the provider call
        """
        raise_if_cancelled(cancel_event, "embedding")
        vectors = [self.cache.get(text) for text in texts]
        misses = list(dict.fromkeys(text for text, vector in zip(texts, vectors) if vector is None))
        if not misses:
            return vectors

        if self.provider is None:
            raise EmbeddingUnavailable("No embedding provider configured")

        try:
            raw_vectors = list(self.provider.embed_texts(misses))
        except Exception as e:
            raise self._provider_failed(e)

        if len(raw_vectors) != len(misses):
            raise EmbeddingUnavailable(
                f"Embedding provider returned {len(raw_vectors)} vectors for {len(misses)} texts",
                details={"provider": type(self.provider).__name__},
            )

        resolved = {text: self._to_array(raw) for text, raw in zip(misses, raw_vectors)}
        for text, vector in resolved.items():
            self.cache.put(text, vector)
        logger.debug(f"Embedded {len(misses)} texts in one batch ({len(texts) - len(misses)} from cache)")
        return [vector if vector is not None else resolved[text] for text, vector in zip(texts, vectors)]

    def _provider_failed(self, error: Exception) -> EmbeddingUnavailable:
        provider_name = type(self.provider).__name__
        logger.log_vector_operation("embed", "-", {"provider": provider_name, "error": str(error)}, status="failed")
        return EmbeddingUnavailable(
            f"Embedding provider failed: {error}",
            details={"provider": provider_name},
            cause=error,
        )

    def _to_array(self, raw) -> np.ndarray:
        try:
            vector = np.asarray(raw, dtype=np.float32).reshape(-1)
        except (TypeError, ValueError) as e:
            raise EmbeddingUnavailable(f"Embedding provider returned a non-numeric vector: {e}", cause=e)
        if vector.size == 0:
            raise EmbeddingUnavailable("Embedding provider returned an empty vector")
        return vector
