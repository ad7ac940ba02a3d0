"""
Query embeddings for semantic retrieval.

Uses the OpenAI embeddings API. Vectors are L2-normalized so the
database side can use cosine distance directly.
"""

import threading
import time
from typing import List, Optional

import numpy as np

from config.settings import get_settings
from core.logging import get_logger
from search.exceptions import EmbeddingError

logger = get_logger(__name__)


class EmbeddingProvider:
    """text -> vector. Returns [] when no vector can be produced."""

    @property
    def enabled(self) -> bool:
        return True

    def embed(self, text: str) -> List[float]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings (text-embedding-3-small by default)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._client = None
        self._client_lock = threading.Lock()
        settings = get_settings()
        self._api_key = api_key or settings.openai_api_key
        self._model = model or settings.embedding_model
        self._timeout = timeout or settings.embedding_timeout_seconds
        self._enabled = settings.semantic_search_enabled and bool(self._api_key)

    @property
    def client(self):
        """Lazy-load OpenAI client."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    from openai import OpenAI
                    self._client = OpenAI(
                        api_key=self._api_key,
                        timeout=self._timeout,
                    )
        return self._client

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _request(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(model=self._model, input=text)
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        if not response.data:
            raise EmbeddingError("Embedding response contained no vectors")
        return response.data[0].embedding

    def embed(self, text: str) -> List[float]:
        """
        Embed `text`, L2-normalized.

        Any provider failure is logged and returns [] ("no semantic results").
        """
        if not self._enabled or not text:
            return []

        t_start = time.time()
        try:
            vector = np.asarray(self._request(text), dtype=np.float32)
        except EmbeddingError as e:
            logger.warning("Embedding failed", model=self._model, error=str(e))
            return []

        norm = np.linalg.norm(vector)
        if norm == 0:
            return []

        logger.debug(
            "Query embedded",
            model=self._model,
            dimensions=int(vector.shape[0]),
            latency_ms=int((time.time() - t_start) * 1000),
        )
        return (vector / norm).tolist()


# =============================================================================
# Singleton
# =============================================================================

_provider: Optional[EmbeddingProvider] = None
_provider_lock = threading.Lock()


def get_embedding_provider() -> EmbeddingProvider:
    """Get or create the embedding provider singleton (thread-safe)."""
    global _provider
    if _provider is None:
        with _provider_lock:
            if _provider is None:
                _provider = OpenAIEmbeddingProvider()
    return _provider
