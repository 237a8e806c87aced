"""Text embeddings via Gemini, plus cosine similarity."""

import logging
from typing import Optional, Sequence

import numpy as np
from google import genai
from google.genai import types

from app.config import settings

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = "text-embedding-004"
MAX_EMBED_CHARS = 8000


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude.

    Raises:
        ValueError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise ValueError("Embeddings must have the same dimensions")
    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)


class EmbeddingService:
    """Gemini embedding client, created on first use."""

    def __init__(self) -> None:
        self._client: Optional[genai.Client] = None

    @property
    def is_configured(self) -> bool:
        return bool(settings.gemini_api_key)

    @property
    def client(self) -> genai.Client:
        """Lazily initialize the Gemini client."""
        if self._client is None:
            if not settings.gemini_api_key:
                raise ValueError("GEMINI_API_KEY not configured")
            self._client = genai.Client(
                api_key=settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(settings.gemini_timeout_seconds * 1000)),
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self.client.aio.models.embed_content(
            model=EMBEDDING_MODEL,
            contents=[t[:MAX_EMBED_CHARS] for t in texts],
        )
        embeddings = response.embeddings or []
        if len(embeddings) != len(texts):
            raise ValueError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}"
            )
        return [list(e.values or []) for e in embeddings]

    async def similarity(self, a: str, b: str) -> float:
        vectors = await self.embed_many([a, b])
        return cosine_similarity(vectors[0], vectors[1])


# Singleton instance for convenience
embedding_service = EmbeddingService()
