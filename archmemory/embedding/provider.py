"""Embedding generation with a deterministic offline fallback.

``EmbeddingProvider.embed`` never fails: if the configured feature extractor
times out, errors, or returns garbage, the text is embedded with
``fallback_embedding`` instead. Every vector has exactly EMBEDDING_DIMENSIONS
elements, which the storage layer relies on.
"""

from __future__ import annotations

import logging
import math
from typing import Protocol

import anthropic

from archmemory.config import Config
from archmemory.embedding.anthropic_extractor import AnthropicFeatureExtractor
from archmemory.embedding.fallback import fallback_embedding
from archmemory.errors import EmbeddingError
from archmemory.models import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)


class FeatureExtractor(Protocol):
    def embed(self, text: str) -> list[float]:
        """Return features for ``text`` or raise EmbeddingError."""
        ...


def fit_dimensions(values: list[float], dimensions: int = EMBEDDING_DIMENSIONS) -> list[float]:
    """Pad with zeros or truncate to exactly ``dimensions`` elements."""
    fitted = [float(v) for v in values[:dimensions]]
    return fitted + [0.0] * (dimensions - len(fitted))


def decision_text(decision: str, reasoning: str, decision_type: str) -> str:
    # The fallback hashes this string, so the layout is part of the storage format
    return f"{decision_type}: {decision}\n\nReasoning: {reasoning}"


class EmbeddingProvider:
    def __init__(
        self,
        extractor: FeatureExtractor | None = None,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ) -> None:
        self._extractor = extractor
        self.dimensions = dimensions
        self.last_source: str | None = None  # "extractor" | "fallback"

    def embed(self, text: str) -> list[float]:
        if self._extractor is not None:
            try:
                features = self._extractor.embed(text)
                self.last_source = "extractor"
                return fit_dimensions(features, self.dimensions)
            except EmbeddingError as e:
                logger.warning(
                    f"Embedding service unavailable, using fallback "
                    f"(text length {len(text)}): {e}"
                )

        self.last_source = "fallback"
        return fallback_embedding(text, self.dimensions)

    def embed_decision(self, decision: str, reasoning: str, decision_type: str) -> list[float]:
        return self.embed(decision_text(decision, reasoning, decision_type))

    def embed_query(self, query: str) -> list[float]:
        return self.embed(query)

    @staticmethod
    def similarity(a: list[float], b: list[float]) -> float:
        """Cosine similarity. Vectors of different lengths are an error."""
        if len(a) != len(b):
            raise ValueError(f"Embeddings must have the same length ({len(a)} != {len(b)})")

        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return dot / (norm_a * norm_b)


def build_embedding_provider(config: Config) -> EmbeddingProvider:
    """Use Claude when an API key is configured, otherwise fallback only."""
    if not config.has_embedding_service:
        logger.info("ANTHROPIC_API_KEY not set, using offline embeddings only")
        return EmbeddingProvider()

    client = anthropic.Anthropic(
        api_key=config.anthropic_api_key,
        timeout=config.embedding_timeout,
        max_retries=0,
    )
    extractor = AnthropicFeatureExtractor(
        client, model=config.embedding_model, timeout=config.embedding_timeout
    )
    return EmbeddingProvider(extractor)
