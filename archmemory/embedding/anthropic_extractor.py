"""Semantic feature extraction using Claude.

Anthropic has no embeddings endpoint, so the model is asked to score the text
on 20 semantic features in [-1, 1]. Anything other than a clean JSON array of
exactly 20 finite numbers is treated as a failure.
"""

from __future__ import annotations

import json
import logging
import math

import anthropic

from archmemory.errors import EmbeddingError

logger = logging.getLogger(__name__)

FEATURE_COUNT = 20
MAX_TOKENS = 1000

FEATURE_PROMPT = """\
Analyze this text and extract {count} key semantic features as numbers between -1 and 1. \
Return only a JSON array of {count} floating point numbers, nothing else.

Text: "{text}"
"""


class AnthropicFeatureExtractor:
    """Turns text into 20 features with a single bounded model call."""

    def __init__(
        self,
        client: anthropic.Anthropic,
        model: str,
        timeout: float = 15.0,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout

    def embed(self, text: str) -> list[float]:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=MAX_TOKENS,
                messages=[
                    {
                        "role": "user",
                        "content": FEATURE_PROMPT.format(count=FEATURE_COUNT, text=text),
                    }
                ],
                timeout=self._timeout,
            )
        except anthropic.APITimeoutError as e:
            raise EmbeddingError(
                f"Feature extraction timed out after {self._timeout}s"
            ) from e
        except anthropic.APIError as e:
            raise EmbeddingError(f"Feature extraction failed: {type(e).__name__}") from e

        return parse_features(response)


def parse_features(response: anthropic.types.Message) -> list[float]:
    """Validate a model response into exactly FEATURE_COUNT floats."""
    blocks = [block for block in response.content if getattr(block, "type", "") == "text"]
    if not blocks:
        raise EmbeddingError("Unexpected response format: no text block")
    text = blocks[0].text.strip()

    # Handle markdown code fences
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise EmbeddingError("Feature response is not valid JSON") from e

    if not isinstance(data, list):
        raise EmbeddingError("Feature response is not a JSON array")
    if len(data) != FEATURE_COUNT:
        raise EmbeddingError(
            f"Expected {FEATURE_COUNT} features, got {len(data)}"
        )

    features: list[float] = []
    for value in data:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError("Feature response contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Feature response contains a non-finite value")
        features.append(float(value))
    return features
