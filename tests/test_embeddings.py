"""Tests for archmemory.embedding (fallback, Claude feature extractor, provider)."""

from __future__ import annotations

import math
from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from archmemory.config import Config
from archmemory.embedding.anthropic_extractor import AnthropicFeatureExtractor, parse_features
from archmemory.embedding.fallback import fallback_embedding, fallback_features, rolling_hashes
from archmemory.embedding.provider import (
    EmbeddingProvider,
    build_embedding_provider,
    decision_text,
    fit_dimensions,
)
from archmemory.errors import EmbeddingError

from conftest import FailingExtractor, FixedExtractor


def _message(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


class TestFallback:
    def test_deterministic(self):
        assert fallback_embedding("use redis") == fallback_embedding("use redis")

    def test_shape(self):
        vector = fallback_embedding("hello world")
        assert len(vector) == 1536
        assert vector[20:] == [0.0] * (1536 - 20)

    def test_rolling_hashes_wrap_to_int32(self):
        h1, h2 = rolling_hashes("a" * 200)
        assert -(2**31) <= h1 < 2**31
        assert -(2**31) <= h2 < 2**31

    def test_known_values(self):
        # "ab": h1 = 97*31 + 98, h2 = 97*7 + 98
        h1, h2 = rolling_hashes("ab")
        assert (h1, h2) == (3105, 777)
        features = fallback_features("ab")
        assert features[0] == pytest.approx(0.105)
        assert features[1] == pytest.approx(0.777)
        assert features[2] == pytest.approx(0.002)
        assert features[3] == pytest.approx(0.01)
        assert features[4] == pytest.approx(0.1)
        # (3105 + 777 + 5) % 2000 = 1887
        assert features[5] == pytest.approx(0.887)

    def test_negative_hash_keeps_sign(self):
        with patch(
            "archmemory.embedding.fallback.rolling_hashes", return_value=(-1234, -5)
        ):
            features = fallback_features("anything")
        assert features[0] == pytest.approx(-0.234)
        assert features[1] == pytest.approx(-0.005)
        # seed = -1234 - 5 + 5, remainder keeps the dividend's sign
        assert features[5] == pytest.approx(-2.234)

    def test_descriptive_features(self):
        features = fallback_features("one two three\nfour")
        assert features[3] == pytest.approx(3 / 100)
        assert features[4] == pytest.approx(2 / 10)
        assert fallback_features("x" * 5000)[2] == 1

    def test_counts_utf16_units(self):
        # one astral character is two UTF-16 code units
        assert fallback_features("\U0001F600")[2] == pytest.approx(0.002)

    def test_empty_text(self):
        vector = fallback_embedding("")
        assert len(vector) == 1536
        assert all(math.isfinite(v) for v in vector)


class TestParseFeatures:
    def test_plain_array(self):
        values = [round(i / 20, 2) for i in range(20)]
        assert parse_features(_message(str(values))) == values

    def test_code_fence(self):
        body = "```json\n" + str([0.5] * 20) + "\n```"
        assert parse_features(_message(body)) == [0.5] * 20

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            '{"features": []}',
            str([0.1] * 19),
            str([0.1] * 21),
            '[0.1, "x"' + ", 0.1" * 18 + "]",
            "[true" + ", 0.1" * 19 + "]",
        ],
    )
    def test_malformed(self, text: str):
        with pytest.raises(EmbeddingError):
            parse_features(_message(text))

    def test_no_text_block(self):
        response = MagicMock()
        response.content = []
        with pytest.raises(EmbeddingError, match="no text block"):
            parse_features(response)


class TestAnthropicFeatureExtractor:
    def test_passes_timeout(self):
        client = MagicMock()
        client.messages.create.return_value = _message(str([0.0] * 20))
        extractor = AnthropicFeatureExtractor(client, model="m", timeout=3.0)
        assert extractor.embed("text") == [0.0] * 20
        assert client.messages.create.call_args.kwargs["timeout"] == 3.0

    def test_timeout_becomes_embedding_error(self):
        client = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.messages.create.side_effect = anthropic.APITimeoutError(request=request)
        extractor = AnthropicFeatureExtractor(client, model="m", timeout=3.0)
        with pytest.raises(EmbeddingError, match="timed out"):
            extractor.embed("text")

    def test_api_error_becomes_embedding_error(self):
        client = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.messages.create.side_effect = anthropic.APIConnectionError(request=request)
        extractor = AnthropicFeatureExtractor(client, model="m")
        with pytest.raises(EmbeddingError):
            extractor.embed("text")


class TestEmbeddingProvider:
    def test_fallback_only(self):
        provider = EmbeddingProvider()
        assert provider.embed("x") == fallback_embedding("x")
        assert provider.last_source == "fallback"

    def test_extractor_output_is_padded(self):
        provider = EmbeddingProvider(FixedExtractor([0.5] * 20))
        vector = provider.embed("x")
        assert len(vector) == 1536
        assert vector[:20] == [0.5] * 20
        assert provider.last_source == "extractor"

    def test_failure_uses_fallback(self):
        extractor = FailingExtractor()
        provider = EmbeddingProvider(extractor)
        assert provider.embed("some text") == fallback_embedding("some text")
        assert provider.last_source == "fallback"
        assert extractor.calls == 1

    def test_embed_decision_text_layout(self):
        extractor = FixedExtractor([0.1] * 20)
        EmbeddingProvider(extractor).embed_decision("Use Redis", "Fast cache", "tech_stack")
        assert extractor.calls == ["tech_stack: Use Redis\n\nReasoning: Fast cache"]
        assert decision_text("a", "b", "pattern") == "pattern: a\n\nReasoning: b"

    def test_fit_dimensions_truncates(self):
        assert fit_dimensions([1.0] * 2000) == [1.0] * 1536

    def test_similarity(self):
        assert EmbeddingProvider.similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert EmbeddingProvider.similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert EmbeddingProvider.similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
        assert EmbeddingProvider.similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_similarity_length_mismatch(self):
        with pytest.raises(ValueError):
            EmbeddingProvider.similarity([1.0], [1.0, 0.0])


class TestBuildEmbeddingProvider:
    def test_without_key(self):
        provider = build_embedding_provider(Config(anthropic_api_key=""))
        assert provider._extractor is None

    def test_with_key(self):
        provider = build_embedding_provider(
            Config(anthropic_api_key="sk-test", embedding_timeout=2.0)
        )
        assert isinstance(provider._extractor, AnthropicFeatureExtractor)
        assert provider._extractor._timeout == 2.0
