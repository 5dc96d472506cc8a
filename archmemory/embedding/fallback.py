"""Deterministic offline embedding.

Used whenever the feature extractor is unavailable. The output is a pure
function of the input text: two rolling 32-bit hashes over the UTF-16 code
units seed five descriptive features and fifteen hash-derived ones. Stored
vectors stay comparable across installs, so the arithmetic below (signed
32-bit wrap-around, sign-preserving remainders) must not change.
"""

from __future__ import annotations

import math

from archmemory.models import EMBEDDING_DIMENSIONS

FEATURE_COUNT = 20


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str) -> list[int]:
    data = text.encode("utf-16-le", errors="surrogatepass")
    return [int.from_bytes(data[i : i + 2], "little") for i in range(0, len(data), 2)]


def rolling_hashes(text: str) -> tuple[int, int]:
    hash1 = 0
    hash2 = 0
    for unit in _utf16_units(text):
        hash1 = _int32((hash1 << 5) - hash1 + unit)
        hash2 = _int32((hash2 << 3) - hash2 + unit)
    return hash1, hash2


def fallback_features(text: str) -> list[float]:
    """The 20 meaningful features of the fallback embedding."""
    hash1, hash2 = rolling_hashes(text)
    length = len(_utf16_units(text))

    features = [
        math.fmod(hash1, 1000) / 1000,
        math.fmod(hash2, 1000) / 1000,
        min(length / 1000, 1),
        len(text.split(" ")) / 100,
        len(text.split("\n")) / 10,
    ]
    for i in range(5, FEATURE_COUNT):
        seed = hash1 + hash2 + i
        features.append((math.fmod(seed, 2000) - 1000) / 1000)
    return features


def fallback_embedding(text: str, dimensions: int = EMBEDDING_DIMENSIONS) -> list[float]:
    features = fallback_features(text)[:dimensions]
    return features + [0.0] * (dimensions - len(features))
