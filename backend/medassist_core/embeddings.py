from __future__ import annotations

import hashlib
import logging
from typing import Sequence

import httpx
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION = 1536
SPACE_LOCAL = "local"
SPACE_HOSTED = "hosted"


class EmbeddingUnavailable(Exception):
    pass


def _bucket(token: str, dimension: int) -> int:
    digest = hashlib.sha1(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % dimension


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 for mismatched or zero vectors."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    value = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, value))


class HashingEmbedder:
    """Deterministic bag-of-words vector.

    Each whitespace token lands in a SHA-1 derived bucket and adds
    ``1 / (position + 1)``; the result is L2-normalised. Empty text gives the
    zero vector.
    """

    space = SPACE_LOCAL

    def __init__(self, dimension: int = DEFAULT_DIMENSION) -> None:
        self.dimension = dimension

    def embed(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension, dtype=np.float64)
        for position, token in enumerate((text or "").lower().split()):
            vector[_bucket(token, self.dimension)] += 1.0 / (position + 1)
        magnitude = float(np.linalg.norm(vector))
        if magnitude > 0.0:
            vector /= magnitude
        return vector.tolist()


class HostedEmbedder:
    space = SPACE_HOSTED

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        dimension: int = DEFAULT_DIMENSION,
        timeout_seconds: float = 15.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimension = dimension
        self.timeout_seconds = timeout_seconds

    def embed(self, text: str) -> list[float]:
        payload = {"model": self.model, "input": text or " ", "dimensions": self.dimension}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=httpx.Timeout(self.timeout_seconds, connect=8.0)) as client:
                response = client.post(f"{self.base_url}/embeddings", headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailable(f"Embedding provider unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise EmbeddingUnavailable(f"Embedding provider returned HTTP {response.status_code}")
        try:
            data = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingUnavailable("Embedding provider returned an unexpected payload.") from exc
        if not isinstance(data, list) or len(data) != self.dimension:
            raise EmbeddingUnavailable("Embedding provider returned a vector of the wrong size.")
        return [float(value) for value in data]


class EmbeddingProvider:
    """Hosted embeddings when configured, otherwise the local hashing fallback.

    Both paths produce vectors of the same dimension. ``embed_in`` pins a
    specific space so a store built in one space is always queried in it.
    """

    def __init__(self, *, primary: HostedEmbedder | None = None, dimension: int = DEFAULT_DIMENSION) -> None:
        if primary is not None and primary.dimension != dimension:
            raise ValueError("Hosted and local embedders must share one dimension.")
        self.primary = primary
        self.fallback = HashingEmbedder(dimension)
        self.dimension = dimension

    @property
    def preferred_space(self) -> str:
        return SPACE_HOSTED if self.primary is not None else SPACE_LOCAL

    def embed(self, text: str) -> list[float]:
        if self.primary is not None:
            try:
                return self.primary.embed(text)
            except EmbeddingUnavailable as exc:
                logger.warning("hosted embedding unavailable, using local fallback: %s", exc)
        return self.fallback.embed(text)

    def embed_in(self, space: str, text: str) -> list[float]:
        if space == SPACE_HOSTED:
            if self.primary is None:
                raise EmbeddingUnavailable("No hosted embedding provider configured.")
            return self.primary.embed(text)
        return self.fallback.embed(text)
