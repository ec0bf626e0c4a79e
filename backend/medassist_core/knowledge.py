from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

import numpy as np

from .embeddings import SPACE_LOCAL, EmbeddingProvider, EmbeddingUnavailable, cosine_similarity
from .models import KnowledgeEntry, RetrievalResult

logger = logging.getLogger(__name__)


class KnowledgeStoreFrozen(Exception):
    pass


@dataclass(frozen=True)
class _IndexedEntry:
    entry: KnowledgeEntry
    vector: np.ndarray


class KnowledgeStore:
    """Process-wide in-memory vector store, written at startup and read-only after ``freeze``.

    Retrieval is a brute-force cosine scan. The store is small and static;
    an approximate nearest-neighbour index can replace ``_scores`` without
    changing ``query``.
    """

    def __init__(self, embedder: EmbeddingProvider, *, relevance_floor: float = 0.6) -> None:
        self._embedder = embedder
        self._entries: dict[str, _IndexedEntry] = {}
        self._frozen = False
        self.relevance_floor = relevance_floor
        self.space = embedder.preferred_space

    @classmethod
    def build(
        cls,
        entries: Iterable[KnowledgeEntry],
        embedder: EmbeddingProvider,
        *,
        relevance_floor: float = 0.6,
    ) -> "KnowledgeStore":
        entries = list(entries)
        store = cls(embedder, relevance_floor=relevance_floor)
        try:
            for entry in entries:
                store.index(entry)
        except EmbeddingUnavailable as exc:
            logger.warning("hosted embeddings failed during knowledge build, rebuilding locally: %s", exc)
            store = cls(embedder, relevance_floor=relevance_floor)
            store.space = SPACE_LOCAL
            for entry in entries:
                store.index(entry)
        store.freeze()
        logger.info("medical knowledge base initialized with %d entries (%s embeddings)", len(store), store.space)
        return store

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def index(self, entry: KnowledgeEntry) -> None:
        if self._frozen:
            raise KnowledgeStoreFrozen("Knowledge store is read-only after initialization.")
        vector = np.asarray(self._embedder.embed_in(self.space, entry.embedding_text()), dtype=np.float64)
        self._entries[entry.entry_id] = _IndexedEntry(entry=entry, vector=vector)

    def _scores(self, query_vector: np.ndarray) -> list[tuple[float, KnowledgeEntry]]:
        return [
            (cosine_similarity(query_vector, indexed.vector), indexed.entry) for indexed in self._entries.values()
        ]

    def query(self, text: str, limit: int = 3) -> list[RetrievalResult]:
        if not self._entries or limit <= 0:
            return []
        try:
            query_vector = np.asarray(self._embedder.embed_in(self.space, text), dtype=np.float64)
        except EmbeddingUnavailable as exc:
            logger.warning("knowledge query skipped, embedding unavailable: %s", exc)
            return []

        ranked = sorted(self._scores(query_vector), key=lambda item: item[0], reverse=True)[:limit]
        return [
            RetrievalResult(
                topic=entry.topic,
                content=entry.content,
                symptoms=list(entry.symptoms),
                severity=entry.severity,
                similarity=similarity,
            )
            for similarity, entry in ranked
            if similarity > self.relevance_floor
        ]

    def condition_advice(self, condition: str) -> dict[str, Any] | None:
        needle = (condition or "").strip().lower()
        if not needle:
            return None
        for indexed in self._entries.values():
            entry = indexed.entry
            if needle in entry.topic.lower():
                return {
                    "topic": entry.topic,
                    "content": entry.content,
                    "symptoms": list(entry.symptoms),
                    "severity": entry.severity,
                    "treatment": entry.treatment,
                    "emergency_signs": list(entry.emergency_signs),
                }
        return None
