from __future__ import annotations

from collections.abc import Sequence
import math
from typing import Protocol

from loguru import logger

from docchat.services.rag.embedding_client import EmbeddingClient, EmbeddingClientError
from docchat.services.rag.errors import EmbeddingUnavailableError
from docchat.services.rag.types import ChunkRecord, IndexEntry, QueryHit


class Retriever(Protocol):
    """Read-only similarity search over embedded fragments."""

    def query(self, query_vector: Sequence[float], k: int) -> list[QueryHit]: ...

    def __len__(self) -> int: ...


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def _cosine(a: Sequence[float], b: Sequence[float], norm_b: float) -> float:
    norm_a = _norm(a)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


class VectorIndex:
    """Brute-force cosine index held entirely in memory.

    Entries are fixed at construction; a changed corpus means building a new
    index and swapping it in.
    """

    def __init__(self, entries: Sequence[IndexEntry]) -> None:
        dimensions = {len(entry.vector) for entry in entries}
        if len(dimensions) > 1:
            raise ValueError(f"Inconsistent embedding dimensions: {sorted(dimensions)}")
        if 0 in dimensions:
            raise ValueError("Embedding vectors must not be empty")

        self._entries: tuple[IndexEntry, ...] = tuple(entries)
        self._norms: tuple[float, ...] = tuple(_norm(entry.vector) for entry in self._entries)
        self._dimension = dimensions.pop() if dimensions else 0

    @classmethod
    def build(
        cls,
        chunks: Sequence[ChunkRecord],
        embedding_client: EmbeddingClient,
        *,
        batch_size: int = 512,
    ) -> VectorIndex:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")

        vectors: list[list[float]] = []
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]
            try:
                embedded = embedding_client.embed_texts([chunk.text for chunk in batch])
            except EmbeddingClientError as exc:
                raise EmbeddingUnavailableError(
                    f"Embedding failed for fragments {start}-{start + len(batch) - 1}: {exc}"
                ) from exc
            if len(embedded) != len(batch):
                raise EmbeddingUnavailableError(
                    f"Expected {len(batch)} embeddings, got {len(embedded)}"
                )
            vectors.extend(embedded)

        index = cls(
            [
                IndexEntry(vector=tuple(float(value) for value in vector), chunk=chunk)
                for chunk, vector in zip(chunks, vectors)
            ]
        )
        logger.info("Built vector index with {} entries (dim={})", len(index), index.dimension)
        return index

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def entries(self) -> tuple[IndexEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def query(self, query_vector: Sequence[float], k: int) -> list[QueryHit]:
        if k < 1:
            raise ValueError("k must be >= 1")
        if not self._entries:
            return []
        if len(query_vector) != self._dimension:
            raise ValueError(
                f"Query vector has dimension {len(query_vector)}, index expects {self._dimension}"
            )

        scores = [
            _cosine(query_vector, entry.vector, norm)
            for entry, norm in zip(self._entries, self._norms)
        ]
        # sorted() is stable, so earlier entries win ties.
        ranked = sorted(range(len(scores)), key=lambda position: -scores[position])
        return [
            QueryHit(entry=self._entries[position], score=scores[position])
            for position in ranked[:k]
        ]
