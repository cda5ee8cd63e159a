import math

import pytest

from docchat.services.rag.embedding_client import EmbeddingClientError
from docchat.services.rag.errors import EmbeddingUnavailableError
from docchat.services.rag.index import VectorIndex
from docchat.services.rag.types import ChunkRecord


class TableEmbeddingClient:
    def __init__(self, table: dict[str, list[float]]) -> None:
        self._table = table
        self.batches: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        return [self._table[text] for text in texts]


class BrokenEmbeddingClient:
    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        raise EmbeddingClientError("backend down")


def _chunk(text: str) -> ChunkRecord:
    return ChunkRecord(
        chunk_id=f"{text}-0000",
        doc_id=text,
        source_path=f"/srv/data/{text}.txt",
        text=text,
        metadata={"source": f"/srv/data/{text}.txt"},
    )


TABLE = {
    "A": [1.0, 0.0, 0.0],
    "B": [0.0, 1.0, 0.0],
    "C": [0.7, 0.7, 0.0],
}


def _build(table: dict[str, list[float]] = TABLE) -> VectorIndex:
    return VectorIndex.build([_chunk(text) for text in table], TableEmbeddingClient(table))


def test_query_with_stored_vector_returns_that_entry_first() -> None:
    index = _build()

    hits = index.query([1.0, 0.0, 0.0], k=3)

    assert hits[0].chunk.text == "A"
    assert math.isclose(hits[0].score, 1.0)
    assert [hit.chunk.text for hit in hits] == ["A", "C", "B"]


def test_query_returns_at_most_k_in_non_increasing_order() -> None:
    index = _build()

    for k in (1, 2, 3, 10):
        hits = index.query([0.2, 0.9, 0.1], k=k)
        assert len(hits) == min(k, 3)
        scores = [hit.score for hit in hits]
        assert scores == sorted(scores, reverse=True)


def test_ties_keep_insertion_order() -> None:
    table = {"first": [1.0, 1.0], "second": [1.0, 1.0], "third": [0.0, 1.0]}
    index = _build(table)

    hits = index.query([3.0, 3.0], k=2)

    assert [hit.chunk.text for hit in hits] == ["first", "second"]


def test_zero_vectors_score_zero() -> None:
    index = _build({"A": [1.0, 0.0], "Z": [0.0, 0.0]})

    hits = index.query([0.0, 0.0], k=2)

    assert [hit.score for hit in hits] == [0.0, 0.0]


def test_empty_index_returns_no_hits() -> None:
    index = VectorIndex.build([], TableEmbeddingClient({}))

    assert len(index) == 0
    assert index.query([1.0, 2.0], k=3) == []


def test_query_rejects_invalid_k_and_dimension() -> None:
    index = _build()

    with pytest.raises(ValueError, match="k must be"):
        index.query([1.0, 0.0, 0.0], k=0)
    with pytest.raises(ValueError, match="dimension"):
        index.query([1.0, 0.0], k=1)


def test_build_embeds_in_batches_once_per_fragment() -> None:
    table = {f"t{number}": [float(number), 1.0] for number in range(5)}
    client = TableEmbeddingClient(table)

    index = VectorIndex.build([_chunk(text) for text in table], client, batch_size=2)

    assert len(index) == 5
    assert client.batches == [["t0", "t1"], ["t2", "t3"], ["t4"]]
    assert [entry.chunk.text for entry in index.entries] == list(table)


def test_build_fails_when_embedding_backend_fails() -> None:
    with pytest.raises(EmbeddingUnavailableError, match="backend down"):
        VectorIndex.build([_chunk("A")], BrokenEmbeddingClient())


def test_build_rejects_inconsistent_dimensions() -> None:
    with pytest.raises(ValueError, match="Inconsistent"):
        _build({"A": [1.0, 0.0], "B": [1.0, 0.0, 0.0]})
