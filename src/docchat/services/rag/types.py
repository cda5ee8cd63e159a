from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum


class DocumentFormat(str, Enum):
    TEXT = "text"
    JSON = "json"
    CSV = "csv"
    NOTION = "notion"
    PDF = "pdf"


@dataclass(frozen=True)
class SourceDocument:
    doc_id: str
    source_path: str
    text: str
    format: DocumentFormat
    metadata: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ChunkRecord:
    chunk_id: str
    doc_id: str
    source_path: str
    text: str
    metadata: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class IndexEntry:
    vector: tuple[float, ...]
    chunk: ChunkRecord


@dataclass(frozen=True)
class QueryHit:
    entry: IndexEntry
    score: float

    @property
    def chunk(self) -> ChunkRecord:
        return self.entry.chunk


@dataclass(frozen=True)
class Answer:
    text: str
    source_documents: tuple[ChunkRecord, ...]
    model: str = ""
    used_fallback: bool = False


@dataclass(frozen=True)
class IngestionSummary:
    document_count: int
    chunk_count: int
    corpus_dir: str
