from __future__ import annotations

from pathlib import Path

from loguru import logger

from docchat.services.rag.chunker import chunk_documents
from docchat.services.rag.embedding_client import EmbeddingClient
from docchat.services.rag.index import VectorIndex
from docchat.services.rag.loader import UnknownHandling, load_documents
from docchat.services.rag.types import IngestionSummary


def ingest_documents(
    *,
    source_dir: Path,
    chunk_size: int,
    chunk_overlap: int,
    embedding_client: EmbeddingClient,
    unknown_handling: UnknownHandling = UnknownHandling.IGNORE,
    batch_size: int = 512,
) -> tuple[VectorIndex, IngestionSummary]:
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    logger.info("Loading documents from {}", source_dir)
    documents = load_documents(source_dir, unknown_handling=unknown_handling)

    chunks = chunk_documents(
        documents,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
    )
    logger.info(
        "Split {} documents into {} fragments (chunk_size={}, chunk_overlap={})",
        len(documents),
        len(chunks),
        chunk_size,
        chunk_overlap,
    )

    index = VectorIndex.build(chunks, embedding_client, batch_size=batch_size)
    summary = IngestionSummary(
        document_count=len(documents),
        chunk_count=len(chunks),
        corpus_dir=str(source_dir),
    )
    return index, summary
