from __future__ import annotations

from enum import Enum
from pathlib import Path
import threading

from loguru import logger

from docchat.config import Settings
from docchat.llm import LLMClient, OpenAIChatClient
from docchat.services.rag.embedding_client import EmbeddingClient, OpenAIEmbeddingClient
from docchat.services.rag.errors import (
    IndexNotReadyError,
    InitializationError,
    RagError,
    RebuildInProgressError,
)
from docchat.services.rag.index import VectorIndex
from docchat.services.rag.ingest import ingest_documents
from docchat.services.rag.loader import UnknownHandling
from docchat.services.rag.qa import RetrievalQA
from docchat.services.rag.types import Answer, IngestionSummary


class IndexStatus(str, Enum):
    NOT_READY = "not_ready"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


class RagService:
    """Owns the corpus index for the lifetime of the process.

    ``initialize`` must succeed before ``ask`` is accepted. ``rebuild``
    prepares a complete replacement index and swaps it in only once it is
    finished, so questions already in flight keep the index they started
    with.
    """

    def __init__(
        self,
        *,
        corpus_dir: Path,
        chunk_size: int,
        chunk_overlap: int,
        embedding_client: EmbeddingClient,
        llm_client: LLMClient,
        top_k: int = 4,
        unknown_handling: UnknownHandling = UnknownHandling.IGNORE,
        embed_batch_size: int = 512,
    ) -> None:
        self._corpus_dir = corpus_dir
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._embedding_client = embedding_client
        self._llm_client = llm_client
        self._top_k = top_k
        self._unknown_handling = unknown_handling
        self._embed_batch_size = embed_batch_size

        self._lock = threading.Lock()
        self._index: VectorIndex | None = None
        self._summary: IngestionSummary | None = None
        self._status = IndexStatus.NOT_READY
        self._last_error: str | None = None
        self._rebuilding = False

    @classmethod
    def from_settings(cls, settings: Settings) -> RagService:
        return cls(
            corpus_dir=Path(settings.rag_corpus_dir),
            chunk_size=settings.rag_chunk_size,
            chunk_overlap=settings.rag_chunk_overlap,
            top_k=settings.rag_top_k,
            unknown_handling=UnknownHandling(settings.rag_unknown_extensions),
            embed_batch_size=settings.embed_batch_size,
            embedding_client=OpenAIEmbeddingClient(
                base_url=settings.openai_base_url,
                model=settings.embed_model,
                api_key=settings.openai_api_key,
                timeout_seconds=settings.embed_timeout_seconds,
            ),
            llm_client=OpenAIChatClient(
                base_url=settings.openai_base_url,
                default_model=settings.llm_model,
                fallback_model=settings.llm_fallback_model,
                api_key=settings.openai_api_key,
                timeout_seconds=settings.llm_timeout_seconds,
            ),
        )

    @property
    def status(self) -> IndexStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is IndexStatus.READY

    @property
    def rebuild_in_progress(self) -> bool:
        return self._rebuilding

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def corpus_dir(self) -> Path:
        return self._corpus_dir

    @property
    def fragment_count(self) -> int:
        index = self._index
        return len(index) if index is not None else 0

    @property
    def summary(self) -> IngestionSummary | None:
        return self._summary

    def _build(self) -> tuple[VectorIndex, IngestionSummary]:
        return ingest_documents(
            source_dir=self._corpus_dir,
            chunk_size=self._chunk_size,
            chunk_overlap=self._chunk_overlap,
            embedding_client=self._embedding_client,
            unknown_handling=self._unknown_handling,
            batch_size=self._embed_batch_size,
        )

    def _mark_failed(self, exc: BaseException) -> None:
        with self._lock:
            self._status = IndexStatus.FAILED
            self._last_error = str(exc)

    def initialize(
        self,
        corpus_root: Path | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> VectorIndex:
        with self._lock:
            if corpus_root is not None:
                self._corpus_dir = corpus_root
            if chunk_size is not None:
                self._chunk_size = chunk_size
            if chunk_overlap is not None:
                self._chunk_overlap = chunk_overlap
            self._status = IndexStatus.BUILDING
            self._index = None

        try:
            index, summary = self._build()
        except (RagError, ValueError, OSError) as exc:
            self._mark_failed(exc)
            logger.error("Index initialization failed: {}", exc)
            raise InitializationError(f"Failed to initialize index: {exc}") from exc
        except Exception as exc:
            self._mark_failed(exc)
            logger.exception("Unexpected error while building index")
            raise InitializationError(f"Failed to initialize index: {exc!r}") from exc

        with self._lock:
            self._index = index
            self._summary = summary
            self._status = IndexStatus.READY
            self._last_error = None

        if not len(index):
            logger.warning("Index is empty; questions will be answered without context")
        logger.info(
            "Index ready: documents={} fragments={}", summary.document_count, len(index)
        )
        return index

    def rebuild(self) -> VectorIndex:
        with self._lock:
            if self._status is not IndexStatus.READY:
                raise IndexNotReadyError("Index must be initialized before it can be rebuilt")
            if self._rebuilding:
                raise RebuildInProgressError("Index rebuild already in progress")
            self._rebuilding = True

        try:
            index, summary = self._build()
        except (RagError, ValueError, OSError) as exc:
            with self._lock:
                self._last_error = str(exc)
            logger.error("Index rebuild failed, keeping current index: {}", exc)
            raise
        finally:
            with self._lock:
                self._rebuilding = False

        with self._lock:
            self._index = index
            self._summary = summary
            self._last_error = None
        logger.info("Swapped in rebuilt index with {} fragments", len(index))
        return index

    def _qa(self) -> RetrievalQA:
        with self._lock:
            index = self._index
            status = self._status

        if status is not IndexStatus.READY or index is None:
            raise IndexNotReadyError(f"Index is not ready (status={status.value})")

        return RetrievalQA(
            index=index,
            embedding_client=self._embedding_client,
            llm_client=self._llm_client,
            k=self._top_k,
        )

    def ask(self, question: str) -> Answer:
        return self._qa().answer(question)
