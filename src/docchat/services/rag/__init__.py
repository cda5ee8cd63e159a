from docchat.services.rag.errors import (
    EmbeddingUnavailableError,
    GenerationUnavailableError,
    IndexNotReadyError,
    InitializationError,
    OrchestratorError,
)
from docchat.services.rag.index import VectorIndex
from docchat.services.rag.qa import RetrievalQA
from docchat.services.rag.service import IndexStatus, RagService
from docchat.services.rag.types import Answer, ChunkRecord, QueryHit, SourceDocument

__all__ = [
    "Answer",
    "ChunkRecord",
    "EmbeddingUnavailableError",
    "GenerationUnavailableError",
    "IndexNotReadyError",
    "IndexStatus",
    "InitializationError",
    "OrchestratorError",
    "QueryHit",
    "RagService",
    "RetrievalQA",
    "SourceDocument",
    "VectorIndex",
]
