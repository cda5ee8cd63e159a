from __future__ import annotations

from loguru import logger

from docchat.llm import LLMClient, LLMClientError
from docchat.services.rag.embedding_client import EmbeddingClient, EmbeddingClientError
from docchat.services.rag.errors import (
    EmbeddingUnavailableError,
    GenerationUnavailableError,
)
from docchat.services.rag.index import Retriever
from docchat.services.rag.types import Answer, QueryHit

NO_CONTEXT_MARKER = "No relevant context found in the document corpus."

PROMPT_TEMPLATE = """\
Use the following pieces of context to answer the question at the end.
Answer using only the provided context when possible.
If the context is insufficient, say so briefly instead of making up an answer.

Context:
{context}

Question: {question}
Helpful Answer:"""


def format_context(hits: list[QueryHit]) -> str:
    return "\n\n".join(
        f"[{hit.chunk.source_path}#{hit.chunk.chunk_id}]\n{hit.chunk.text}" for hit in hits
    ) or NO_CONTEXT_MARKER


def build_prompt(question: str, hits: list[QueryHit]) -> str:
    return PROMPT_TEMPLATE.format(context=format_context(hits), question=question)


class RetrievalQA:
    """Answers one question per call against a fixed, read-only index."""

    def __init__(
        self,
        *,
        index: Retriever,
        embedding_client: EmbeddingClient,
        llm_client: LLMClient,
        k: int = 4,
    ) -> None:
        if k < 1:
            raise ValueError("k must be >= 1")
        self._index = index
        self._embedding_client = embedding_client
        self._llm_client = llm_client
        self._k = k

    def retrieve(self, question: str) -> list[QueryHit]:
        normalized = question.strip()
        # The embeddings API rejects empty input, so blank questions skip retrieval.
        if not normalized or len(self._index) == 0:
            return []

        try:
            query_vector = self._embedding_client.embed_texts([normalized])[0]
        except (EmbeddingClientError, IndexError) as exc:
            raise EmbeddingUnavailableError(f"Failed to embed question: {exc}") from exc

        try:
            return self._index.query(query_vector, self._k)
        except ValueError as exc:
            raise EmbeddingUnavailableError(f"Question embedding does not fit the index: {exc}") from exc

    def answer(self, question: str) -> Answer:
        hits = self.retrieve(question)
        prompt = build_prompt(question.strip(), hits)

        try:
            result = self._llm_client.generate(prompt)
        except LLMClientError as exc:
            raise GenerationUnavailableError(f"LLM request failed: {exc}") from exc

        logger.debug(
            "Answered question with model={} sources={}", result.model, len(hits)
        )
        return Answer(
            text=result.answer,
            source_documents=tuple(hit.chunk for hit in hits),
            model=result.model,
            used_fallback=result.used_fallback,
        )
