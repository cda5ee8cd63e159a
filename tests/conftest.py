from collections.abc import Callable, Iterator
from pathlib import Path
import re

import pytest
from fastapi.testclient import TestClient

from docchat.config import get_settings
from docchat.llm import ChatResult, LLMClientError
from docchat.main import app, get_chat_session, get_rag_service
from docchat.services.rag.service import RagService

VOCABULARY = ("sky", "blue", "grass", "green", "color", "maintenance")


class KeywordEmbeddingClient:
    """Embeds text as keyword counts over a small fixed vocabulary."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors: list[list[float]] = []
        for text in texts:
            words = re.findall(r"[a-z]+", text.lower())
            vectors.append([float(words.count(term)) for term in VOCABULARY])
        return vectors


class FakeLLMClient:
    def __init__(self, answer: str = "mocked answer") -> None:
        self.answer = answer
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> ChatResult:
        self.prompts.append(prompt)
        return ChatResult(answer=self.answer, model="fake-model", used_fallback=False)


class FailingLLMClient:
    def generate(self, prompt: str) -> ChatResult:
        raise LLMClientError("simulated failure")


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_rag_service.cache_clear()
    get_chat_session.cache_clear()
    yield
    app.dependency_overrides.clear()
    get_settings.cache_clear()
    get_rag_service.cache_clear()
    get_chat_session.cache_clear()


@pytest.fixture
def embedding_client() -> KeywordEmbeddingClient:
    return KeywordEmbeddingClient()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def sky_corpus(tmp_path: Path) -> Path:
    corpus_dir = tmp_path / "data"
    corpus_dir.mkdir()
    (corpus_dir / "notes.txt").write_text("The sky is blue.", encoding="utf-8")
    (corpus_dir / "facts.txt").write_text("Grass is green.", encoding="utf-8")
    return corpus_dir


@pytest.fixture
def make_service(
    embedding_client: KeywordEmbeddingClient,
    llm_client: FakeLLMClient,
) -> Callable[..., RagService]:
    def _make(corpus_dir: Path, **overrides: object) -> RagService:
        options: dict[str, object] = {
            "corpus_dir": corpus_dir,
            "chunk_size": 100,
            "chunk_overlap": 0,
            "top_k": 2,
            "embedding_client": embedding_client,
            "llm_client": llm_client,
        }
        options.update(overrides)
        return RagService(**options)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("RAG_BUILD_ON_STARTUP", "false")

    with TestClient(app) as test_client:
        yield test_client
