import httpx
import pytest

from docchat.services.rag.embedding_client import EmbeddingClientError, OpenAIEmbeddingClient


class _FakeResponse:
    def __init__(self, payload: dict[str, object], *, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("POST", "https://api.example.test/v1/embeddings")
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError("request failed", request=request, response=response)

    def json(self) -> dict[str, object]:
        return self._payload


def test_openai_embedding_client_parses_vectors(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_post(
        url: str,
        *,
        json: dict[str, object],
        headers: dict[str, str],
        timeout: float,
    ) -> _FakeResponse:
        captured["url"] = url
        captured["json"] = json
        captured["headers"] = headers
        captured["timeout"] = timeout
        return _FakeResponse(
            {
                "data": [
                    {"index": 1, "embedding": [4.5, 5.0, 6.25]},
                    {"index": 0, "embedding": [1, 2, 3]},
                ]
            }
        )

    monkeypatch.setattr("docchat.services.rag.embedding_client.httpx.post", fake_post)

    client = OpenAIEmbeddingClient(
        base_url="https://api.example.test/v1/",
        model="text-embedding-ada-002",
        api_key="sk-test",
        timeout_seconds=12,
    )
    vectors = client.embed_texts(["first", "second"])

    assert vectors == [[1.0, 2.0, 3.0], [4.5, 5.0, 6.25]]
    assert captured["url"] == "https://api.example.test/v1/embeddings"
    assert captured["json"] == {
        "model": "text-embedding-ada-002",
        "input": ["first", "second"],
    }
    assert captured["headers"] == {"Authorization": "Bearer sk-test"}
    assert captured["timeout"] == 12


def test_openai_embedding_client_skips_request_for_no_texts(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(*args: object, **kwargs: object) -> _FakeResponse:
        raise AssertionError("no request expected")

    monkeypatch.setattr("docchat.services.rag.embedding_client.httpx.post", fake_post)

    client = OpenAIEmbeddingClient(base_url="https://api.example.test/v1", model="m")

    assert client.embed_texts([]) == []


def test_openai_embedding_client_rejects_payload_size_mismatch(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fake_post(
        url: str,
        *,
        json: dict[str, object],
        headers: dict[str, str],
        timeout: float,
    ) -> _FakeResponse:
        del url, json, headers, timeout
        return _FakeResponse({"data": [{"embedding": [1, 2, 3]}]})

    monkeypatch.setattr("docchat.services.rag.embedding_client.httpx.post", fake_post)

    client = OpenAIEmbeddingClient(
        base_url="https://api.example.test/v1",
        model="text-embedding-ada-002",
    )

    with pytest.raises(EmbeddingClientError, match="expected 2 vectors"):
        client.embed_texts(["first", "second"])


def test_openai_embedding_client_wraps_http_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(
        url: str,
        *,
        json: dict[str, object],
        headers: dict[str, str],
        timeout: float,
    ) -> _FakeResponse:
        del url, json, headers, timeout
        return _FakeResponse({}, status_code=503)

    monkeypatch.setattr("docchat.services.rag.embedding_client.httpx.post", fake_post)

    client = OpenAIEmbeddingClient(base_url="https://api.example.test/v1", model="m")

    with pytest.raises(EmbeddingClientError, match="request failed"):
        client.embed_texts(["first"])


def test_openai_embedding_client_wraps_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(*args: object, **kwargs: object) -> _FakeResponse:
        raise httpx.ReadTimeout("timed out")

    monkeypatch.setattr("docchat.services.rag.embedding_client.httpx.post", fake_post)

    client = OpenAIEmbeddingClient(base_url="https://api.example.test/v1", model="m")

    with pytest.raises(EmbeddingClientError, match="timed out"):
        client.embed_texts(["first"])


def test_openai_embedding_client_rejects_non_numeric_values(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(*args: object, **kwargs: object) -> _FakeResponse:
        return _FakeResponse({"data": [{"index": 0, "embedding": [None, 1.0]}]})

    monkeypatch.setattr("docchat.services.rag.embedding_client.httpx.post", fake_post)

    client = OpenAIEmbeddingClient(base_url="https://api.example.test/v1", model="m")

    with pytest.raises(EmbeddingClientError, match="non-numeric"):
        client.embed_texts(["first"])
