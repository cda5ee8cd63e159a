from dataclasses import dataclass
from functools import lru_cache
import os


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_float(value: str | None, *, default: float, minimum: float) -> float:
    if value is None:
        return default
    parsed = float(value)
    return max(minimum, parsed)


@dataclass(frozen=True)
class Settings:
    rag_corpus_dir: str
    rag_chunk_size: int
    rag_chunk_overlap: int
    rag_top_k: int
    rag_unknown_extensions: str
    rag_build_on_startup: bool
    openai_base_url: str
    openai_api_key: str
    llm_model: str
    llm_fallback_model: str
    llm_timeout_seconds: float
    embed_model: str
    embed_batch_size: int
    embed_timeout_seconds: float
    log_level: str


@lru_cache
def get_settings() -> Settings:
    return Settings(
        rag_corpus_dir=os.getenv("RAG_CORPUS_DIR", "./data"),
        rag_chunk_size=_to_int(os.getenv("RAG_CHUNK_SIZE"), default=500, minimum=1),
        rag_chunk_overlap=_to_int(os.getenv("RAG_CHUNK_OVERLAP"), default=0, minimum=0),
        rag_top_k=_to_int(os.getenv("RAG_TOP_K"), default=4, minimum=1),
        rag_unknown_extensions=os.getenv("RAG_UNKNOWN_EXTENSIONS", "ignore").strip().lower(),
        rag_build_on_startup=_to_bool(os.getenv("RAG_BUILD_ON_STARTUP"), default=True),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        llm_model=os.getenv("LLM_MODEL", "gpt-4"),
        llm_fallback_model=os.getenv("LLM_FALLBACK_MODEL", "gpt-3.5-turbo"),
        llm_timeout_seconds=_to_float(
            os.getenv("LLM_TIMEOUT_SECONDS"), default=30.0, minimum=0.1
        ),
        embed_model=os.getenv("EMBED_MODEL", "text-embedding-ada-002"),
        embed_batch_size=_to_int(os.getenv("EMBED_BATCH_SIZE"), default=512, minimum=1),
        embed_timeout_seconds=_to_float(
            os.getenv("EMBED_TIMEOUT_SECONDS"), default=30.0, minimum=0.1
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
