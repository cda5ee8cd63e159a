from __future__ import annotations

import argparse
from collections.abc import Callable
from dataclasses import replace
import sys

from dotenv import load_dotenv

from docchat.config import get_settings
from docchat.logs import configure_logging
from docchat.services.rag import OrchestratorError, RagService
from docchat.services.rag.errors import InitializationError

PROMPT = '\x1b[33mEnter your question (or type "exit" to quit): \x1b[0m'
EXIT_COMMAND = "exit"


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="docchat",
        description="Ask questions about a local document corpus from the terminal",
    )
    parser.add_argument(
        "--corpus-dir",
        default=settings.rag_corpus_dir,
        help="Directory containing .txt/.json/.csv/.md/.pdf documents",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=settings.rag_chunk_size,
        help="Chunk size in characters",
    )
    parser.add_argument(
        "--chunk-overlap",
        type=int,
        default=settings.rag_chunk_overlap,
        help="Chunk overlap in characters",
    )
    parser.add_argument(
        "--k",
        type=int,
        default=settings.rag_top_k,
        help="Number of fragments retrieved per question",
    )
    return parser


def question_loop(
    service: RagService,
    *,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> int:
    """Answer questions until ``exit`` or end of input. Returns the number answered."""
    answered = 0
    while True:
        try:
            question = read(PROMPT).strip()
        except EOFError:
            break

        if question.lower() == EXIT_COMMAND:
            write("\x1b[32mExiting the loop...\x1b[0m")
            break
        if not question:
            continue

        write(f"\x1b[36mYou entered:\x1b[0m {question}")
        try:
            answer = service.ask(question)
        except OrchestratorError as exc:
            write(f"\x1b[31mAn error occurred:\x1b[0m {exc}")
            continue

        answered += 1
        write(f"\x1b[32mAI answered:\x1b[0m {answer.text}")
        if answer.source_documents:
            write(f"\x1b[32mSource Document:\x1b[0m {answer.source_documents[0].source_path}")
        else:
            write("\x1b[32mSource Document:\x1b[0m none")

    return answered


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    if args.k < 1:
        parser.error("--k must be >= 1")
    settings = replace(
        get_settings(),
        rag_corpus_dir=args.corpus_dir,
        rag_chunk_size=args.chunk_size,
        rag_chunk_overlap=args.chunk_overlap,
        rag_top_k=args.k,
    )
    configure_logging(settings.log_level)
    service = RagService.from_settings(settings)

    print("[docchat] loading documents...", flush=True)
    try:
        service.initialize()
    except InitializationError as exc:
        print(f"[docchat] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    print(f"[docchat] ready fragments={service.fragment_count}", flush=True)
    question_loop(service)


if __name__ == "__main__":
    main()
