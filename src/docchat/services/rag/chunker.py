from __future__ import annotations

from collections.abc import Sequence

from docchat.services.rag.types import ChunkRecord, SourceDocument

# Paragraph, line, sentence, word, character.
DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")


def _validate(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if chunk_overlap < 0:
        raise ValueError("chunk_overlap must be >= 0")
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    if not separator:
        return list(text)

    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


def _merge(pieces: list[str], limit: int) -> list[str]:
    merged: list[str] = []
    current = ""
    for piece in pieces:
        if current and len(current) + len(piece) > limit:
            merged.append(current)
            current = ""
        current += piece

    if current:
        merged.append(current)
    return merged


def _split_recursive(text: str, limit: int, separators: Sequence[str]) -> list[str]:
    separator = separators[-1]
    finer: Sequence[str] = ()
    for index, candidate in enumerate(separators):
        if not candidate or candidate in text:
            separator = candidate
            finer = separators[index + 1 :]
            break

    pieces: list[str] = []
    pending: list[str] = []
    for piece in _split_keeping_separator(text, separator):
        if len(piece) <= limit:
            pending.append(piece)
            continue

        if pending:
            pieces.extend(_merge(pending, limit))
            pending = []
        if finer:
            pieces.extend(_split_recursive(piece, limit, finer))
        else:
            # Nothing finer to split on: keep the oversized unit whole.
            pieces.append(piece)

    if pending:
        pieces.extend(_merge(pending, limit))
    return pieces


def split_text(
    text: str,
    *,
    chunk_size: int,
    chunk_overlap: int = 0,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> list[str]:
    """Split ``text`` into fragments of at most ``chunk_size`` characters.

    The coarsest separator present in the text is tried first and oversized
    pieces are split again with the next finer one. Separators stay attached
    to the piece they end, so with no overlap the fragments concatenate back
    to the input text apart from whitespace trimmed at the boundaries.

    With ``chunk_overlap > 0`` every fragment after the first is prefixed
    with the last ``chunk_overlap`` characters of the fragment before it; the
    underlying pieces are sized to ``chunk_size - chunk_overlap`` so the
    bound still holds.
    """
    _validate(chunk_size, chunk_overlap)
    if not separators:
        raise ValueError("separators must not be empty")

    if not text.strip():
        return []
    if len(text) <= chunk_size:
        return [text]

    pieces = [
        piece
        for piece in _split_recursive(text, chunk_size - chunk_overlap, tuple(separators))
        if piece.strip()
    ]

    chunks: list[str] = []
    previous = ""
    for piece in pieces:
        prefix = previous[-chunk_overlap:] if chunk_overlap and previous else ""
        previous = prefix + piece
        chunks.append(previous.strip())
    return chunks


def chunk_documents(
    documents: list[SourceDocument],
    *,
    chunk_size: int,
    chunk_overlap: int,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> list[ChunkRecord]:
    _validate(chunk_size, chunk_overlap)
    chunk_records: list[ChunkRecord] = []

    for document in documents:
        chunks = split_text(
            document.text,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=separators,
        )

        for index, chunk_text in enumerate(chunks):
            chunk_records.append(
                ChunkRecord(
                    chunk_id=f"{document.doc_id}-{index:04d}",
                    doc_id=document.doc_id,
                    source_path=document.source_path,
                    text=chunk_text,
                    metadata=document.metadata,
                )
            )

    return chunk_records
