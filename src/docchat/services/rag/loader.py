from __future__ import annotations

from collections.abc import Callable, Iterator
import csv
from enum import Enum
import hashlib
import io
import json
from pathlib import Path
import re

from loguru import logger
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docchat.services.rag.errors import (
    DecodeError,
    DirectoryUnreadableError,
    UnknownExtensionError,
)
from docchat.services.rag.types import DocumentFormat, SourceDocument


class UnknownHandling(str, Enum):
    IGNORE = "ignore"
    WARN = "warn"
    ERROR = "error"


Decoder = Callable[[Path, str], list[SourceDocument]]

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_NOTION_ID_RE = re.compile(r"\s+[0-9a-f]{32}$", re.IGNORECASE)


def _doc_id(relative_path: str, locator: str = "") -> str:
    key = f"{relative_path}#{locator}" if locator else relative_path
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def _document(
    path: Path,
    relative_path: str,
    text: str,
    doc_format: DocumentFormat,
    *,
    locator: str = "",
    **extra: object,
) -> SourceDocument:
    source = path.as_posix()
    return SourceDocument(
        doc_id=_doc_id(relative_path, locator),
        source_path=source,
        text=text,
        format=doc_format,
        metadata={"source": source, "format": doc_format.value, **extra},
    )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DecodeError(path, str(exc)) from exc


def decode_text(path: Path, relative_path: str) -> list[SourceDocument]:
    return [_document(path, relative_path, _read_text(path), DocumentFormat.TEXT)]


def _json_strings(value: object) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _json_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _json_strings(item)


def decode_json(path: Path, relative_path: str) -> list[SourceDocument]:
    try:
        payload = json.loads(_read_text(path))
    except json.JSONDecodeError as exc:
        raise DecodeError(path, f"invalid JSON: {exc}") from exc
    except RecursionError as exc:
        raise DecodeError(path, "JSON nesting too deep") from exc

    try:
        text = "\n".join(value for value in _json_strings(payload) if value.strip())
    except RecursionError as exc:
        raise DecodeError(path, "JSON nesting too deep") from exc
    return [_document(path, relative_path, text, DocumentFormat.JSON)]


def decode_csv(path: Path, relative_path: str) -> list[SourceDocument]:
    """One document per data row, rendered as ``column: value`` lines."""
    reader = csv.DictReader(io.StringIO(_read_text(path), newline=""))
    documents: list[SourceDocument] = []

    try:
        for row_index, row in enumerate(reader):
            # Overflow cells are collected under the None key.
            cells = [
                (column.strip(), (value or "").strip())
                for column, value in row.items()
                if column is not None
            ]
            if not any(value for _, value in cells):
                continue
            lines = [f"{column}: {value}" for column, value in cells]
            documents.append(
                _document(
                    path,
                    relative_path,
                    "\n".join(lines),
                    DocumentFormat.CSV,
                    locator=f"row={row_index}",
                    row=row_index,
                )
            )
    except csv.Error as exc:
        raise DecodeError(path, f"invalid CSV at line {reader.line_num}: {exc}") from exc

    return documents


def _notion_title(name: str) -> str:
    return _NOTION_ID_RE.sub("", name).strip()


def decode_notion_markdown(path: Path, relative_path: str) -> list[SourceDocument]:
    """Split a markdown export into one document per heading section.

    The section path starts with the page hierarchy taken from the export's
    directory nesting (Notion appends a 32-hex id to every page name, which
    is dropped) and continues with the enclosing headings.
    """
    text = _read_text(path)
    title = _notion_title(path.stem)
    page_path = [_notion_title(part) for part in Path(relative_path).parent.parts]
    page_path.append(title)

    sections: list[tuple[str, str]] = []
    headings: list[tuple[int, str]] = []
    heading_line = ""
    body: list[str] = []
    in_fence = False

    def flush() -> None:
        content = "\n".join(body).strip()
        if not content:
            return
        trail = page_path + [name for _, name in headings]
        section_text = f"{heading_line}\n{content}" if heading_line else content
        sections.append((" > ".join(trail), section_text))

    for line in text.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
        match = None if in_fence else _HEADING_RE.match(line)
        if match is None:
            body.append(line)
            continue

        flush()
        body.clear()
        level = len(match.group(1))
        while headings and headings[-1][0] >= level:
            headings.pop()
        headings.append((level, match.group(2)))
        heading_line = line.strip()

    flush()

    return [
        _document(
            path,
            relative_path,
            section_text,
            DocumentFormat.NOTION,
            locator=f"section={index}",
            title=title,
            section=section,
        )
        for index, (section, section_text) in enumerate(sections)
    ]


def decode_pdf(path: Path, relative_path: str) -> list[SourceDocument]:
    documents: list[SourceDocument] = []
    try:
        reader = PdfReader(path)
        total_pages = len(reader.pages)
        for page_number, page in enumerate(reader.pages, start=1):
            documents.append(
                _document(
                    path,
                    relative_path,
                    page.extract_text() or "",
                    DocumentFormat.PDF,
                    locator=f"page={page_number}",
                    page=page_number,
                    total_pages=total_pages,
                )
            )
    except (PyPdfError, OSError, ValueError) as exc:
        raise DecodeError(path, f"invalid PDF: {exc}") from exc

    return documents


DECODERS: dict[str, Decoder] = {
    ".txt": decode_text,
    ".json": decode_json,
    ".csv": decode_csv,
    ".md": decode_notion_markdown,
    ".pdf": decode_pdf,
}


def _walk(directory: Path) -> Iterator[Path]:
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        logger.warning("Skipping unreadable directory {}: {}", directory, exc)
        return

    for entry in entries:
        if entry.name.startswith("."):
            continue
        if entry.is_dir() and not entry.is_symlink():
            yield from _walk(entry)
        elif entry.is_file():
            yield entry


def _check_root(source_dir: Path) -> None:
    if not source_dir.exists():
        raise DirectoryUnreadableError(f"Source directory not found: {source_dir}")
    if not source_dir.is_dir():
        raise DirectoryUnreadableError(f"Source path is not a directory: {source_dir}")
    try:
        next(source_dir.iterdir(), None)
    except OSError as exc:
        raise DirectoryUnreadableError(
            f"Source directory is not readable: {source_dir} ({exc})"
        ) from exc


def load_documents(
    source_dir: Path,
    *,
    unknown_handling: UnknownHandling = UnknownHandling.IGNORE,
    decoders: dict[str, Decoder] | None = None,
) -> list[SourceDocument]:
    _check_root(source_dir)
    registry = DECODERS if decoders is None else decoders

    documents: list[SourceDocument] = []
    skipped = 0
    for path in _walk(source_dir):
        relative_path = path.relative_to(source_dir).as_posix()
        decoder = registry.get(path.suffix.lower())
        if decoder is None:
            if unknown_handling is UnknownHandling.ERROR:
                raise UnknownExtensionError(f"No decoder registered for {relative_path}")
            if unknown_handling is UnknownHandling.WARN:
                logger.warning("No decoder registered for {}, skipping", relative_path)
            continue

        try:
            decoded = decoder(path, relative_path)
        except DecodeError as exc:
            skipped += 1
            logger.error("{}; file skipped", exc)
            continue

        documents.extend(document for document in decoded if document.text.strip())

    if not documents:
        logger.warning("No non-empty supported documents found in {}", source_dir)
    logger.info(
        "Loaded {} documents from {} (decode failures: {})",
        len(documents),
        source_dir,
        skipped,
    )
    return documents
