from __future__ import annotations

from pathlib import Path


class RagError(RuntimeError):
    pass


class InitializationError(RagError):
    pass


class DirectoryUnreadableError(RagError):
    pass


class UnknownExtensionError(RagError):
    pass


class DecodeError(RagError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to decode {path}: {reason}")
        self.path = path
        self.reason = reason


class OrchestratorError(RagError):
    pass


class EmbeddingUnavailableError(OrchestratorError):
    pass


class GenerationUnavailableError(OrchestratorError):
    pass


class IndexNotReadyError(OrchestratorError):
    pass


class RebuildInProgressError(RagError):
    pass
