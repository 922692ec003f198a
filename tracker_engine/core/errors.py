from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class EngineError(Exception):
    """Base error envelope. Validators return these; mutations and queries raise them."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<engine>"
        return f"{loc}: {self.code}: {self.message}"


class SnapshotLoadError(EngineError):
    pass


class SnapshotValidationError(EngineError):
    pass


class DependencyError(EngineError):
    """A dependency mutation was rejected before anything was written."""


class QueryError(EngineError):
    pass
