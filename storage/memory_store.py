# storage/memory_store.py
"""JSON-file key-value store for per-book context and tiered memory."""

from __future__ import annotations

import os
from typing import Protocol

import structlog
from pydantic import ValidationError

from config import MEMORY_OUTPUT_DIR
from core.errors import PersistenceWriteError
from models import BookContextState, TieredMemorySnapshot

logger = structlog.get_logger(__name__)


class MemoryStore(Protocol):
    def load_context(self, book_id: str) -> BookContextState | None: ...

    def save_context(self, state: BookContextState) -> None: ...

    def load_memory(self, book_id: str) -> TieredMemorySnapshot | None: ...

    def save_memory(self, snapshot: TieredMemorySnapshot) -> None: ...


def _safe_key(book_id: str) -> str:
    return "".join(c if c.isalnum() or c in ["_", "-"] else "_" for c in book_id)


class JsonMemoryStore:
    """Stores ``book-context-<id>.json`` and ``book-memory-<id>.json`` files."""

    def __init__(self, base_dir: str = MEMORY_OUTPUT_DIR) -> None:
        self.base_dir = base_dir

    def _path(self, prefix: str, book_id: str) -> str:
        return os.path.join(self.base_dir, f"{prefix}-{_safe_key(book_id)}.json")

    def _write(self, path: str, payload: str) -> None:
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise PersistenceWriteError(f"Could not write {path}: {exc}") from exc

    def _read(self, path: str) -> str | None:
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            logger.error("Failed reading memory file", path=path, exc_info=exc)
            return None

    def load_context(self, book_id: str) -> BookContextState | None:
        raw = self._read(self._path("book-context", book_id))
        if raw is None:
            return None
        try:
            return BookContextState.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("Corrupted book context, starting fresh", book_id=book_id, exc_info=exc)
            return None

    def save_context(self, state: BookContextState) -> None:
        self._write(self._path("book-context", state.book_id), state.model_dump_json(indent=2))

    def load_memory(self, book_id: str) -> TieredMemorySnapshot | None:
        raw = self._read(self._path("book-memory", book_id))
        if raw is None:
            return None
        try:
            return TieredMemorySnapshot.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("Corrupted tiered memory, starting fresh", book_id=book_id, exc_info=exc)
            return None

    def save_memory(self, snapshot: TieredMemorySnapshot) -> None:
        self._write(
            self._path("book-memory", snapshot.book_id), snapshot.model_dump_json(indent=2)
        )

    def delete(self, book_id: str) -> None:
        for prefix in ("book-context", "book-memory"):
            path = self._path(prefix, book_id)
            if os.path.exists(path):
                os.remove(path)


class InMemoryStore:
    """Process-local store for tests and dry runs."""

    def __init__(self) -> None:
        self.contexts: dict[str, str] = {}
        self.memories: dict[str, str] = {}

    def load_context(self, book_id: str) -> BookContextState | None:
        raw = self.contexts.get(book_id)
        return BookContextState.model_validate_json(raw) if raw else None

    def save_context(self, state: BookContextState) -> None:
        self.contexts[state.book_id] = state.model_dump_json()

    def load_memory(self, book_id: str) -> TieredMemorySnapshot | None:
        raw = self.memories.get(book_id)
        return TieredMemorySnapshot.model_validate_json(raw) if raw else None

    def save_memory(self, snapshot: TieredMemorySnapshot) -> None:
        self.memories[snapshot.book_id] = snapshot.model_dump_json()

    def delete(self, book_id: str) -> None:
        self.contexts.pop(book_id, None)
        self.memories.pop(book_id, None)
