# storage/file_manager.py
"""Utility class for asynchronous file operations on unit versions."""

from __future__ import annotations

import asyncio
import glob
import json
import os
import re
from typing import Any, Protocol

from config import UNITS_OUTPUT_DIR

_VERSION_PATTERN = re.compile(r"unit_(\d{4})_v(\d{3})\.md$")


class UnitContentStore(Protocol):
    async def save_version(
        self,
        book_id: str,
        unit_number: int,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> int: ...

    async def read_latest_version(self, book_id: str, unit_number: int) -> str | None: ...


class FileManager:
    """Handle reading and writing versioned unit text."""

    def __init__(self, units_dir: str = UNITS_OUTPUT_DIR) -> None:
        self.units_dir = units_dir

    def _book_dir(self, book_id: str) -> str:
        safe_id = "".join(c if c.isalnum() or c in ["_", "-"] else "_" for c in book_id)
        return os.path.join(self.units_dir, safe_id)

    def _versions(self, book_id: str, unit_number: int) -> list[tuple[int, str]]:
        pattern = os.path.join(self._book_dir(book_id), f"unit_{unit_number:04d}_v*.md")
        versions = []
        for path in glob.glob(pattern):
            match = _VERSION_PATTERN.search(os.path.basename(path))
            if match:
                versions.append((int(match.group(2)), path))
        return sorted(versions)

    async def save_version(
        self,
        book_id: str,
        unit_number: int,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._save_version_sync, book_id, unit_number, text, metadata
        )

    def _save_version_sync(
        self,
        book_id: str,
        unit_number: int,
        text: str,
        metadata: dict[str, Any] | None,
    ) -> int:
        existing = self._versions(book_id, unit_number)
        version = existing[-1][0] + 1 if existing else 1
        book_dir = self._book_dir(book_id)
        os.makedirs(book_dir, exist_ok=True)
        unit_path = os.path.join(book_dir, f"unit_{unit_number:04d}_v{version:03d}.md")
        with open(unit_path, "w", encoding="utf-8") as f:
            f.write(text)
        if metadata is not None:
            meta_path = unit_path[: -len(".md")] + ".json"
            with open(meta_path, "w", encoding="utf-8") as f:
                json.dump(metadata, f, indent=2, ensure_ascii=False, default=str)
        return version

    async def read_latest_version(self, book_id: str, unit_number: int) -> str | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._read_latest_version_sync, book_id, unit_number
        )

    def _read_latest_version_sync(self, book_id: str, unit_number: int) -> str | None:
        versions = self._versions(book_id, unit_number)
        if not versions:
            return None
        with open(versions[-1][1], encoding="utf-8") as f:
            return f.read()
