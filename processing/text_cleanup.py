# processing/text_cleanup.py
"""Deterministic cleanup applied to every prose pass."""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(__name__)

BULLET_LINE = re.compile(r"^[ \t]*[-•*][ \t]+", re.MULTILINE)
_BULLET_PREFIX = re.compile(r"^([ \t]*)[-•*][ \t]+")
_PAREN_NUMBER_PREFIX = re.compile(r"^\s*\d+\)\s+")
_SEPARATOR_LINE = re.compile(r"^[ \t]*(?:[_\-=*]{3,}|[─━═]{3,})[ \t]*$", re.MULTILINE)
_HEADING = re.compile(r"^(#{1,6})[ \t]*(\S[^\n]*?)[ \t#]*$")
_EXCESS_BLANKS = re.compile(r"\n{4,}")

# Fewer consecutive bullet lines than this are treated as stray markers.
MIN_LIST_RUN = 3


def _unwrap_stray_bullets(lines: list[str]) -> list[str]:
    """Strip markers from bullet lines that are not part of a real list."""
    result: list[str] = []
    run: list[str] = []

    def flush() -> None:
        if len(run) >= MIN_LIST_RUN:
            result.extend(run)
        else:
            result.extend(_BULLET_PREFIX.sub(r"\1", line) for line in run)
        run.clear()

    for line in lines:
        if _BULLET_PREFIX.match(line) and not _SEPARATOR_LINE.match(line):
            run.append(line)
            continue
        flush()
        result.append(_PAREN_NUMBER_PREFIX.sub("", line))
    flush()
    return result


def _normalize_headings(lines: list[str]) -> list[str]:
    """One blank line around every markdown heading."""
    result: list[str] = []
    after_heading = False
    for line in lines:
        match = _HEADING.match(line)
        if not match:
            if after_heading and not line.strip():
                continue
            after_heading = False
            result.append(line)
            continue
        while result and not result[-1].strip():
            result.pop()
        if result:
            result.append("")
        result.append(f"{match.group(1)} {match.group(2).strip()}")
        result.append("")
        after_heading = True
    return result


def count_bullets(text: str) -> int:
    return len(BULLET_LINE.findall(text))


def clean_unit_text(text: str) -> str:
    """Normalise pass output into clean prose with consistent structure."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n")
    cleaned = re.sub(r"```[a-zA-Z0-9_-]*\n?", "", cleaned)
    cleaned = _SEPARATOR_LINE.sub("", cleaned)
    lines = _unwrap_stray_bullets(cleaned.split("\n"))
    lines = _normalize_headings(lines)
    cleaned = "\n".join(line.rstrip() for line in lines)
    cleaned = _EXCESS_BLANKS.sub("\n\n\n", cleaned).strip()
    if len(cleaned) < len(text.strip()):
        logger.debug(
            "Cleanup reduced unit text.", before=len(text), after=len(cleaned)
        )
    return cleaned


def word_count(text: str) -> int:
    return len(text.split())
