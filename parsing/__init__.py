# parsing/__init__.py
"""Parsing of free-form model output.

Every ``parse_*`` function here is pure and never raises: malformed input
yields an empty list, an empty dict or the supplied default. The
``require_*`` helpers raise ``ParseError`` so callers can decide to
re-prompt.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from core.errors import ParseError

logger = structlog.get_logger(__name__)

NUMBERED_LINE = re.compile(r"^(\d+)[.)]\s+(.*)$")
_VOTE_LINE = re.compile(
    r"^(?:\d+[.)]\s*)?(?P<voter>[^:]+?)(?:\s+votes?)?\s*:\s*(?P<votes>.*\d.*)$",
    re.IGNORECASE,
)
_DASH_ITEM = re.compile(r"^\s*[-•*]\s+(.*\S)\s*$")
_MARKDOWN_WRAP = re.compile(r"^[*_\s]+|[*_\s]+$")

__all__ = [
    "ParseError",
    "VoteLine",
    "parse_numbered_list",
    "require_numbered_list",
    "parse_vote_lines",
    "parse_dimension_scores",
    "parse_coverage_answers",
    "parse_labeled_sections",
    "parse_dash_items",
    "parse_name_definition",
    "parse_persona_blocks",
    "parse_comma_list",
]


def _strip_markdown(value: str) -> str:
    value = _MARKDOWN_WRAP.sub("", value)
    # quotes only when they wrap the whole value
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1].strip()
    return value


def parse_numbered_list(text: str | None, min_chars: int = 1) -> list[str]:
    """Return the items of a ``1. item`` / ``1) item`` list in order.

    Lines that do not start with a number followed by ``.`` or ``)`` and
    whitespace are discarded, as are items shorter than ``min_chars``.
    """
    if not text:
        return []
    items: list[str] = []
    for raw_line in text.splitlines():
        match = NUMBERED_LINE.match(raw_line.strip())
        if not match:
            continue
        item = _strip_markdown(match.group(2).strip())
        if len(item) >= min_chars:
            items.append(item)
    return items


def require_numbered_list(text: str | None, minimum: int, min_chars: int = 1) -> list[str]:
    items = parse_numbered_list(text, min_chars=min_chars)
    if len(items) < minimum:
        raise ParseError(f"Expected at least {minimum} numbered items, found {len(items)}")
    return items


@dataclass(frozen=True)
class VoteLine:
    voter: str
    choices: tuple[int, ...]


def parse_vote_lines(text: str | None) -> list[VoteLine]:
    """Parse ``<voter>: <idx>, <idx>`` lines.

    Also accepts ``1. <voter> votes: 2, 5`` and ``2 and 5``. Choices are the
    1-based numbers exactly as written; range checks belong to the caller.
    """
    if not text:
        return []
    votes: list[VoteLine] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _VOTE_LINE.match(line)
        if not match:
            continue
        voter = _strip_markdown(match.group("voter").strip())
        choices = tuple(int(n) for n in re.findall(r"\d+", match.group("votes")))
        if voter and choices:
            votes.append(VoteLine(voter=voter, choices=choices))
    return votes


def parse_dimension_scores(
    text: str | None,
    dimensions: list[str],
    default: int = 5,
    low: int = 1,
    high: int = 10,
) -> dict[str, int]:
    """Read ``DIMENSION: <n>`` scores, clamped to ``[low, high]``."""
    scores: dict[str, int] = {}
    for dimension in dimensions:
        match = (
            re.search(rf"{re.escape(dimension)}\s*\**\s*:\s*\**\s*(\d+)", text, re.IGNORECASE)
            if text
            else None
        )
        scores[dimension] = (
            min(high, max(low, int(match.group(1)))) if match else default
        )
    return scores


def parse_coverage_answers(text: str | None, count: int) -> list[bool]:
    """Return one flag per ``Q<n>: YES/NO`` line; missing answers count as NO."""
    answers: list[bool] = []
    for index in range(1, count + 1):
        match = (
            re.search(rf"\bQ{index}\s*:\s*\**\s*(YES|NO)\b", text, re.IGNORECASE)
            if text
            else None
        )
        answers.append(bool(match and match.group(1).upper() == "YES"))
    return answers


def parse_labeled_sections(text: str | None, labels: list[str]) -> dict[str, str]:
    """Split ``LABEL: content`` output into a mapping.

    A section runs until the next known label at the start of a line.
    Labels that do not appear are absent from the result.
    """
    if not text:
        return {}
    alternation = "|".join(re.escape(label) for label in labels)
    header = re.compile(
        rf"^\s*(?:\d+[.)]\s*)?\**\s*({alternation})\s*\**\s*:\s*",
        re.IGNORECASE | re.MULTILINE,
    )
    matches = list(header.finditer(text))
    canonical = {label.upper(): label for label in labels}
    sections: dict[str, str] = {}
    for position, match in enumerate(matches):
        end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
        label = canonical[match.group(1).upper()]
        content = text[match.end() : end].strip()
        if label not in sections and content:
            sections[label] = content
    return sections


def parse_dash_items(block: str | None, limit: int | None = None) -> list[str]:
    """Collect ``- item`` lines; numbered items are accepted too."""
    if not block:
        return []
    items: list[str] = []
    for line in block.splitlines():
        match = _DASH_ITEM.match(line) or NUMBERED_LINE.match(line.strip())
        if not match:
            continue
        item = _strip_markdown(match.group(match.lastindex or 1).strip())
        if item:
            items.append(item)
    return items[:limit] if limit is not None else items


def parse_name_definition(item: str) -> tuple[str, str]:
    """Split ``Name: definition`` (or ``Name - definition``) into its parts."""
    for separator in (":", " - ", " – "):
        if separator in item:
            name, definition = item.split(separator, 1)
            name = _strip_markdown(name.strip())
            if name:
                return name, definition.strip()
    return _strip_markdown(item.strip()), ""


def parse_comma_list(value: str | None) -> list[str]:
    if not value:
        return []
    first_line = value.strip().splitlines()[0] if value.strip() else ""
    return [_strip_markdown(part.strip()) for part in first_line.split(",") if part.strip()]


def parse_persona_blocks(text: str | None) -> list[dict[str, str]]:
    """Parse ``PERSONA n:`` blocks carrying NAME/BACKGROUND/FOCUS/STYLE lines."""
    if not text:
        return []
    personas: list[dict[str, str]] = []
    for block in re.split(r"PERSONA\s+\d+\s*:", text, flags=re.IGNORECASE):
        if not block.strip():
            continue
        sections = parse_labeled_sections(block, ["NAME", "BACKGROUND", "FOCUS", "STYLE"])
        name = sections.get("NAME", "").splitlines()[0].strip() if sections.get("NAME") else ""
        if not name:
            continue
        personas.append(
            {
                "name": _strip_markdown(name),
                "background": " ".join(sections.get("BACKGROUND", "").split()),
                "focus": " ".join(sections.get("FOCUS", "").split()),
                "style": " ".join(sections.get("STYLE", "").split()),
            }
        )
    return personas
