# resilience/emergency_content.py
"""Deterministic stand-in text used when every generation attempt failed."""

from __future__ import annotations

import re

DEFAULT_TOPIC = "this topic"

_TOPIC_PATTERN = re.compile(r'(?:CHAPTER|TOPIC|TITLE):\s*"?([^"\n]+)"?')

# Operation kinds that produce long-form prose share the section template.
_PROSE_KINDS = {"section", "skeleton", "draft", "revision", "redraft", "polish"}


def extract_topic(prompt: str) -> str:
    """Pull the subject out of a prompt's CHAPTER/TOPIC/TITLE marker."""
    match = _TOPIC_PATTERN.search(prompt or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    return DEFAULT_TOPIC


def emergency_content(content_kind: str, topic: str) -> str:
    """Return non-empty templated content for ``content_kind``."""
    topic = topic.strip() or DEFAULT_TOPIC
    kind = "section" if content_kind in _PROSE_KINDS else content_kind

    if kind == "section":
        return (
            f"## {topic}\n\n"
            f"This section explores {topic} and its key aspects. Understanding "
            "this concept is important for achieving success in this area.\n\n"
            "Key points to consider:\n"
            f"- Core principles of {topic}\n"
            "- Practical applications\n"
            "- Common challenges and solutions\n\n"
            f"By mastering these fundamentals, you'll be better equipped to apply "
            f"{topic} effectively."
        )
    if kind == "question":
        return f"How can we better understand and apply {topic}?"
    if kind == "answer":
        return (
            f"{topic} requires careful consideration of multiple factors. The key is "
            "to start with fundamental principles and build from there through "
            "consistent practice and application."
        )
    if kind == "analysis":
        return (
            f"Analysis of {topic}: This topic presents both opportunities and "
            "challenges. A balanced approach considering multiple perspectives will "
            "yield the best results."
        )
    return f"Content about {topic} generated in emergency fallback mode."


def minimal_prompt(content_kind: str, topic: str, word_count: int = 100) -> str:
    """Smallest prompt that can still yield usable content for ``content_kind``."""
    if content_kind == "question":
        return f"Ask one short, specific question about: {topic}"
    if content_kind == "answer":
        return f"In {word_count} words or fewer, answer this plainly: {topic}"
    if content_kind == "analysis":
        return f"Give a {word_count}-word assessment of: {topic}"
    return (
        f"Write {word_count} words about: {topic}\n\n"
        "Keep it simple and clear. No complex examples needed."
    )
