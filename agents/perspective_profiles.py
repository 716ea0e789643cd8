# agents/perspective_profiles.py
"""Built-in reader profiles and loading of custom ones from YAML."""

from __future__ import annotations

import re

import structlog
from pydantic import ValidationError

from models import PerspectiveProfile
from yaml_parser import load_yaml_file

logger = structlog.get_logger(__name__)

DEFAULT_ENGAGEMENT = 7

READER_PROFILES: tuple[PerspectiveProfile, ...] = (
    PerspectiveProfile(
        id="skeptic-sam",
        name="Sam the Skeptic",
        background="Critical thinker who questions assumptions and spots logical fallacies",
        focus_descriptors=["evidence", "logical soundness"],
        questioning_style='Challenges claims with "But what about...?" and "How do you know...?"',
        engagement_level=8,
        topical_interests=["evidence", "counterexamples", "edge cases", "alternative explanations"],
    ),
    PerspectiveProfile(
        id="enthusiast-emma",
        name="Emma the Enthusiast",
        background="Engaged learner who builds on ideas and connects them to real life",
        focus_descriptors=["applications", "connections"],
        questioning_style='Asks "How can I apply this?" and "What else works like this?"',
        engagement_level=10,
        topical_interests=["applications", "examples", "connections", "deeper exploration"],
    ),
    PerspectiveProfile(
        id="academic-alex",
        name="Dr. Alex",
        background="Academic expert who references research and seeks precision",
        focus_descriptors=["rigor", "theoretical frameworks"],
        questioning_style="Asks about methodology, sources, and theoretical frameworks",
        engagement_level=6,
        topical_interests=["research", "frameworks", "definitions", "academic rigor"],
    ),
    PerspectiveProfile(
        id="practitioner-pat",
        name="Pat the Practitioner",
        background="Industry professional who wants actionable takeaways",
        focus_descriptors=["implementation", "actionable steps"],
        questioning_style='Asks "How do I actually do this?" and "What are the steps?"',
        engagement_level=7,
        topical_interests=["implementation", "tools", "workflows", "real-world examples"],
    ),
    PerspectiveProfile(
        id="beginner-bailey",
        name="Bailey the Beginner",
        background="Newcomer learning the fundamentals",
        focus_descriptors=["clarity", "fundamentals"],
        questioning_style='Asks "What does X mean?" and "Can you explain this more simply?"',
        engagement_level=9,
        topical_interests=["definitions", "basics", "analogies", "step-by-step guides"],
    ),
    PerspectiveProfile(
        id="creative-casey",
        name="Casey the Creative",
        background="Innovator who thinks laterally and challenges conventions",
        focus_descriptors=["novel approaches", "unusual connections"],
        questioning_style='Asks "What if we combined X with Y?" and "Has anyone tried...?"',
        engagement_level=8,
        topical_interests=["novel approaches", "analogies", "cross-domain thinking", "innovation"],
    ),
    PerspectiveProfile(
        id="devil-advocate-dana",
        name="Dana the Devil's Advocate",
        background="Contrarian who opposes consensus to test ideas",
        focus_descriptors=["counterarguments", "stress testing"],
        questioning_style='Asks "What if the opposite is true?" and "Who disagrees with this?"',
        engagement_level=7,
        topical_interests=["counterarguments", "alternative perspectives", "edge cases", "stress testing"],
    ),
    PerspectiveProfile(
        id="synthesizer-sydney",
        name="Sydney the Synthesizer",
        background="Connector who finds patterns across units and builds frameworks",
        focus_descriptors=["the big picture", "patterns"],
        questioning_style='Asks "How does this relate to unit X?" and "What\'s the overall pattern?"',
        engagement_level=7,
        topical_interests=["connections", "frameworks", "big picture", "integration"],
    ),
)

# name, background template, focus area, questioning style
_NICHE_TEMPLATES: tuple[tuple[str, str, str, str], ...] = (
    ("The Skeptical Professional", "Experienced in {niche}, questions new approaches", "evidence and proof", "challenges assumptions"),
    ("The Eager Beginner", "New to {niche}, wants clear foundations", "fundamentals and clarity", "asks for explanations"),
    ("The Busy Practitioner", "Applies {niche} daily, needs efficiency", "practical application", "wants actionable steps"),
    ("The Deep Diver", "Seeks mastery in {niche}", "nuance and depth", "probes for advanced insights"),
    ("The Research-Minded", "Values evidence in {niche}", "sources and methodology", "asks about research"),
    ("The Story Seeker", "Learns through examples", "real-world cases", "requests examples and stories"),
    ("The Contrarian Thinker", "Questions mainstream {niche} wisdom", "alternative perspectives", "plays devil's advocate"),
    ("The Time-Pressed Reader", "Limited time for {niche} learning", "key takeaways", "wants summaries"),
    ("The Connector", "Relates {niche} to other fields", "interdisciplinary links", "asks how concepts relate"),
)


def profile_id(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "reader"


def focus_terms(focus: str) -> list[str]:
    """Split a free-text focus like ``evidence and proof`` into its terms."""
    parts = re.split(r",|\band\b|/", focus)
    return [part.strip() for part in parts if part.strip()]


def niche_profiles(niche: str) -> list[PerspectiveProfile]:
    """Nine critique profiles phrased for ``niche``."""
    niche = niche.strip() or "this subject"
    return [
        PerspectiveProfile(
            id=profile_id(name),
            name=name,
            background=background.format(niche=niche),
            focus_descriptors=[focus],
            questioning_style=style,
            engagement_level=DEFAULT_ENGAGEMENT,
            topical_interests=focus_terms(focus),
        )
        for name, background, focus, style in _NICHE_TEMPLATES
    ]


def profile_from_persona_block(block: dict[str, str], niche: str) -> PerspectiveProfile:
    """Build a profile from a parsed ``PERSONA n:`` block."""
    focus = block.get("focus") or "practical application"
    return PerspectiveProfile(
        id=profile_id(block["name"]),
        name=block["name"],
        background=block.get("background") or f"Reader interested in {niche}",
        focus_descriptors=[focus],
        questioning_style=block.get("style") or "curious and engaged",
        engagement_level=DEFAULT_ENGAGEMENT,
        topical_interests=focus_terms(focus),
    )


def load_profiles_file(filepath: str) -> list[PerspectiveProfile]:
    """Read custom profiles from a YAML file with a top-level ``profiles`` list.

    Entries that fail validation are skipped. Returns an empty list when the
    file is missing or unreadable.
    """
    content = load_yaml_file(filepath)
    if not content:
        return []
    entries = content.get("profiles")
    if not isinstance(entries, list):
        logger.warning("Profiles file has no 'profiles' list", path=filepath)
        return []

    profiles: list[PerspectiveProfile] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-mapping profile entry", path=filepath, index=index)
            continue
        entry = dict(entry)
        if "name" in entry and "id" not in entry:
            entry["id"] = profile_id(str(entry["name"]))
        for key in ("focus_descriptors", "topical_interests"):
            if isinstance(entry.get(key), str):
                entry[key] = focus_terms(entry[key])
        try:
            profiles.append(PerspectiveProfile.model_validate(entry))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid profile entry",
                path=filepath,
                index=index,
                error=str(exc),
            )
    logger.info("Loaded custom reader profiles", path=filepath, count=len(profiles))
    return profiles


def default_profiles(profiles_file: str | None = None) -> list[PerspectiveProfile]:
    """Custom profiles when a usable file is configured, else the built-in set."""
    if profiles_file:
        custom = load_profiles_file(profiles_file)
        if custom:
            return custom
    return list(READER_PROFILES)
