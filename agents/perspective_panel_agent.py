# agents/perspective_panel_agent.py
"""Simulated reader panel that critiques a unit through ranked questions."""

from __future__ import annotations

import random
from collections.abc import Sequence

import structlog

from agents.perspective_profiles import (
    default_profiles,
    niche_profiles,
    profile_from_persona_block,
)
from config import settings
from models import PerspectiveProfile, RankedQuestion
from parsing import parse_numbered_list, parse_persona_blocks, parse_vote_lines
from prompt_renderer import excerpt, render_prompt
from resilience import ResilientLLM

logger = structlog.get_logger(__name__)

TOP_QUESTIONS = 3
VOTES_PER_PROFILE = 2
MIN_QUESTION_CHARS = 10
UNIT_EXCERPT_CHARS = 3000
CALIBRATED_PROFILE_COUNT = 6

GENERIC_FALLBACK_QUESTIONS = (
    "What are the key takeaways from this chapter?",
    "How does this apply to real-world situations?",
    "What examples could make this clearer?",
)
SIMPLIFIED_SOURCE_ID = "panel"
FALLBACK_SOURCE_ID = "fallback"


def vote_probability(profile: PerspectiveProfile, question_text: str) -> float:
    lowered = question_text.lower()
    interested = any(
        interest.lower() in lowered for interest in profile.topical_interests if interest
    )
    return min(profile.engagement_level / 15 + (0.3 if interested else 0.0), 0.95)


def rank(questions: Sequence[RankedQuestion], top: int = TOP_QUESTIONS) -> list[RankedQuestion]:
    """Highest vote count first; equal counts keep generation order."""
    ordered = sorted(enumerate(questions), key=lambda pair: (-pair[1].vote_count, pair[0]))
    return [question for _, question in ordered[:top]]


class PerspectivePanel:
    """Critiques units from several reader viewpoints.

    The profile pool, the provider gateway and the random source are all
    owned by the instance so two books never share panel state.
    """

    def __init__(
        self,
        llm: ResilientLLM,
        profiles: Sequence[PerspectiveProfile] | None = None,
        rng: random.Random | None = None,
        model_name: str = settings.CRITIQUE_MODEL,
        panel_size: int = settings.CRITIQUE_PANEL_SIZE,
    ) -> None:
        self.llm = llm
        self.profiles = list(profiles) if profiles else default_profiles(
            settings.PERSPECTIVE_PROFILES_FILE
        )
        self.rng = rng or random.Random()
        self.model_name = model_name
        self.panel_size = panel_size
        self._calibrated: dict[tuple[str, str], list[PerspectiveProfile]] = {}
        logger.info(
            "PerspectivePanel initialized",
            model=self.model_name,
            profiles=len(self.profiles),
        )

    # --- profile selection ----------------------------------------------------

    def _topic_score(self, profile: PerspectiveProfile, topic: str) -> int:
        terms = [*profile.topical_interests, *profile.focus_descriptors]
        return sum(1 for term in terms if term and term.lower() in topic)

    def select_profiles(
        self,
        topic_context: str,
        count: int,
        pool: Sequence[PerspectiveProfile] | None = None,
    ) -> list[PerspectiveProfile]:
        """Pick ``count`` distinct profiles, favouring ones matching the topic."""
        candidates = list(pool if pool is not None else self.profiles)
        self.rng.shuffle(candidates)
        topic = (topic_context or "").lower()
        candidates.sort(key=lambda profile: -self._topic_score(profile, topic))
        return candidates[: max(0, min(count, len(candidates)))]

    # --- questions --------------------------------------------------------------

    async def generate_questions(
        self,
        profile: PerspectiveProfile,
        unit_title: str,
        unit_text: str,
        count: int = 1,
        template: str = "critique_questions.j2",
    ) -> list[str]:
        prompt = render_prompt(
            template,
            {
                "profile": profile,
                "unit_title": unit_title,
                "unit_excerpt": excerpt(unit_text, UNIT_EXCERPT_CHARS),
                "count": count,
            },
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="question",
            temperature=settings.TEMPERATURE_CRITIQUE,
            topic=unit_title,
        )
        questions = parse_numbered_list(result.text, min_chars=MIN_QUESTION_CHARS)
        if not questions:
            logger.debug("No questions parsed from profile", profile=profile.id)
        return questions[:count]

    async def _simplified_questions(self, unit_title: str) -> list[str]:
        prompt = render_prompt(
            "critique_questions_simple.j2",
            {"count": TOP_QUESTIONS, "unit_title": unit_title},
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="question",
            temperature=settings.TEMPERATURE_CRITIQUE,
            topic=unit_title,
        )
        return parse_numbered_list(result.text, min_chars=MIN_QUESTION_CHARS)

    # --- voting -----------------------------------------------------------------

    def would_vote(self, profile: PerspectiveProfile, question_text: str) -> bool:
        return self.rng.random() < vote_probability(profile, question_text)

    def heuristic_vote(
        self,
        profiles: Sequence[PerspectiveProfile],
        questions: Sequence[RankedQuestion],
        voted: set[tuple[str, int]] | None = None,
    ) -> None:
        """One stochastic voting round. Profiles never vote for their own question.

        ``voted`` holds (profile id, question index) pairs that already voted;
        pass the same set to later rounds so each profile votes at most once per
        question.
        """
        voted = set() if voted is None else voted
        for profile in profiles:
            for index, question in enumerate(questions):
                if question.source_profile_id == profile.id:
                    continue
                if (profile.id, index) in voted:
                    continue
                if self.would_vote(profile, question.text):
                    question.vote_count += 1
                    voted.add((profile.id, index))

    @staticmethod
    def _match_voter(
        voter: str, profiles: Sequence[PerspectiveProfile]
    ) -> PerspectiveProfile | None:
        name = voter.lower()
        for profile in profiles:
            if profile.name.lower() == name or profile.id == name:
                return profile
        for profile in profiles:
            if profile.name.lower() in name or name in profile.name.lower():
                return profile
        return None

    async def cross_vote(
        self,
        profiles: Sequence[PerspectiveProfile],
        questions: Sequence[RankedQuestion],
        unit_title: str = "",
    ) -> None:
        """Each profile votes for two questions other than its own.

        Invalid lines and choices are discarded; the round never aborts.
        """
        if not questions:
            return
        names = {profile.id: profile.name for profile in profiles}
        prompt = render_prompt(
            "cross_vote.j2",
            {
                "unit_title": unit_title,
                "questions": [q.text for q in questions],
                "owners": [names.get(q.source_profile_id, "Reader") for q in questions],
                "voters": [profile.name for profile in profiles],
            },
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="vote",
            temperature=settings.TEMPERATURE_VOTING,
        )

        voted: set[str] = set()
        discarded = 0
        for line in parse_vote_lines(result.text):
            profile = self._match_voter(line.voter, profiles)
            if profile is None or profile.id in voted:
                discarded += len(line.choices)
                continue
            voted.add(profile.id)
            chosen: set[int] = set()
            for choice in line.choices:
                index = choice - 1
                if (
                    len(chosen) >= VOTES_PER_PROFILE
                    or not 0 <= index < len(questions)
                    or index in chosen
                    or questions[index].source_profile_id == profile.id
                ):
                    discarded += 1
                    continue
                chosen.add(index)
                questions[index].vote_count += 1
        logger.debug(
            "Cross-vote tallied",
            voters=len(voted),
            discarded_votes=discarded,
            emergency=result.emergency,
        )

    # --- critique ---------------------------------------------------------------

    async def critique(
        self,
        unit_title: str,
        unit_text: str,
        topic_context: str = "",
        count: int | None = None,
    ) -> list[RankedQuestion]:
        """Top questions a panel of readers would ask about the unit."""
        panel = self.select_profiles(topic_context or unit_title, count or self.panel_size)
        questions: list[RankedQuestion] = []
        for profile in panel:
            found = await self.generate_questions(profile, unit_title, unit_text, count=1)
            if found:
                questions.append(RankedQuestion(text=found[0], source_profile_id=profile.id))

        if len(questions) < TOP_QUESTIONS:
            logger.warning(
                "Panel produced too few questions, retrying with simplified prompt",
                unit_title=unit_title,
                parsed=len(questions),
            )
            simplified = await self._simplified_questions(unit_title)
            if len(simplified) >= TOP_QUESTIONS:
                return [
                    RankedQuestion(text=text, source_profile_id=SIMPLIFIED_SOURCE_ID)
                    for text in simplified[:TOP_QUESTIONS]
                ]
            logger.warning("Using generic fallback questions", unit_title=unit_title)
            return [
                RankedQuestion(text=text, source_profile_id=FALLBACK_SOURCE_ID)
                for text in GENERIC_FALLBACK_QUESTIONS
            ]

        await self.cross_vote(panel, questions, unit_title)
        ranked = rank(questions)
        logger.info(
            "Panel critique complete",
            unit_title=unit_title,
            questions=len(questions),
            top_votes=[q.vote_count for q in ranked],
        )
        return ranked

    # --- calibration ------------------------------------------------------------

    async def calibrate_profiles(
        self,
        book_title: str,
        niche: str,
        audience: str = "",
        count: int = CALIBRATED_PROFILE_COUNT,
    ) -> list[PerspectiveProfile]:
        """Replace the pool with personas tailored to the book's niche.

        Results are cached per (niche, title) on this panel. When nothing can
        be parsed the niche default profiles are used instead.
        """
        key = (niche.strip().lower(), book_title.strip())
        if key in self._calibrated:
            self.profiles = list(self._calibrated[key])
            return list(self.profiles)

        prompt = render_prompt(
            "calibrated_personas.j2",
            {"count": count, "niche": niche, "book_title": book_title, "audience": audience},
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="persona",
            temperature=settings.TEMPERATURE_CRITIQUE,
            topic=niche,
        )
        profiles: list[PerspectiveProfile] = []
        seen: set[str] = set()
        for block in parse_persona_blocks(result.text):
            profile = profile_from_persona_block(block, niche)
            if profile.id not in seen:
                seen.add(profile.id)
                profiles.append(profile)

        if not profiles:
            logger.warning("Persona calibration failed, using niche defaults", niche=niche)
            profiles = niche_profiles(niche)
        else:
            logger.info("Calibrated reader personas", niche=niche, count=len(profiles))

        self._calibrated[key] = profiles
        self.profiles = list(profiles)
        return list(profiles)

