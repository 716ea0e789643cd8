# agents/discussion_agent.py
"""Standalone reader-discussion simulation: questions, voting rounds and debates."""

from __future__ import annotations

import structlog

from agents.perspective_panel_agent import PerspectivePanel, rank
from config import settings
from models import (
    AutoGenerationConfig,
    Debate,
    DebateAnswer,
    DiscussionTranscript,
    PerspectiveProfile,
    RankedQuestion,
)
from prompt_renderer import render_prompt

logger = structlog.get_logger(__name__)

MIN_DEBATERS = 2
MAX_DEBATERS = 3
DEBATED_QUESTIONS = 3


def _debate_context(debate: Debate, names: dict[str, str]) -> str:
    return "\n\n".join(
        f"{names.get(answer.profile_id, answer.profile_id)}: {answer.text}"
        for answer in debate.answers
    )


class DiscussionSimulator:
    def __init__(
        self,
        panel: PerspectivePanel,
        config: AutoGenerationConfig | None = None,
        model_name: str = settings.CRITIQUE_MODEL,
    ) -> None:
        self.panel = panel
        self.config = config or AutoGenerationConfig()
        self.model_name = model_name
        logger.info("DiscussionSimulator initialized", **self.config.model_dump())

    def _pick_debaters(
        self, question: RankedQuestion, participants: list[PerspectiveProfile]
    ) -> list[PerspectiveProfile]:
        interested = [p for p in participants if self.panel.would_vote(p, question.text)]
        debaters = interested[:MAX_DEBATERS]
        for profile in participants:
            if len(debaters) >= MIN_DEBATERS:
                break
            if profile not in debaters:
                debaters.append(profile)
        return debaters

    async def _speak(
        self, template: str, profile: PerspectiveProfile, context: dict
    ) -> str:
        prompt = render_prompt(template, {"profile": profile, **context})
        result = await self.panel.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="answer",
            temperature=settings.TEMPERATURE_CRITIQUE,
            topic=context.get("unit_title"),
        )
        return result.text.strip()

    async def _debate(
        self,
        question: RankedQuestion,
        debaters: list[PerspectiveProfile],
        unit_title: str,
        names: dict[str, str],
    ) -> Debate:
        debate = Debate(question=question)
        base = {"unit_title": unit_title, "question": question.text}
        for profile in debaters:
            text = await self._speak("debate_answer.j2", profile, base)
            debate.answers.append(DebateAnswer(profile_id=profile.id, text=text, round=0))

        for round_number in range(1, self.config.debate_depth):
            for profile in debaters:
                text = await self._speak(
                    "debate_reply.j2",
                    profile,
                    {**base, "debate_context": _debate_context(debate, names)},
                )
                debate.answers.append(
                    DebateAnswer(profile_id=profile.id, text=text, round=round_number)
                )
        return debate

    async def simulate(self, unit_title: str, unit_text: str) -> DiscussionTranscript:
        """Run one full discussion of the unit and return its transcript."""
        participants = self.panel.select_profiles(
            unit_title, self.config.persona_count
        )
        names = {p.id: p.name for p in participants}
        transcript = DiscussionTranscript(
            unit_title=unit_title, participants=[p.id for p in participants]
        )

        questions: list[RankedQuestion] = []
        for profile in participants:
            texts = await self.panel.generate_questions(
                profile,
                unit_title,
                unit_text,
                count=self.config.questions_per_persona,
                template="reader_questions.j2",
            )
            if not texts:
                logger.warning("Reader produced no questions", profile=profile.id)
                continue
            questions.extend(
                RankedQuestion(text=text, source_profile_id=profile.id) for text in texts
            )

        voted: set[tuple[str, int]] = set()
        for _ in range(self.config.voting_rounds):
            self.panel.heuristic_vote(participants, questions, voted)
        transcript.questions = rank(questions, len(questions))

        if self.config.debate_depth > 0:
            for question in rank(questions, DEBATED_QUESTIONS):
                debaters = self._pick_debaters(question, participants)
                if not debaters:
                    continue
                transcript.debates.append(
                    await self._debate(question, debaters, unit_title, names)
                )

        logger.info(
            "Discussion simulated",
            unit_title=unit_title,
            participants=len(participants),
            questions=len(questions),
            debates=len(transcript.debates),
        )
        return transcript
