"""
Tutor Oracle: the reasoning capability behind a session.

The SessionController never reasons about content itself. It sequences calls
to anything implementing TutorOracle:

- ask:   propose a leading question for a concept (simplified on request)
- judge: classify a learner answer as correct / partial / incorrect and
         flag whether it applied the concept to a transfer example

ScriptedOracle is the offline implementation: probe questions come from the
curriculum, answers are judged by key-term coverage and confusion signals.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from loguru import logger

from teach.content.loader import ConceptDefinition, Curriculum
from teach.core.models import (
    Concept,
    Correctness,
    Exchange,
    Question,
    Statement,
    Verdict,
)


@runtime_checkable
class TutorOracle(Protocol):
    """Capability interface for question generation and answer judgment."""

    def ask(
        self,
        concept: Concept,
        history: Sequence[Exchange],
        simplify: bool = False,
    ) -> Question | Statement:
        ...

    def judge(
        self,
        concept: Concept,
        history: Sequence[Exchange],
        answer: str,
    ) -> Verdict:
        ...


class ScriptedOracle:
    """
    Offline oracle driven by curriculum probe material.

    Question selection:
    - simplify requested -> next simpler probe
    - last answer correct -> next transfer probe (a case not yet discussed)
    - otherwise -> next regular probe
    Generic Socratic fallbacks are used when a list runs out.
    """

    # ==========================================================================
    # COGNITIVE SIGNAL PATTERNS (re.VERBOSE for readability)
    # ==========================================================================

    CONFUSION_PATTERNS = [
        re.compile(r"""
            i \s+ don'?t \s+ (?: know | understand )
        """, re.VERBOSE | re.IGNORECASE),

        re.compile(r"""
            i'?m \s+ (?: confused | lost | not \s+ sure )
        """, re.VERBOSE | re.IGNORECASE),

        re.compile(r"""
            no \s+ idea
        """, re.VERBOSE | re.IGNORECASE),

        re.compile(r"""
            ^ \s* (?: idk | \? + ) \s* $
        """, re.VERBOSE | re.IGNORECASE),
    ]

    # Used once the curriculum's transfer probes are exhausted; numbered so no text repeats
    TRANSFER_FALLBACK = "Can you apply {name} to example #{number}, one we haven't discussed yet?"

    WORD_PATTERN = re.compile(r"\b\w+\b")

    # Coverage of key terms needed for each verdict
    CORRECT_COVERAGE = 0.8
    PARTIAL_COVERAGE = 0.4

    def __init__(self, curriculum: Curriculum, mastery_streak: int = 2):
        self.curriculum = curriculum
        self.mastery_streak = mastery_streak

    # ==========================================================================
    # ask
    # ==========================================================================

    def ask(
        self,
        concept: Concept,
        history: Sequence[Exchange],
        simplify: bool = False,
    ) -> Question:
        definition = self._definition(concept)
        mine = [e for e in history if e.concept_id == concept.id]
        asked = {e.question.text for e in mine}
        answered = [e for e in mine if e.answered]
        name = concept.display_name

        if simplify:
            text = self._pick(definition.simpler_probes, asked) or (
                f"Let's take a smaller step. What is the simplest possible example of {name}?"
            )
        elif answered and answered[-1].verdict.is_correct:
            text = self._fresh_transfer_probe(definition, name, asked)
        else:
            text = self._pick(definition.probes, asked) or self._fallback_probe(name, len(answered))

        logger.debug(f"Scripted ask for '{concept.id}' (simplify={simplify}): {text}")
        return Question(text)

    def _pick(self, options: list[str], asked: set[str]) -> str | None:
        """First option not yet asked, else cycle back to the first one."""
        for option in options:
            if option not in asked:
                return option
        return options[0] if options else None

    def _fresh_transfer_probe(self, definition: ConceptDefinition, name: str, asked: set[str]) -> str:
        """Transfer probe never asked before for this concept; numbered fallbacks once the list runs out."""
        for option in definition.transfer_probes:
            if option not in asked:
                return option
        number = 1
        while self.TRANSFER_FALLBACK.format(name=name, number=number) in asked:
            number += 1
        return self.TRANSFER_FALLBACK.format(name=name, number=number)

    def _is_transfer_probe(self, text: str, definition: ConceptDefinition, name: str) -> bool:
        prefix = self.TRANSFER_FALLBACK.split("{number}")[0].format(name=name)
        return text in definition.transfer_probes or text.startswith(prefix)

    def _fallback_probe(self, name: str, attempts: int) -> str:
        openers = [
            f"What do you already know about {name}?",
            f"Can you describe {name} in your own words?",
            f"What would go wrong if {name} were missing?",
        ]
        return openers[attempts % len(openers)]

    # ==========================================================================
    # judge
    # ==========================================================================

    def judge(
        self,
        concept: Concept,
        history: Sequence[Exchange],
        answer: str,
    ) -> Verdict:
        definition = self._definition(concept)
        mine = [e for e in history if e.concept_id == concept.id]
        pending = next((e for e in reversed(mine) if not e.answered), None)
        # A transfer example only counts the first time it is presented
        earlier = {e.question.text for e in mine if e is not pending}
        is_transfer = (
            pending is not None
            and pending.question.text not in earlier
            and self._is_transfer_probe(pending.question.text, definition, concept.display_name)
        )

        correctness = self._grade(answer, definition)
        applies_transfer = is_transfer and correctness == Correctness.CORRECT

        previous = [e for e in mine if e.answered][-(self.mastery_streak - 1):]
        confirms_mastery = (
            applies_transfer
            and len(previous) == self.mastery_streak - 1
            and all(e.verdict.is_correct for e in previous)
        )

        reply = self._reply(concept.display_name, correctness, applies_transfer, confirms_mastery)
        logger.debug(f"Scripted judge for '{concept.id}': {correctness.value} (transfer={applies_transfer})")
        return Verdict(correctness=correctness, applies_transfer=applies_transfer, reply=reply)

    def _grade(self, answer: str, definition: ConceptDefinition) -> Correctness:
        for pattern in self.CONFUSION_PATTERNS:
            if pattern.search(answer):
                return Correctness.INCORRECT

        answer_lower = answer.lower()
        key_terms = [t.lower() for t in definition.key_terms]
        if not key_terms:
            # Fall back to significant words of the description
            key_terms = [
                w for w in self.WORD_PATTERN.findall(definition.description.lower()) if len(w) > 3
            ]
        if not key_terms:
            substantive = [w for w in self.WORD_PATTERN.findall(answer_lower) if len(w) > 3]
            return Correctness.CORRECT if len(substantive) >= 3 else Correctness.PARTIAL

        coverage = sum(1 for term in key_terms if term in answer_lower) / len(key_terms)
        if coverage >= self.CORRECT_COVERAGE:
            return Correctness.CORRECT
        if coverage >= self.PARTIAL_COVERAGE:
            return Correctness.PARTIAL
        return Correctness.INCORRECT

    def _reply(
        self,
        name: str,
        correctness: Correctness,
        applies_transfer: bool,
        confirms_mastery: bool,
    ) -> Question | Statement:
        if confirms_mastery:
            return Statement(f"Exactly. You applied {name} to a new case on your own.")
        if correctness == Correctness.CORRECT:
            if applies_transfer:
                return Question("Good. Could you explain why that works here too?")
            return Question("Good. Where else do you think this idea shows up?")
        if correctness == Correctness.PARTIAL:
            return Question("You're close. Which part of your answer are you least sure about?")
        return Question("What makes you think that? Could you walk me through your reasoning?")

    def _definition(self, concept: Concept) -> ConceptDefinition:
        definition = self.curriculum.definition(concept.topic_id, concept.id)
        if definition is None:
            return ConceptDefinition(id=concept.id, label=concept.label, description=concept.description)
        return definition
