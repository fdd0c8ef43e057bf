"""
Core domain models for a tutoring session.

Design:
- MasteryStatus: tagged per-concept status, never a set of boolean flags
- Question / Statement: tagged oracle utterances; only questions may reach
  the learner outside the mastery-confirmation turn
- Verdict: the oracle's judgment of one answer
- Exchange: immutable question/answer/verdict record
- Session: aggregate owned by exactly one SessionController
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from teach.adaptive.concept_graph import ConceptGraph


class MasteryStatus(str, Enum):
    """Per-concept progression status."""

    UNVISITED = "unvisited"
    PROBING = "probing"
    REMEDIATING = "remediating"
    MASTERED = "mastered"
    STALLED = "stalled"  # Remediation budget exhausted; non-fatal

    @property
    def is_terminal(self) -> bool:
        return self in (MasteryStatus.MASTERED, MasteryStatus.STALLED)

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryStatus.UNVISITED: "dim",
            MasteryStatus.PROBING: "cyan",
            MasteryStatus.REMEDIATING: "yellow",
            MasteryStatus.MASTERED: "green",
            MasteryStatus.STALLED: "red",
        }[self]


class Correctness(str, Enum):
    """Correctness part of an oracle verdict."""

    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"


class Decision(str, Enum):
    """Progression decision produced by the validation gate."""

    CONTINUE = "continue"
    REMEDIATE = "remediate"
    ADVANCE = "advance"


@dataclass(frozen=True)
class Topic:
    """Subject of a session. Immutable once the session starts."""

    id: str
    label: str


@dataclass(frozen=True)
class Concept:
    """Smallest unit of understanding tracked by a session."""

    id: str
    topic_id: str
    label: str = ""
    prerequisites: frozenset[str] = frozenset()
    description: str = ""

    @property
    def display_name(self) -> str:
        return self.label or self.id.replace("_", " ")


@dataclass(frozen=True)
class Question:
    """A leading question or targeted probe. Safe to show the learner."""

    text: str
    kind: Literal["question"] = "question"


@dataclass(frozen=True)
class Statement:
    """A declarative reply. Only allowed when confirming mastery."""

    text: str
    kind: Literal["statement"] = "statement"


Utterance = Question | Statement


@dataclass(frozen=True)
class Verdict:
    """Oracle judgment of a learner answer."""

    correctness: Correctness
    applies_transfer: bool = False
    reply: Utterance | None = None

    @property
    def is_correct(self) -> bool:
        return self.correctness == Correctness.CORRECT

    @property
    def is_incorrect(self) -> bool:
        return self.correctness == Correctness.INCORRECT


@dataclass(frozen=True)
class Exchange:
    """
    One recorded step of the dialogue for a single concept.

    A question awaiting an answer has answer and verdict set to None.
    A completed exchange carries the question it answers, the learner's
    answer and the oracle's verdict. timestamp is when the question was
    asked, answered_at when the verdict was recorded.
    """

    concept_id: str
    question: Question
    answer: str | None = None
    verdict: Verdict | None = None
    tier: int = 0
    simplified: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    answered_at: datetime | None = None

    @property
    def answered(self) -> bool:
        return self.verdict is not None


@dataclass
class Session:
    """State of one learner working through one topic."""

    topic: Topic
    graph: ConceptGraph
    session_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    exchanges: list[Exchange] = field(default_factory=list)
    current_concept_id: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None
    remediation_cycles: dict[str, int] = field(default_factory=dict)
    tiers: dict[str, int] = field(default_factory=dict)

    @property
    def history(self) -> tuple[Exchange, ...]:
        """Read-only view of the transcript."""
        return tuple(self.exchanges)

    @property
    def is_closed(self) -> bool:
        return self.ended_at is not None

    @property
    def is_finished(self) -> bool:
        """True once no concept is left to probe."""
        return self.current_concept_id is None

    @property
    def current_concept(self) -> Concept | None:
        if self.current_concept_id is None:
            return None
        return self.graph.concept(self.current_concept_id)

    def exchanges_for(self, concept_id: str) -> list[Exchange]:
        return [e for e in self.exchanges if e.concept_id == concept_id]

    def pending_exchange(self) -> Exchange | None:
        """The unanswered question for the current concept, if any."""
        if not self.exchanges:
            return None
        last = self.exchanges[-1]
        if last.answered or last.concept_id != self.current_concept_id:
            return None
        return last

    def status_map(self) -> dict[str, MasteryStatus]:
        return self.graph.statuses()


@dataclass
class TurnOutcome:
    """Result of one SessionController.next_turn call."""

    exchange: Exchange
    status: MasteryStatus
    decision: Decision | None = None
    reply: Utterance | None = None
    advanced_to: str | None = None
    finished: bool = False

    @property
    def awaiting_answer(self) -> bool:
        return not self.exchange.answered


@dataclass(frozen=True)
class SessionSummary:
    """Final accounting returned by SessionController.end."""

    mastered: frozenset[str]
    unmastered: frozenset[str]
    total_exchanges: int
    stalled: frozenset[str] = frozenset()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "mastered": sorted(self.mastered),
            "unmastered": sorted(self.unmastered),
            "stalled": sorted(self.stalled),
            "total_exchanges": self.total_exchanges,
        }
