"""
Session transcript: the only serializable artifact of a session.

A transcript is an ordered list of records, one or two per exchange:
- every question exports as a tutor record
- an answered question is followed by a learner record carrying the verdict

Re-importing a transcript (SessionController.import_transcript) replays these
records and reproduces the same concept statuses and current-concept pointer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from teach.core.errors import TranscriptError
from teach.core.models import Correctness, Exchange, Session


class TranscriptRecord(BaseModel):
    """One line of the transcript."""

    concept_id: str
    role: Literal["tutor", "learner"]
    text: str
    verdict: Correctness | None = None
    applies_transfer: bool | None = None
    feedback: str | None = None
    feedback_kind: Literal["question", "statement"] | None = None
    timestamp: datetime

    @classmethod
    def from_exchange(cls, exchange: Exchange) -> list[TranscriptRecord]:
        """Tutor record for the question, plus a learner record once answered."""
        records = [
            cls(
                concept_id=exchange.concept_id,
                role="tutor",
                text=exchange.question.text,
                timestamp=exchange.timestamp,
            )
        ]
        if not exchange.answered:
            return records

        reply = exchange.verdict.reply
        records.append(cls(
            concept_id=exchange.concept_id,
            role="learner",
            text=exchange.answer or "",
            verdict=exchange.verdict.correctness,
            applies_transfer=exchange.verdict.applies_transfer,
            feedback=reply.text if reply is not None else None,
            feedback_kind=reply.kind if reply is not None else None,
            timestamp=exchange.answered_at or exchange.timestamp,
        ))
        return records


class Transcript(BaseModel):
    """Exported session: topic header plus ordered records."""

    session_id: str
    topic_id: str
    topic_label: str = ""
    started_at: datetime
    ended_at: datetime | None = None
    records: list[TranscriptRecord] = Field(default_factory=list)

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Transcript:
        """
        Parse a transcript.

        Raises:
            TranscriptError: invalid JSON or missing fields
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise TranscriptError(f"Malformed transcript: {e}") from e


def export_transcript(session: Session) -> Transcript:
    """Convert a session into its transcript."""
    return Transcript(
        session_id=session.session_id,
        topic_id=session.topic.id,
        topic_label=session.topic.label,
        started_at=session.started_at,
        ended_at=session.ended_at,
        records=[r for e in session.exchanges for r in TranscriptRecord.from_exchange(e)],
    )
