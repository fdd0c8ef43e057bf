"""
Core Module - Shared domain models and the error taxonomy.

Components:
- models: Topic, Concept, Exchange, Verdict, Question/Statement, Session
- errors: Distinct exception classes so hosts can decide per kind whether
  to retry, abort or alert

Design Principle:
The adaptive and tutor packages import from teach.core rather than
redefining shared concepts.
"""

from teach.core.errors import (
    InvalidTopicError,
    InvalidTransitionError,
    NoEligibleConceptError,
    NoPendingQuestionError,
    OracleError,
    OracleTimeoutError,
    ProtocolViolationError,
    SessionClosedError,
    TeachError,
    TranscriptError,
)
from teach.core.models import (
    Concept,
    Correctness,
    Decision,
    Exchange,
    MasteryStatus,
    Question,
    Session,
    SessionSummary,
    Statement,
    Topic,
    TurnOutcome,
    Verdict,
)

__all__ = [
    # Models
    "Concept",
    "Correctness",
    "Decision",
    "Exchange",
    "MasteryStatus",
    "Question",
    "Session",
    "SessionSummary",
    "Statement",
    "Topic",
    "TurnOutcome",
    "Verdict",
    # Errors
    "TeachError",
    "InvalidTopicError",
    "InvalidTransitionError",
    "NoEligibleConceptError",
    "NoPendingQuestionError",
    "OracleError",
    "OracleTimeoutError",
    "ProtocolViolationError",
    "SessionClosedError",
    "TranscriptError",
]
