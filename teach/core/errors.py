"""
Error taxonomy for tutoring sessions.

Every failure kind has its own class so a host can decide per kind whether
to retry, abort or alert. Nothing here is ever collapsed into a generic error.
"""

from __future__ import annotations


class TeachError(Exception):
    """Base class for all session orchestration errors."""
    pass


class InvalidTopicError(TeachError):
    """Raised when a topic's concept graph is empty, malformed or cyclic."""

    def __init__(self, topic_id: str, reason: str):
        self.topic_id = topic_id
        self.reason = reason
        super().__init__(f"Invalid topic '{topic_id}': {reason}")


class ProtocolViolationError(TeachError):
    """Raised when the oracle tries to surface a direct answer to the learner."""

    def __init__(self, concept_id: str, text: str):
        self.concept_id = concept_id
        self.text = text
        super().__init__(
            f"Oracle returned a statement for concept '{concept_id}' "
            f"outside the mastery-confirmation turn: {text[:80]!r}"
        )


class OracleError(TeachError):
    """Raised when the oracle cannot be reached or returns a malformed payload."""
    pass


class OracleTimeoutError(OracleError):
    """
    Raised when an oracle call exceeds its wall-clock budget.

    Retryable: the session is left exactly as it was before the call.
    """

    retryable = True


class NoEligibleConceptError(TeachError):
    """Raised when unvisited concepts remain but none can ever become eligible."""
    pass


class InvalidTransitionError(TeachError):
    """Raised when a concept status change would break a graph invariant."""
    pass


class SessionClosedError(TeachError):
    """Raised when a turn is requested on an ended or finished session."""
    pass


class NoPendingQuestionError(TeachError):
    """Raised when learner input arrives before any question was asked."""
    pass


class TranscriptError(TeachError):
    """Raised when a transcript cannot be parsed or replayed."""
    pass
