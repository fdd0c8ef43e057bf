"""
Session Controller: Orchestration layer for a Socratic tutoring session.

Drives the per-turn loop:
1. ConceptGraph picks the concept to probe
2. TutorOracle proposes a question (simplified while remediating)
3. The learner answers (external input)
4. TutorOracle judges the answer
5. ValidationGate turns the verdict history into CONTINUE / REMEDIATE / ADVANCE
6. The controller applies the resulting status change and moves the pointer

Guarantees:
- Exactly one exchange is appended per successful next_turn call
- Oracle failures and protocol violations leave the session untouched
- Nothing declarative reaches the learner except the mastery confirmation
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol, TypeVar

from loguru import logger

from teach.adaptive.concept_graph import ConceptGraph
from teach.adaptive.validation_gate import GatePolicy, ValidationGate, transition
from teach.core.errors import (
    NoPendingQuestionError,
    OracleError,
    OracleTimeoutError,
    ProtocolViolationError,
    SessionClosedError,
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
from teach.tutor.oracle import TutorOracle
from teach.tutor.transcript import Transcript, TranscriptRecord

T = TypeVar("T")


class ConceptSource(Protocol):
    """Collaborator that decomposes a topic into concepts."""

    def concepts_for(self, topic: Topic) -> Sequence[Concept]:
        ...


class SessionController:
    """
    Central state machine for one-learner, one-topic sessions.

    A controller can run many independent sessions, but each Session must only
    be driven by one caller at a time.
    """

    def __init__(
        self,
        curriculum: ConceptSource,
        oracle: TutorOracle,
        policy: GatePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.curriculum = curriculum
        self.oracle = oracle
        self.policy = policy or GatePolicy()
        self.gate = ValidationGate(self.policy)
        self._clock = clock or (lambda: datetime.now(UTC))

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start(self, topic: Topic) -> Session:
        """
        Start a session on a topic and select the first concept.

        Raises:
            InvalidTopicError: empty graph, unknown prerequisites or a cycle
        """
        graph = ConceptGraph.build(topic, self.curriculum.concepts_for(topic))
        session = Session(topic=topic, graph=graph, started_at=self._clock())
        self._select_next(session)
        logger.info(
            f"Session {session.session_id} started on '{topic.id}' "
            f"with {len(graph)} concepts, first: {session.current_concept_id}"
        )
        return session

    def next_turn(self, session: Session, learner_input: str | None = None) -> TurnOutcome:
        """
        Advance the dialogue by one exchange.

        Without learner input, asks the oracle for a question about the current
        concept. With input, has the oracle judge it against the pending
        question and applies the validation gate's decision.

        Raises:
            SessionClosedError: the session was ended or has nothing left to probe
            NoPendingQuestionError: input arrived before a question was asked
            ProtocolViolationError: the oracle tried to state an answer
            OracleTimeoutError: the oracle exceeded its budget (retryable)
        """
        self._ensure_open(session)
        concept = session.current_concept

        if learner_input is None:
            return self._ask(session, concept)
        return self._answer(session, concept, learner_input)

    def end(self, session: Session) -> SessionSummary:
        """Finalize a session. Safe to call at any time, any number of times."""
        if session.ended_at is None:
            session.ended_at = self._clock()
            logger.info(
                f"Session {session.session_id} ended after {len(session.exchanges)} exchanges"
            )

        graph = session.graph
        return SessionSummary(
            mastered=graph.mastered(),
            unmastered=graph.unmastered(),
            stalled=graph.stalled(),
            total_exchanges=len(session.exchanges),
        )

    # ==========================================================================
    # Turn handling
    # ==========================================================================

    def _ask(self, session: Session, concept: Concept) -> TurnOutcome:
        status = session.graph.status(concept.id)
        simplify = status == MasteryStatus.REMEDIATING

        utterance = self._call_oracle(
            "ask", lambda: self.oracle.ask(concept, session.history, simplify=simplify)
        )
        if isinstance(utterance, Statement):
            logger.error(f"Oracle stated an answer while probing '{concept.id}'")
            raise ProtocolViolationError(concept.id, utterance.text)
        if not isinstance(utterance, Question):
            raise OracleError(f"Oracle ask returned {type(utterance).__name__}, expected Question")

        exchange = Exchange(
            concept_id=concept.id,
            question=utterance,
            tier=session.tiers.get(concept.id, 0),
            simplified=simplify,
            timestamp=self._clock(),
        )
        session.exchanges.append(exchange)
        return TurnOutcome(exchange=exchange, status=status)

    def _answer(self, session: Session, concept: Concept, learner_input: str) -> TurnOutcome:
        answer = learner_input.strip()
        if not answer:
            raise ValueError("Learner input must not be empty")

        pending = session.pending_exchange()
        if pending is None:
            raise NoPendingQuestionError(
                f"No question is awaiting an answer for '{concept.id}'"
            )

        verdict = self._call_oracle(
            "judge", lambda: self.oracle.judge(concept, session.history, answer)
        )
        if not isinstance(verdict, Verdict):
            raise OracleError(f"Oracle judge returned {type(verdict).__name__}, expected Verdict")

        exchange = replace(pending, answer=answer, verdict=verdict, answered_at=self._clock())
        decision = self.gate.decide(session.exchanges_for(concept.id) + [exchange])

        if isinstance(verdict.reply, Statement) and decision != Decision.ADVANCE:
            logger.error(f"Oracle stated an answer for '{concept.id}' before mastery")
            raise ProtocolViolationError(concept.id, verdict.reply.text)

        # The answer completes the pending exchange in place
        session.exchanges[-1] = exchange
        return self._apply(session, concept.id, exchange, decision)

    def _apply(
        self,
        session: Session,
        concept_id: str,
        exchange: Exchange,
        decision: Decision,
    ) -> TurnOutcome:
        """Apply a gate decision to the concept and move the pointer if it resolved."""
        graph = session.graph
        new_status = transition(graph.status(concept_id), decision, exchange.verdict)

        if decision == Decision.REMEDIATE:
            cycles = session.remediation_cycles.get(concept_id, 0) + 1
            session.remediation_cycles[concept_id] = cycles
            if cycles > self.policy.max_remediation_cycles:
                logger.warning(
                    f"Concept '{concept_id}' stalled after "
                    f"{self.policy.max_remediation_cycles} remediation cycles"
                )
                new_status = MasteryStatus.STALLED
            else:
                session.tiers[concept_id] = session.tiers.get(concept_id, 0) - 1

        graph.set_status(concept_id, new_status)

        advanced_to = None
        if new_status.is_terminal:
            advanced_to = self._select_next(session)
            if session.is_finished:
                logger.info(f"Session {session.session_id}: no concepts left to probe")

        return TurnOutcome(
            exchange=exchange,
            status=new_status,
            decision=decision,
            reply=exchange.verdict.reply,
            advanced_to=advanced_to,
            finished=session.is_finished,
        )

    def _select_next(self, session: Session) -> str | None:
        concept = session.graph.next_unvisited()
        if concept is None:
            session.current_concept_id = None
            return None

        session.graph.set_status(concept.id, MasteryStatus.PROBING)
        session.tiers.setdefault(concept.id, 0)
        session.current_concept_id = concept.id
        return concept.id

    def _call_oracle(self, operation: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except OracleTimeoutError:
            logger.warning(f"Oracle {operation} timed out; session left unchanged")
            raise
        except TimeoutError as e:
            logger.warning(f"Oracle {operation} timed out; session left unchanged")
            raise OracleTimeoutError(f"Oracle {operation} timed out") from e

    def _ensure_open(self, session: Session) -> None:
        if session.is_closed:
            raise SessionClosedError(f"Session {session.session_id} has ended")
        if session.is_finished:
            raise SessionClosedError(
                f"Session {session.session_id} has no concepts left to probe"
            )

    # ==========================================================================
    # Transcript import
    # ==========================================================================

    def import_transcript(self, transcript: Transcript) -> Session:
        """
        Rebuild a session by replaying an exported transcript.

        No oracle calls are made; verdicts come from the records.

        Raises:
            InvalidTopicError: the transcript's topic no longer loads
            TranscriptError: records do not fit the session's progression
        """
        topic = Topic(id=transcript.topic_id, label=transcript.topic_label or transcript.topic_id)
        session = self.start(topic)
        session.session_id = transcript.session_id
        session.started_at = transcript.started_at

        for index, record in enumerate(transcript.records):
            if session.is_finished:
                raise TranscriptError(f"Record {index}: session already finished")
            if record.concept_id != session.current_concept_id:
                raise TranscriptError(
                    f"Record {index}: expected concept '{session.current_concept_id}', "
                    f"got '{record.concept_id}'"
                )
            if record.role == "tutor":
                self._replay_question(session, record)
            else:
                self._replay_answer(session, record, index)

        session.ended_at = transcript.ended_at
        logger.info(
            f"Imported session {session.session_id} with {len(session.exchanges)} exchanges"
        )
        return session

    def resume(self, transcript: Transcript) -> Session:
        """
        Rebuild a saved session and reopen it for further turns.

        Raises:
            InvalidTopicError: the transcript's topic no longer loads
            TranscriptError: records do not fit the session's progression
            SessionClosedError: the saved session has no concepts left to probe
        """
        session = self.import_transcript(transcript)
        if session.is_finished:
            raise SessionClosedError(
                f"Session {session.session_id} has no concepts left to probe"
            )
        session.ended_at = None
        logger.info(f"Resumed session {session.session_id} on '{session.current_concept_id}'")
        return session

    def _replay_question(self, session: Session, record: TranscriptRecord) -> None:
        concept_id = record.concept_id
        session.exchanges.append(Exchange(
            concept_id=concept_id,
            question=Question(record.text),
            tier=session.tiers.get(concept_id, 0),
            simplified=session.graph.status(concept_id) == MasteryStatus.REMEDIATING,
            timestamp=record.timestamp,
        ))

    def _replay_answer(self, session: Session, record: TranscriptRecord, index: int) -> None:
        pending = session.pending_exchange()
        if pending is None:
            raise TranscriptError(f"Record {index}: answer without a preceding question")
        if record.verdict is None:
            raise TranscriptError(f"Record {index}: learner record has no verdict")

        reply = None
        if record.feedback is not None:
            reply = Statement(record.feedback) if record.feedback_kind == "statement" else Question(record.feedback)

        exchange = replace(
            pending,
            answer=record.text,
            verdict=Verdict(
                correctness=Correctness(record.verdict),
                applies_transfer=bool(record.applies_transfer),
                reply=reply,
            ),
            answered_at=record.timestamp,
        )
        decision = self.gate.decide(session.exchanges_for(record.concept_id) + [exchange])
        if isinstance(reply, Statement) and decision != Decision.ADVANCE:
            raise TranscriptError(
                f"Record {index}: statement reply for '{record.concept_id}' before mastery"
            )
        session.exchanges[-1] = exchange
        self._apply(session, record.concept_id, exchange, decision)
