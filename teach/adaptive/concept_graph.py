"""
Concept Graph.

Holds a topic's decomposition into prerequisite-ordered concepts and the
mastery status of each concept for one session.

Determines concept ordering based on:
- Prerequisite graph (validated as a DAG at load time)
- Mastery state (only concepts whose prerequisites are mastered unlock)
- Fewest unmet dependents, then declaration order
"""
from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Sequence

from loguru import logger

from teach.core.errors import (
    InvalidTopicError,
    InvalidTransitionError,
    NoEligibleConceptError,
)
from teach.core.models import Concept, MasteryStatus, Topic


class ConceptGraph:
    """
    Prerequisite graph plus per-concept status for one session.

    Statuses are only changed through set_status, which refuses to move a
    concept into PROBING while any of its prerequisites is not MASTERED.
    """

    def __init__(self, topic: Topic, concepts: Sequence[Concept]):
        self.topic = topic
        self._concepts: dict[str, Concept] = {c.id: c for c in concepts}
        self._order: list[str] = [c.id for c in concepts]
        self._status: dict[str, MasteryStatus] = {
            c.id: MasteryStatus.UNVISITED for c in concepts
        }
        self._dependents: dict[str, list[str]] = defaultdict(list)
        for concept in concepts:
            for prereq in concept.prerequisites:
                self._dependents[prereq].append(concept.id)

    @classmethod
    def build(cls, topic: Topic, concepts: Iterable[Concept]) -> ConceptGraph:
        """
        Validate concept definitions and build a graph.

        Raises:
            InvalidTopicError: empty graph, duplicate ids, unknown
                prerequisites, or a prerequisite cycle
        """
        concepts = list(concepts)
        if not concepts:
            raise InvalidTopicError(topic.id, "no concepts defined")

        seen: set[str] = set()
        for concept in concepts:
            if concept.id in seen:
                raise InvalidTopicError(topic.id, f"duplicate concept '{concept.id}'")
            seen.add(concept.id)

        for concept in concepts:
            if concept.id in concept.prerequisites:
                raise InvalidTopicError(topic.id, f"'{concept.id}' requires itself")
            unknown = sorted(concept.prerequisites - seen)
            if unknown:
                raise InvalidTopicError(
                    topic.id,
                    f"'{concept.id}' requires unknown concept(s): {', '.join(unknown)}",
                )

        graph = cls(topic, concepts)
        order = graph.topological_order()
        if len(order) != len(concepts):
            stuck = sorted(set(graph._order) - set(order))
            raise InvalidTopicError(
                topic.id, f"prerequisite cycle among: {', '.join(stuck)}"
            )

        logger.debug(f"Loaded topic '{topic.id}' with {len(concepts)} concepts")
        return graph

    # ==========================================================================
    # Lookup
    # ==========================================================================

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, concept_id: object) -> bool:
        return concept_id in self._concepts

    def concept(self, concept_id: str) -> Concept:
        return self._concepts[concept_id]

    def concepts(self) -> list[Concept]:
        """Concepts in declaration order."""
        return [self._concepts[cid] for cid in self._order]

    def dependents(self, concept_id: str) -> list[str]:
        return list(self._dependents.get(concept_id, []))

    def topological_order(self) -> list[str]:
        """
        Kahn's algorithm, stable on declaration order.

        Returns fewer ids than the graph holds when a cycle exists.
        """
        in_degree = {cid: len(self._concepts[cid].prerequisites) for cid in self._order}
        position = {cid: i for i, cid in enumerate(self._order)}
        ready = deque(cid for cid in self._order if in_degree[cid] == 0)
        order: list[str] = []

        while ready:
            cid = ready.popleft()
            order.append(cid)
            released = []
            for dependent in self._dependents.get(cid, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    released.append(dependent)
            ready.extend(sorted(released, key=position.__getitem__))

        return order

    # ==========================================================================
    # Status
    # ==========================================================================

    def status(self, concept_id: str) -> MasteryStatus:
        return self._status[concept_id]

    def statuses(self) -> dict[str, MasteryStatus]:
        return dict(self._status)

    def prerequisites_mastered(self, concept_id: str) -> bool:
        return all(
            self._status[p] == MasteryStatus.MASTERED
            for p in self._concepts[concept_id].prerequisites
        )

    def set_status(self, concept_id: str, status: MasteryStatus) -> None:
        """
        Change a concept's status.

        Raises:
            InvalidTransitionError: unknown concept, reopening a terminal
                status, or probing before prerequisites are mastered
        """
        if concept_id not in self._concepts:
            raise InvalidTransitionError(f"Unknown concept '{concept_id}'")

        current = self._status[concept_id]
        if current == status:
            return
        if current.is_terminal:
            raise InvalidTransitionError(
                f"'{concept_id}' is already {current.value}, cannot become {status.value}"
            )
        if status == MasteryStatus.UNVISITED:
            raise InvalidTransitionError(f"'{concept_id}' cannot return to unvisited")
        if status == MasteryStatus.PROBING and not self.prerequisites_mastered(concept_id):
            missing = sorted(
                p for p in self._concepts[concept_id].prerequisites
                if self._status[p] != MasteryStatus.MASTERED
            )
            raise InvalidTransitionError(
                f"'{concept_id}' cannot be probed before mastering: {', '.join(missing)}"
            )

        self._status[concept_id] = status
        logger.info(f"Concept '{concept_id}': {current.value} -> {status.value}")

    def mastered(self) -> frozenset[str]:
        return frozenset(
            cid for cid, s in self._status.items() if s == MasteryStatus.MASTERED
        )

    def unmastered(self) -> frozenset[str]:
        return frozenset(
            cid for cid, s in self._status.items() if s != MasteryStatus.MASTERED
        )

    def stalled(self) -> frozenset[str]:
        return frozenset(
            cid for cid, s in self._status.items() if s == MasteryStatus.STALLED
        )

    def is_complete(self) -> bool:
        return all(s == MasteryStatus.MASTERED for s in self._status.values())

    # ==========================================================================
    # Sequencing
    # ==========================================================================

    def eligible(self) -> list[Concept]:
        """Unvisited concepts whose prerequisites are all mastered."""
        return [
            self._concepts[cid]
            for cid in self._order
            if self._status[cid] == MasteryStatus.UNVISITED
            and self.prerequisites_mastered(cid)
        ]

    def unmet_dependents(self, concept_id: str) -> int:
        return sum(
            1 for d in self._dependents.get(concept_id, [])
            if self._status[d] != MasteryStatus.MASTERED
        )

    def next_unvisited(self) -> Concept | None:
        """
        Pick the next concept to probe.

        Among eligible concepts, the one with the fewest unmet dependents wins;
        ties go to declaration order.

        Raises:
            NoEligibleConceptError: unvisited concepts remain but nothing can
                unlock them (only reachable if a cycle slipped past build)
        """
        candidates = self.eligible()
        if candidates:
            position = {cid: i for i, cid in enumerate(self._order)}
            return min(
                candidates,
                key=lambda c: (self.unmet_dependents(c.id), position[c.id]),
            )

        unvisited = [
            cid for cid in self._order if self._status[cid] == MasteryStatus.UNVISITED
        ]
        if not unvisited:
            return None

        blocked_by_progress = any(
            s in (MasteryStatus.STALLED, MasteryStatus.PROBING, MasteryStatus.REMEDIATING)
            for s in self._status.values()
        )
        if blocked_by_progress:
            return None

        raise NoEligibleConceptError(
            f"Topic '{self.topic.id}': no eligible concept among {', '.join(unvisited)}"
        )

    def snapshot(self) -> ConceptGraph:
        """Independent copy with the same definitions and statuses."""
        copy = ConceptGraph(self.topic, self.concepts())
        copy._status = dict(self._status)
        return copy
