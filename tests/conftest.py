"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from collections import deque
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from teach.core.models import Concept, Question, Topic  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (sqlite, multi-component)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(autouse=True)
def quiet_logs():
    """Keep loguru output out of test reports."""
    logger.remove()
    yield


# ============================================================================
# Stubs
# ============================================================================


class StubCurriculum:
    """Curriculum collaborator returning fixed concepts per topic id."""

    def __init__(self, concepts_by_topic: dict[str, list[Concept]]):
        self.concepts_by_topic = concepts_by_topic

    def concepts_for(self, topic: Topic) -> list[Concept]:
        return list(self.concepts_by_topic.get(topic.id, []))


class StubOracle:
    """
    Oracle that asks numbered questions and replays queued verdicts.

    Every call is logged so tests can assert on simplify flags and call counts.
    """

    def __init__(self, verdicts=None):
        self.verdicts = deque(verdicts or [])
        self.ask_calls: list[dict] = []
        self.judge_calls: list[dict] = []
        self.next_utterance = None
        self.ask_error: Exception | None = None
        self.judge_error: Exception | None = None

    def queue(self, *verdicts) -> None:
        self.verdicts.extend(verdicts)

    def ask(self, concept, history, simplify=False):
        if self.ask_error is not None:
            raise self.ask_error
        self.ask_calls.append({"concept": concept.id, "simplify": simplify, "history": len(history)})
        if self.next_utterance is not None:
            utterance, self.next_utterance = self.next_utterance, None
            return utterance
        return Question(f"{concept.id} question {len(self.ask_calls)}?")

    def judge(self, concept, history, answer):
        if self.judge_error is not None:
            raise self.judge_error
        self.judge_calls.append({"concept": concept.id, "answer": answer})
        return self.verdicts.popleft()


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self):
        self.now = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def recursion_topic():
    return Topic(id="recursion", label="Recursion")


@pytest.fixture
def recursion_concepts():
    """Recursion concepts with base_case declared last on purpose."""
    return [
        Concept(id="self_reference", topic_id="recursion", prerequisites=frozenset({"base_case"})),
        Concept(id="stack_growth", topic_id="recursion", prerequisites=frozenset({"base_case"})),
        Concept(id="base_case", topic_id="recursion"),
    ]


@pytest.fixture
def curriculum(recursion_concepts):
    return StubCurriculum({"recursion": recursion_concepts})


@pytest.fixture
def oracle():
    return StubOracle()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def controller(curriculum, oracle, clock):
    from teach.tutor.controller import SessionController
    return SessionController(curriculum, oracle, clock=clock)


@pytest.fixture
def curriculum_file(project_root):
    return project_root / "curricula" / "recursion.yaml"


@pytest.fixture
def make_controller(clock):
    """Factory: controller plus stub oracle for an arbitrary concept list."""
    from teach.tutor.controller import SessionController

    def _make(concepts, policy=None, topic_id="recursion"):
        stub = StubOracle()
        ctrl = SessionController(StubCurriculum({topic_id: concepts}), stub, policy=policy, clock=clock)
        return ctrl, stub

    return _make
