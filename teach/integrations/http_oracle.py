"""
HTTP tutor oracle.

Delegates question generation and answer judgment to a remote reasoning
service. The service exposes two endpoints:

    POST {base}/ask    {"concept": {...}, "history": [...], "simplify": bool}
                    -> {"kind": "question" | "statement", "text": str}
    POST {base}/judge  {"concept": {...}, "history": [...], "answer": str}
                    -> {"verdict": "correct" | "partial" | "incorrect",
                        "applies_transfer": bool,
                        "reply": {"kind": ..., "text": ...} | null}

The client timeout is the wall-clock budget for one call; exceeding it raises
OracleTimeoutError so the host can retry the turn.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from teach.core.errors import OracleError, OracleTimeoutError
from teach.core.models import (
    Concept,
    Correctness,
    Exchange,
    Question,
    Statement,
    Verdict,
)
from teach.tutor.transcript import TranscriptRecord


class HttpOracle:
    """TutorOracle backed by a remote HTTP service."""

    def __init__(
        self,
        api_url: str,
        timeout_ms: int = 30000,
        retry_attempts: int = 3,
        backoff_seconds: float = 1.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize the oracle client.

        Args:
            api_url: Base URL for the oracle service
            timeout_ms: Wall-clock budget per call in milliseconds
            retry_attempts: Attempts on 5xx and transport errors
            backoff_seconds: Base delay for exponential backoff between attempts
            client: Preconfigured httpx client (tests inject a MockTransport)
        """
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_ms / 1000.0
        self.retry_attempts = retry_attempts
        self.backoff_seconds = backoff_seconds
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def ask(
        self,
        concept: Concept,
        history: Sequence[Exchange],
        simplify: bool = False,
    ) -> Question | Statement:
        data = self._post("ask", {
            "concept": _concept_payload(concept),
            "history": _history_payload(history),
            "simplify": simplify,
        })
        return _parse_utterance(data)

    def judge(
        self,
        concept: Concept,
        history: Sequence[Exchange],
        answer: str,
    ) -> Verdict:
        data = self._post("judge", {
            "concept": _concept_payload(concept),
            "history": _history_payload(history),
            "answer": answer,
        })
        try:
            correctness = Correctness(data["verdict"])
        except (KeyError, ValueError, TypeError) as e:
            raise OracleError(f"Malformed judge payload: {data!r}") from e

        reply = data.get("reply")
        return Verdict(
            correctness=correctness,
            applies_transfer=bool(data.get("applies_transfer", False)),
            reply=_parse_utterance(reply) if reply else None,
        )

    def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST with retry on transient failures.

        Raises:
            OracleTimeoutError: the call exceeded its budget
            OracleError: client errors, exhausted retries, or a non-JSON body
        """
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = self.client.post(f"{self.api_url}/{endpoint}", json=payload)
                response.raise_for_status()
                data = response.json()
                if not isinstance(data, dict):
                    raise OracleError(f"Oracle {endpoint} returned {type(data).__name__}, expected object")
                return data

            except httpx.TimeoutException as e:
                raise OracleTimeoutError(
                    f"Oracle {endpoint} exceeded {self.timeout_seconds:.1f}s"
                ) from e

            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    logger.error(f"Oracle client error: {e.response.status_code}")
                    raise OracleError(
                        f"Oracle {endpoint} rejected request: {e.response.status_code}"
                    ) from e
                last_error = e
                logger.warning(
                    f"Oracle server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Oracle request error on attempt {attempt + 1}/{self.retry_attempts}: {e}"
                )

            except ValueError as e:
                raise OracleError(f"Oracle {endpoint} returned invalid JSON") from e

            if attempt < self.retry_attempts - 1:
                time.sleep(self.backoff_seconds * 2 ** attempt)

        raise OracleError(
            f"Oracle {endpoint} failed after {self.retry_attempts} attempts: {last_error}"
        )


def _concept_payload(concept: Concept) -> dict[str, Any]:
    return {
        "id": concept.id,
        "topic_id": concept.topic_id,
        "label": concept.label,
        "description": concept.description,
        "prerequisites": sorted(concept.prerequisites),
    }


def _history_payload(history: Sequence[Exchange]) -> list[dict[str, Any]]:
    return [
        record.model_dump(mode="json")
        for exchange in history
        for record in TranscriptRecord.from_exchange(exchange)
    ]


def _parse_utterance(data: Any) -> Question | Statement:
    if not isinstance(data, dict) or not isinstance(data.get("text"), str):
        raise OracleError(f"Malformed utterance payload: {data!r}")
    kind = data.get("kind", "question")
    if kind == "question":
        return Question(data["text"])
    if kind == "statement":
        return Statement(data["text"])
    raise OracleError(f"Unknown utterance kind: {kind!r}")
