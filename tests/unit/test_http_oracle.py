"""
Unit tests for HttpOracle using httpx.MockTransport.
"""

import json

import httpx
import pytest

from teach.core.errors import OracleError, OracleTimeoutError
from teach.core.models import Concept, Correctness, Exchange, Question, Statement, Verdict
from teach.integrations.http_oracle import HttpOracle

CONCEPT = Concept(id="base_case", topic_id="recursion", label="Base case")


def make_oracle(handler, retry_attempts=3):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpOracle(
        "http://oracle.test/",
        retry_attempts=retry_attempts,
        backoff_seconds=0,
        client=client,
    )


class TestAsk:
    def test_posts_concept_history_and_simplify(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"kind": "question", "text": "When does it stop?"})

        history = [Exchange(concept_id="base_case", question=Question("Earlier?"))]
        question = make_oracle(handler).ask(CONCEPT, history, simplify=True)

        assert question == Question("When does it stop?")
        assert seen["url"] == "http://oracle.test/ask"
        assert seen["body"]["simplify"] is True
        assert seen["body"]["concept"]["id"] == "base_case"
        assert seen["body"]["history"][0]["role"] == "tutor"

    def test_statement_is_passed_through_for_the_controller_to_reject(self):
        oracle = make_oracle(lambda r: httpx.Response(200, json={"kind": "statement", "text": "It stops at 0."}))
        assert oracle.ask(CONCEPT, []) == Statement("It stops at 0.")

    @pytest.mark.parametrize("body", [{"kind": "lecture", "text": "x"}, {"kind": "question"}, ["not", "a", "dict"]])
    def test_malformed_utterance(self, body):
        oracle = make_oracle(lambda r: httpx.Response(200, json=body))
        with pytest.raises(OracleError):
            oracle.ask(CONCEPT, [])


class TestJudge:
    def test_parses_verdict_and_reply(self):
        def handler(request):
            assert json.loads(request.content)["answer"] == "when n is zero"
            return httpx.Response(200, json={
                "verdict": "correct",
                "applies_transfer": True,
                "reply": {"kind": "statement", "text": "Exactly."},
            })

        verdict = make_oracle(handler).judge(CONCEPT, [], "when n is zero")
        assert verdict == Verdict(Correctness.CORRECT, applies_transfer=True, reply=Statement("Exactly."))

    def test_reply_is_optional(self):
        oracle = make_oracle(lambda r: httpx.Response(200, json={"verdict": "partial"}))
        verdict = oracle.judge(CONCEPT, [], "it stops")
        assert verdict == Verdict(Correctness.PARTIAL)

    def test_unknown_verdict_rejected(self):
        oracle = make_oracle(lambda r: httpx.Response(200, json={"verdict": "brilliant"}))
        with pytest.raises(OracleError, match="Malformed judge payload"):
            oracle.judge(CONCEPT, [], "it stops")


class TestTransport:
    def test_timeout_raises_retryable_error_without_retrying(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(OracleTimeoutError) as exc:
            make_oracle(handler).ask(CONCEPT, [])
        assert exc.value.retryable
        assert len(calls) == 1

    def test_server_errors_are_retried(self):
        responses = iter([
            httpx.Response(503),
            httpx.Response(502),
            httpx.Response(200, json={"kind": "question", "text": "Third time?"}),
        ])
        oracle = make_oracle(lambda r: next(responses))
        assert oracle.ask(CONCEPT, []).text == "Third time?"

    def test_retries_exhausted(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        with pytest.raises(OracleError, match="after 2 attempts"):
            make_oracle(handler, retry_attempts=2).ask(CONCEPT, [])
        assert len(calls) == 2

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422)

        with pytest.raises(OracleError, match="422"):
            make_oracle(handler).ask(CONCEPT, [])
        assert len(calls) == 1

    def test_connection_errors_are_retried(self):
        attempts = {"n": 0}

        def handler(request):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"kind": "question", "text": "Back?"})

        assert make_oracle(handler).ask(CONCEPT, []).text == "Back?"

    def test_invalid_json_body(self):
        oracle = make_oracle(lambda r: httpx.Response(200, content=b"<html>"))
        with pytest.raises(OracleError, match="invalid JSON"):
            oracle.ask(CONCEPT, [])
