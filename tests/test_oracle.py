"""Tests for retry policies, the oracle gateway and the HTTP oracle adapter."""

import asyncio
import base64
from unittest.mock import MagicMock

import pytest
import requests
from pydantic import BaseModel

from carrier_recon.errors import (
    OracleMalformedResponse,
    OracleTimeout,
    OracleUnavailable,
)
from carrier_recon.oracle.gateway import OracleGateway, policy_from_config
from carrier_recon.oracle.http_oracle import HttpDocumentOracle, unwrap_output
from carrier_recon.oracle.ports import OracleTask
from carrier_recon.oracle.prompts import PROMPTS, build_request
from carrier_recon.utils.config import OracleConfig
from carrier_recon.utils.retry import NO_RETRY, RetryPolicy, retry_call

from conftest import FAST_RETRY, FakeOracle, make_document


class Answer(BaseModel):
    carrier: str
    confidence: float


class TestRetryPolicy:
    """Tests for the RetryPolicy value type."""

    def test_delay_schedule(self) -> None:
        policy = RetryPolicy()
        assert policy.delay_for(1) == 1.0
        assert policy.delay_for(3) == 4.0
        assert policy.delay_for(7) == 4.0

    def test_empty_schedule(self) -> None:
        assert NO_RETRY.delay_for(1) == 0.0
        assert NO_RETRY.max_attempts == 1

    def test_only_timeouts_are_retryable(self) -> None:
        policy = RetryPolicy()
        assert policy.is_retryable(OracleTimeout("slow"))
        assert not policy.is_retryable(OracleMalformedResponse("bad"))


class TestRetryCall:
    """Tests for the tenacity-backed retry wrapper."""

    def test_succeeds_after_timeouts(self) -> None:
        calls = []

        async def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise OracleTimeout("slow")
            return "ok"

        policy = RetryPolicy(max_attempts=3, backoff=(0.0,))
        assert asyncio.run(retry_call(policy, flaky)) == "ok"
        assert len(calls) == 3

    def test_exhausted_budget_reraises(self) -> None:
        calls = []

        async def always_slow() -> str:
            calls.append(1)
            raise OracleTimeout("slow")

        with pytest.raises(OracleTimeout):
            asyncio.run(retry_call(FAST_RETRY, always_slow))
        assert len(calls) == 2

    def test_non_retryable_propagates_immediately(self) -> None:
        calls = []

        async def broken() -> str:
            calls.append(1)
            raise OracleMalformedResponse("bad")

        with pytest.raises(OracleMalformedResponse):
            asyncio.run(retry_call(FAST_RETRY, broken))
        assert len(calls) == 1

    def test_passes_arguments(self) -> None:
        async def add(a: int, b: int = 0) -> int:
            return a + b

        assert asyncio.run(retry_call(NO_RETRY, add, 2, b=3)) == 5


class TestOracleGateway:
    """Tests for the OracleGateway class."""

    def setup_method(self) -> None:
        self.document = make_document("text")
        self.request = build_request(OracleTask.IDENTIFY_CARRIER, pages=[1])

    def test_validates_answer(self) -> None:
        oracle = FakeOracle({OracleTask.IDENTIFY_CARRIER: {"carrier": "UPS", "confidence": 0.7}})
        gateway = OracleGateway(oracle, FAST_RETRY)

        answer = asyncio.run(gateway.request(self.document, self.request, Answer))

        assert answer == Answer(carrier="UPS", confidence=0.7)

    def test_timeouts_become_unavailable(self) -> None:
        oracle = FakeOracle({OracleTask.IDENTIFY_CARRIER: OracleTimeout("slow")})
        gateway = OracleGateway(oracle, FAST_RETRY)

        with pytest.raises(OracleUnavailable):
            asyncio.run(gateway.request(self.document, self.request, Answer))
        assert len(oracle.requests) == 2

    def test_recovers_from_single_timeout(self) -> None:
        attempts = []

        def answer(request):
            attempts.append(request)
            if len(attempts) == 1:
                return OracleTimeout("slow")
            return {"carrier": "UPS", "confidence": 0.4}

        gateway = OracleGateway(FakeOracle({OracleTask.IDENTIFY_CARRIER: answer}), FAST_RETRY)

        result = asyncio.run(gateway.request(self.document, self.request, Answer))

        assert result.carrier == "UPS"
        assert len(attempts) == 2

    def test_off_schema_answer_is_malformed(self) -> None:
        oracle = FakeOracle({OracleTask.IDENTIFY_CARRIER: {"unexpected": True}})
        gateway = OracleGateway(oracle, FAST_RETRY)

        with pytest.raises(OracleMalformedResponse):
            asyncio.run(gateway.request(self.document, self.request, Answer))
        assert len(oracle.requests) == 1

    def test_malformed_from_oracle_is_not_retried(self) -> None:
        oracle = FakeOracle()
        gateway = OracleGateway(oracle, FAST_RETRY)

        with pytest.raises(OracleMalformedResponse):
            asyncio.run(gateway.request(self.document, self.request, Answer))
        assert len(oracle.requests) == 1

    def test_policy_override(self) -> None:
        oracle = FakeOracle({OracleTask.IDENTIFY_CARRIER: OracleTimeout("slow")})
        gateway = OracleGateway(oracle, FAST_RETRY)

        with pytest.raises(OracleUnavailable):
            asyncio.run(
                gateway.request(self.document, self.request, Answer, policy=NO_RETRY)
            )
        assert len(oracle.requests) == 1

    def test_policy_from_config(self) -> None:
        policy = policy_from_config(OracleConfig(max_attempts=5, backoff_s=[0.5, 1.0]))
        assert policy.max_attempts == 5
        assert policy.backoff == (0.5, 1.0)
        assert policy.retry_on == (OracleTimeout,)


class TestPrompts:
    """Tests for oracle request construction."""

    def test_every_task_has_a_prompt(self) -> None:
        assert set(PROMPTS) == set(OracleTask)

    def test_build_request(self) -> None:
        request = build_request(OracleTask.EXTRACT_BULK, pages=[2, 3], layout={"cols": 4})
        assert request.task is OracleTask.EXTRACT_BULK
        assert request.pages == [2, 3]
        assert request.context == {"layout": {"cols": 4}}
        assert request.prompt == PROMPTS[OracleTask.EXTRACT_BULK]

    def test_survey_asks_for_dispatch_hints(self) -> None:
        prompt = PROMPTS[OracleTask.SURVEY]
        for field in ("estimated_pages", "estimated_shipments", "priority_pages", "batch_size"):
            assert f"\"{field}\"" in prompt


class TestUnwrapOutput:
    """Tests for oracle answer unwrapping."""

    def test_plain_object(self) -> None:
        assert unwrap_output({"carrier": "DHL"}) == {"carrier": "DHL"}

    def test_wrapped_json_string(self) -> None:
        payload = {"output": '{"carrier": "DHL"}', "finish_reason": "stop"}
        assert unwrap_output(payload) == {"carrier": "DHL"}

    def test_wrapped_object(self) -> None:
        assert unwrap_output({"output": {"shipments": []}}) == {"shipments": []}

    @pytest.mark.parametrize(
        "payload",
        [
            {"output": '{"shipments": [', "finish_reason": "max_tokens"},
            {"output": "   "},
            {"output": "not json"},
            {"output": "[1, 2]"},
            ["not", "an", "object"],
            None,
        ],
    )
    def test_malformed(self, payload: object) -> None:
        with pytest.raises(OracleMalformedResponse):
            unwrap_output(payload)


class TestHttpDocumentOracle:
    """Tests for the HttpDocumentOracle adapter."""

    def setup_method(self) -> None:
        self.session = MagicMock()
        self.config = OracleConfig(endpoint="http://oracle.test/analyze", timeout_s=5.0)
        self.oracle = HttpDocumentOracle(self.config, session=self.session)
        self.document = make_document(payload=b"%PDF-1.4", filename="inv.pdf")
        self.request = build_request(OracleTask.SURVEY)

    def test_posts_document_and_task(self) -> None:
        self.session.post.return_value.json.return_value = {"estimated_pages": 2}

        result = self.oracle._post(self.document, self.request)

        assert result == {"estimated_pages": 2}
        args, kwargs = self.session.post.call_args
        assert args == ("http://oracle.test/analyze",)
        assert kwargs["timeout"] == 5.0
        body = kwargs["json"]
        assert body["task"] == "survey"
        assert body["filename"] == "inv.pdf"
        assert base64.b64decode(body["document"]) == b"%PDF-1.4"

    def test_analyze_runs_in_thread(self) -> None:
        self.session.post.return_value.json.return_value = {"output": '{"ok": 1}'}

        result = asyncio.run(self.oracle.analyze(self.document, self.request))

        assert result == {"ok": 1}

    def test_timeout(self) -> None:
        self.session.post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(OracleTimeout):
            self.oracle._post(self.document, self.request)

    def test_connection_error(self) -> None:
        self.session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(OracleUnavailable):
            self.oracle._post(self.document, self.request)

    def test_http_error_status(self) -> None:
        response = self.session.post.return_value
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("503")

        with pytest.raises(OracleUnavailable):
            self.oracle._post(self.document, self.request)

    def test_non_json_body(self) -> None:
        self.session.post.return_value.json.side_effect = ValueError("no json")

        with pytest.raises(OracleMalformedResponse):
            self.oracle._post(self.document, self.request)

    def test_default_session_headers(self) -> None:
        oracle = HttpDocumentOracle(self.config)
        assert oracle.session.headers["Accept"] == "application/json"
