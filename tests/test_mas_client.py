from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from batchscore.exceptions import MalformedResponseError, ScoringError
from batchscore.scoring.mas_client import (
    AUTH_REQUIRED_MESSAGE,
    CSRF_HEADER,
    MasClient,
    MasStepEndpoint,
    build_step_input,
    parse_step_output,
)
from batchscore.scoring.step_inputs import StepParameter


def make_response(status: int, body=None, headers=None, reason: str = "") -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.ok = status < 400
    response.reason = reason
    response.headers = headers or {}
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


STEP_OUTPUT = {
    "moduleId": "credit",
    "stepId": "score",
    "executionState": "completed",
    "outputs": [{"name": "P_default", "value": 0.2}, {"name": "label", "value": "low"}],
    "links": [],
    "version": 1,
}


def make_client(*responses) -> tuple[MasClient, MagicMock]:
    session = requests.Session()
    session.request = MagicMock(side_effect=list(responses))
    return MasClient("https://viya.example.com/", access_token="tok", session=session), session.request


class TestBuildStepInput:
    """Tests for step input construction."""

    def test_uses_row_keys(self) -> None:
        payload = build_step_input({"a": 1, "b": "x"})
        assert payload == {
            "inputs": [{"name": "a", "value": 1}, {"name": "b", "value": "x"}],
            "version": 1,
        }

    def test_declared_inputs_fill_missing_with_none(self) -> None:
        payload = build_step_input({"b": 2, "extra": 9}, input_names=["a", "b"], metadata={"k": "v"})
        assert payload["inputs"] == [{"name": "a", "value": None}, {"name": "b", "value": 2}]
        assert payload["metadata"] == {"k": "v"}


class TestParseStepOutput:
    """Tests for step output normalization."""

    def test_parses_outputs(self) -> None:
        output = parse_step_output(STEP_OUTPUT)
        assert output.module_id == "credit"
        assert output.execution_state == "completed"
        assert output.outputs == {"P_default": 0.2, "label": "low"}

    @pytest.mark.parametrize("payload", [None, [], {"executionState": "completed"}, {"outputs": [{"value": 1}]}])
    def test_malformed(self, payload) -> None:
        with pytest.raises(MalformedResponseError):
            parse_step_output(payload)


class TestMasClient:
    """Tests for MasClient request handling."""

    def test_execute_step(self) -> None:
        client, request = make_client(make_response(201, STEP_OUTPUT))

        payload = client.execute_step("credit", "score", {"inputs": []}, wait_time=5)

        assert payload == STEP_OUTPUT
        method, url = request.call_args.args
        assert method == "POST"
        assert url == "https://viya.example.com/microanalyticScore/modules/credit/steps/score"
        assert request.call_args.kwargs["params"] == {"waitTime": 5}
        assert client._session.headers["Authorization"] == "Bearer tok"

    def test_csrf_retry(self) -> None:
        client, request = make_client(
            make_response(403, {"message": "forbidden"}, headers={CSRF_HEADER: "abc"}),
            make_response(201, STEP_OUTPUT),
            make_response(201, STEP_OUTPUT),
        )

        client.execute_step("credit", "score", {"inputs": []})
        assert request.call_count == 2
        assert request.call_args.kwargs["headers"][CSRF_HEADER] == "abc"

        # token is reused on later mutating requests
        client.execute_step("credit", "score", {"inputs": []})
        assert request.call_args.kwargs["headers"][CSRF_HEADER] == "abc"

    def test_forbidden_without_token_fails(self) -> None:
        client, request = make_client(make_response(403, {"message": "No access"}))
        with pytest.raises(ScoringError, match="No access") as exc_info:
            client.execute_step("credit", "score", {"inputs": []})
        assert exc_info.value.status_code == 403
        assert request.call_count == 1

    def test_unauthorized(self) -> None:
        client, _ = make_client(make_response(401, {"message": "expired"}))
        with pytest.raises(ScoringError, match=AUTH_REQUIRED_MESSAGE):
            client.execute_step("credit", "score", {"inputs": []})

    def test_error_details_joined(self) -> None:
        client, _ = make_client(make_response(400, {"details": ["bad age", "bad income"]}))
        with pytest.raises(ScoringError, match="bad age, bad income"):
            client.execute_step("credit", "score", {"inputs": []})

    def test_error_without_message(self) -> None:
        client, _ = make_client(make_response(500, {}))
        with pytest.raises(ScoringError, match="An unknown error occurred"):
            client.execute_step("credit", "score", {"inputs": []})

    def test_error_non_json_body(self) -> None:
        client, _ = make_client(make_response(502, ValueError("no json"), reason="Bad Gateway"))
        with pytest.raises(ScoringError, match="HTTP 502: Bad Gateway"):
            client.execute_step("credit", "score", {"inputs": []})

    def test_transport_error(self) -> None:
        session = requests.Session()
        session.request = MagicMock(side_effect=requests.ConnectionError("refused"))
        client = MasClient("https://viya.example.com", session=session)
        with pytest.raises(ScoringError, match="refused"):
            client.execute_step("credit", "score", {"inputs": []})

    def test_get_step_inputs(self) -> None:
        step = {"id": "score", "inputs": [{"name": "age", "type": "integer"}, {"name": "rates", "type": "decimalArray"}]}
        client, request = make_client(make_response(200, step))
        assert client.get_step_inputs("credit", "score") == [
            StepParameter("age", "integer"),
            StepParameter("rates", "decimalArray"),
        ]
        assert request.call_args.args[0] == "GET"

    def test_close_forgets_csrf_token(self) -> None:
        client, request = make_client(
            make_response(403, {}, headers={CSRF_HEADER: "abc"}),
            make_response(201, STEP_OUTPUT),
            make_response(201, STEP_OUTPUT),
        )
        client.execute_step("credit", "score", {"inputs": []})

        client.close()
        client.execute_step("credit", "score", {"inputs": []})

        assert CSRF_HEADER not in request.call_args.kwargs["headers"]

    def test_requires_base_url(self) -> None:
        with pytest.raises(ValueError):
            MasClient("")


class TestMasStepEndpoint:
    """Tests for MasStepEndpoint."""

    @pytest.mark.asyncio
    async def test_score(self) -> None:
        client, request = make_client(make_response(201, STEP_OUTPUT))
        endpoint = MasStepEndpoint(client, "credit", "score", input_names=["age"])

        output = await endpoint.score({"age": 42, "ignored": 1})
        await endpoint.aclose()

        assert output.outputs["label"] == "low"
        assert request.call_args.kwargs["json"]["inputs"] == [{"name": "age", "value": 42}]

    @pytest.mark.asyncio
    async def test_score_error_propagates_to_executor(self) -> None:
        from batchscore.parallel.row_executor import RowExecutor

        client, _ = make_client(make_response(400, {"message": "Invalid input: age"}))
        endpoint = MasStepEndpoint(client, "credit", "score")

        result = await RowExecutor(endpoint).execute(0, {"age": "x"})
        await endpoint.aclose()

        assert result.error == "Invalid input: age"
        assert result.output is None


class SlowClient:
    """MAS client whose first call hangs until released."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls = 0
        self.closed = False

    def execute_step(self, module_id, step_id, step_input):
        self.calls += 1
        if self.calls == 1:
            self.release.wait(timeout=5)
        return STEP_OUTPUT

    def close(self) -> None:
        self.closed = True


class TestMasStepEndpointThreads:
    """Tests for MasStepEndpoint thread pool handling."""

    @pytest.mark.asyncio
    async def test_aclose_does_not_wait_for_inflight_request(self) -> None:
        client = SlowClient()
        endpoint = MasStepEndpoint(client, "credit", "score", max_workers=2)
        task = asyncio.ensure_future(endpoint.score({"age": 1}))
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        start = time.perf_counter()
        try:
            await endpoint.aclose()
            elapsed = time.perf_counter() - start
        finally:
            client.release.set()

        assert elapsed < 1.0
        assert client.closed

    @pytest.mark.asyncio
    async def test_timed_out_call_does_not_delay_next_row(self) -> None:
        from batchscore.parallel.row_executor import RowExecutor

        client = SlowClient()
        endpoint = MasStepEndpoint(
            client, "credit", "score", max_workers=MasStepEndpoint.threads_for_concurrency(1)
        )
        executor = RowExecutor(endpoint, timeout_per_request=0.1)
        try:
            first = await executor.execute(0, {"age": 1})
            second = await executor.execute(1, {"age": 2})
        finally:
            client.release.set()
            await endpoint.aclose()

        assert first.error == "Timeout after 0.1s"
        assert second.success
        assert second.execution_time_ms < 1000

    def test_threads_for_concurrency(self) -> None:
        assert MasStepEndpoint.threads_for_concurrency(1) == 2
        assert MasStepEndpoint.threads_for_concurrency(8) == 16
        assert MasStepEndpoint.threads_for_concurrency(0) == 2
