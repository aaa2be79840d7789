"""
SAS Micro Analytic Service (MAS) step client.

Executes a single module step over the MAS REST API. The HTTP layer is
synchronous (``requests``); ``MasStepEndpoint`` runs it in a thread pool so
it can serve as the scoring endpoint of an asyncio batch.

Environment Variables:
    SAS_VIYA_URL: Base URL of the SAS Viya server (see batchscore.config)

Usage:
    >>> client = MasClient("https://viya.example.com", access_token=token)
    >>> endpoint = MasStepEndpoint(client, "creditscore", "score")
    >>> output = await endpoint.score({"age": 42, "income": 50000})
    >>> output.outputs["P_default"]
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from ..exceptions import MalformedResponseError, ScoringError
from ..types import Row, StepOutput
from .step_inputs import StepParameter, parse_parameters

logger = logging.getLogger(__name__)

MAS_BASE_PATH = "/microanalyticScore"

SAS_CONTENT_TYPES = {
    "STEP": "application/vnd.sas.microanalytic.module.step+json",
    "STEP_INPUT": "application/vnd.sas.microanalytic.module.step.input+json",
    "STEP_OUTPUT": "application/vnd.sas.microanalytic.module.step.output+json",
}

CSRF_HEADER = "X-CSRF-TOKEN"
AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"


def build_step_input(
    row: Row,
    input_names: Optional[Sequence[str]] = None,
    metadata: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Build a MAS step input document from a row.

    When ``input_names`` is given, every declared input is sent in that
    order and missing values are sent as null. Otherwise the row's own keys
    are used.
    """
    names = list(input_names) if input_names is not None else list(row.keys())
    payload: Dict[str, Any] = {
        "inputs": [{"name": name, "value": row.get(name)} for name in names],
        "version": 1,
    }
    if metadata:
        payload["metadata"] = dict(metadata)
    return payload


def parse_step_output(payload: Any) -> StepOutput:
    """Normalize a MAS step output document."""
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Malformed step output: expected an object, got {type(payload).__name__}"
        )
    outputs = payload.get("outputs")
    if not isinstance(outputs, list):
        raise MalformedResponseError("Malformed step output: missing 'outputs' list")

    values: Dict[str, Any] = {}
    for variable in outputs:
        if not isinstance(variable, dict) or "name" not in variable:
            raise MalformedResponseError("Malformed step output: output variable without a name")
        values[variable["name"]] = variable.get("value")

    return StepOutput(
        module_id=str(payload.get("moduleId", "")),
        step_id=str(payload.get("stepId", "")),
        execution_state=str(payload.get("executionState", "Unknown")),
        outputs=values,
        metadata=dict(payload.get("metadata") or {}),
    )


def error_message_from_response(response: requests.Response) -> str:
    """Extract the caller-facing message from a MAS error response."""
    if response.status_code == 401:
        return AUTH_REQUIRED_MESSAGE
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if body.get("message"):
            return str(body["message"])
        details = body.get("details")
        if details:
            return ", ".join(str(d) for d in details)
        return UNKNOWN_ERROR_MESSAGE
    return f"HTTP {response.status_code}: {response.reason or UNKNOWN_ERROR_MESSAGE}"


class MasClient:
    """
    Thin MAS REST client.

    Mutating requests carry the CSRF token the server handed out on an
    earlier 403; a 403 that supplies a fresh token is retried once.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/") + MAS_BASE_PATH
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Content-Type": "application/json", "Accept": "application/json"}
        )
        if access_token:
            self._session.headers["Authorization"] = f"Bearer {access_token}"
        self._csrf_token: Optional[str] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def clear_csrf_token(self) -> None:
        self._csrf_token = None

    def execute_step(
        self,
        module_id: str,
        step_id: str,
        step_input: Dict[str, Any],
        wait_time: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {"waitTime": wait_time} if wait_time is not None else {}
        return self._request(
            "POST",
            f"/modules/{module_id}/steps/{step_id}",
            json=step_input,
            params=params,
            headers={
                "Content-Type": SAS_CONTENT_TYPES["STEP_INPUT"],
                "Accept": SAS_CONTENT_TYPES["STEP_OUTPUT"],
            },
        )

    def get_step(self, module_id: str, step_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/modules/{module_id}/steps/{step_id}",
            headers={"Accept": SAS_CONTENT_TYPES["STEP"]},
        )

    def get_step_inputs(self, module_id: str, step_id: str) -> List[StepParameter]:
        return parse_parameters(self.get_step(module_id, step_id))

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        headers = dict(kwargs.pop("headers", {}))
        mutating = method in ("POST", "PUT", "DELETE", "PATCH")
        if mutating and self._csrf_token:
            headers[CSRF_HEADER] = self._csrf_token

        response = self._send(method, path, headers, **kwargs)

        if response.status_code == 403:
            token = response.headers.get(CSRF_HEADER)
            if token:
                logger.debug("Retrying %s %s with refreshed CSRF token", method, path)
                self._csrf_token = token
                headers[CSRF_HEADER] = token
                response = self._send(method, path, headers, **kwargs)

        if not response.ok:
            raise ScoringError(
                error_message_from_response(response),
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response is not valid JSON: {e}") from e

    def _send(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        **kwargs: Any,
    ) -> requests.Response:
        try:
            return self._session.request(
                method,
                self._base_url + path,
                headers=headers,
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise ScoringError(f"Request to MAS failed: {e}") from e

    def close(self) -> None:
        self.clear_csrf_token()
        self._session.close()


class MasStepEndpoint:
    """
    Scoring endpoint executing one MAS module step per row.

    HTTP calls run on a private thread pool. A call abandoned by a per-row
    timeout keeps its thread until ``requests`` gives up, so size
    ``max_workers`` with headroom over the batch concurrency (see
    ``threads_for_concurrency``) or the next row queues behind it.
    """

    def __init__(
        self,
        client: MasClient,
        module_id: str,
        step_id: str,
        input_names: Optional[Sequence[str]] = None,
        max_workers: int = 10,
    ) -> None:
        """
        Args:
            client: Configured MAS client
            module_id: Module to score against
            step_id: Step within the module (usually "score" or "execute")
            input_names: Declared step inputs; defaults to the row's keys
            max_workers: Threads available for concurrent HTTP calls
        """
        self._client = client
        self._module_id = module_id
        self._step_id = step_id
        self._input_names = list(input_names) if input_names is not None else None
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="batchscore_mas",
        )

    @staticmethod
    def threads_for_concurrency(concurrency: int) -> int:
        """One thread per worker plus one for a timed-out call it left behind."""
        return 2 * max(1, concurrency)

    async def score(self, row: Row) -> StepOutput:
        step_input = build_step_input(row, self._input_names)
        loop = asyncio.get_running_loop()
        payload = await loop.run_in_executor(
            self._executor,
            lambda: self._client.execute_step(self._module_id, self._step_id, step_input),
        )
        return parse_step_output(payload)

    async def aclose(self) -> None:
        # in-flight requests finish on their own threads; the loop does not wait
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()
