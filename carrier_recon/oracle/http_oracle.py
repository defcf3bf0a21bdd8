"""HTTP adapter for a document-understanding service.

The service receives the document (base64) together with the task and prompt
and answers with JSON. Answers may be wrapped as
``{"output": ..., "finish_reason": ...}``; a ``max_tokens`` finish reason
means the output was truncated.
"""

import asyncio
import base64
import json
from typing import Any

import requests
from requests import Session

from carrier_recon.errors import OracleMalformedResponse, OracleTimeout, OracleUnavailable
from carrier_recon.ocr.document_loader import Document
from carrier_recon.utils.config import OracleConfig
from carrier_recon.utils.logger import get_logger

from .ports import DocumentOracle, OracleRequest

logger = get_logger(__name__)


class HttpDocumentOracle(DocumentOracle):
    """Calls the oracle over HTTP from a worker thread.

    Args:
        config: Endpoint and timeout settings.
        session: Optional pre-configured requests session.
    """

    def __init__(self, config: OracleConfig, session: Session | None = None) -> None:
        self.config = config
        self.session = session or self._create_session()

    def _create_session(self) -> Session:
        session = Session()
        session.headers.update(
            {
                "User-Agent": "carrier-recon/0.1",
                "Accept": "application/json",
            }
        )
        return session

    async def analyze(self, document: Document, request: OracleRequest) -> dict[str, Any]:
        return await asyncio.to_thread(self._post, document, request)

    def _post(self, document: Document, request: OracleRequest) -> dict[str, Any]:
        body = {
            "task": request.task.value,
            "prompt": request.prompt,
            "pages": request.pages,
            "context": request.context,
            "filename": document.filename,
            "document": base64.b64encode(document.payload).decode("ascii"),
        }
        try:
            response = self.session.post(
                self.config.endpoint, json=body, timeout=self.config.timeout_s
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise OracleTimeout(
                f"{request.task.value} exceeded {self.config.timeout_s}s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Oracle request %s failed: %s", request.task.value, exc)
            raise OracleUnavailable(str(exc)) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise OracleMalformedResponse("oracle answered with non-JSON body") from exc

        return unwrap_output(payload)


def unwrap_output(payload: Any) -> dict[str, Any]:
    """Return the JSON object inside an oracle answer.

    Raises:
        OracleMalformedResponse: If the answer is truncated, empty or not an
            object.
    """
    if isinstance(payload, dict) and "output" in payload:
        if payload.get("finish_reason") == "max_tokens":
            raise OracleMalformedResponse("oracle output truncated (max_tokens)")
        payload = payload["output"]

    if isinstance(payload, str):
        if not payload.strip():
            raise OracleMalformedResponse("oracle output is empty")
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise OracleMalformedResponse("oracle output is not valid JSON") from exc

    if not isinstance(payload, dict):
        raise OracleMalformedResponse("oracle output is not a JSON object")
    return payload
