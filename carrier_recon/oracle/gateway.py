"""Retrying, validating front door to the document oracle."""

from typing import TypeVar

from pydantic import BaseModel, ValidationError

from carrier_recon.errors import OracleMalformedResponse, OracleTimeout, OracleUnavailable
from carrier_recon.ocr.document_loader import Document
from carrier_recon.utils.config import OracleConfig
from carrier_recon.utils.logger import get_logger
from carrier_recon.utils.retry import RetryPolicy, retry_call

from .ports import DocumentOracle, OracleRequest

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def policy_from_config(config: OracleConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.max_attempts,
        backoff=tuple(config.backoff_s),
    )


class OracleGateway:
    """Wraps a :class:`DocumentOracle` with retries and response validation.

    Args:
        oracle: The oracle adapter.
        policy: Default retry policy for requests.
    """

    def __init__(self, oracle: DocumentOracle, policy: RetryPolicy | None = None) -> None:
        self.oracle = oracle
        self.policy = policy or RetryPolicy()

    async def request(
        self,
        document: Document,
        request: OracleRequest,
        response_model: type[M],
        policy: RetryPolicy | None = None,
    ) -> M:
        """Send a request and validate the answer.

        Args:
            document: Document the request is about.
            request: The oracle request.
            response_model: Pydantic model the answer must satisfy.
            policy: Overrides the gateway's default retry policy.

        Returns:
            The validated response.

        Raises:
            OracleUnavailable: If every attempt timed out.
            OracleMalformedResponse: If the answer does not fit the model.
        """
        policy = policy or self.policy
        logger.debug(
            "Oracle %s for %s (pages=%s)",
            request.task.value,
            document.filename,
            request.pages,
        )

        try:
            raw = await retry_call(policy, self.oracle.analyze, document, request)
        except OracleTimeout as exc:
            logger.error(
                "Oracle %s timed out %d time(s) for %s",
                request.task.value,
                policy.max_attempts,
                document.filename,
            )
            raise OracleUnavailable(
                f"{request.task.value} timed out after {policy.max_attempts} attempt(s)"
            ) from exc

        try:
            return response_model.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Oracle %s returned malformed output: %s",
                request.task.value,
                exc.error_count(),
            )
            raise OracleMalformedResponse(
                f"{request.task.value} response failed validation"
            ) from exc
