"""Exception hierarchy for the reconciliation engine.

Only oracle timeouts are retryable. Access-denied candidates and records
without a match are not errors: the former are filtered out, the latter end
in the ``NO_MATCH`` status.
"""


class ReconciliationError(Exception):
    """Base exception for all engine errors."""


class OracleError(ReconciliationError):
    """Base exception for document-understanding oracle failures."""


class OracleTimeout(OracleError):
    """The oracle did not answer in time. Retryable."""


class OracleUnavailable(OracleError):
    """The oracle kept timing out until the retry budget ran out."""


class OracleMalformedResponse(OracleError):
    """The oracle answered with empty, truncated or off-schema output."""


class RecordStoreError(ReconciliationError):
    """A record store lookup failed."""


class DocumentProcessingError(ReconciliationError):
    """Processing of a single document was aborted.

    Args:
        step: Pipeline step that failed.
        message: Human-readable cause.
    """

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step}: {message}")
        self.step = step
