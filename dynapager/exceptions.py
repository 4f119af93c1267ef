from collections.abc import Generator
from contextlib import contextmanager

from botocore.exceptions import ClientError

from ._logging import logger


class DynapagerError(Exception):
    """Base exception for all dynapager errors."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class TokenError(DynapagerError):
    """
    Raised when a pagination token cannot be decoded.

    The message never reveals why: a bad signature, a wrong context, a
    truncated token and a padding failure all look the same to the caller.
    """

    def __init__(self, message: str = "Token is invalid") -> None:
        super().__init__(message)


class EncodingError(DynapagerError):
    """Raised when a key cannot be flattened into the token byte format."""


class DecodingError(DynapagerError):
    """Raised when flattened key bytes are malformed."""


class KeyNotResolvedError(DynapagerError):
    """Raised when a token is requested before the encryption key was resolved."""

    def __init__(self, message: str = "Encryption key is not resolved yet") -> None:
        super().__init__(message)


class DynamoSerializationError(DynapagerError):
    """Raised when serialization to DynamoDB format fails (e.g. unsupported type)."""


THROTTLING_ERROR_CODES = frozenset(
    {"ProvisionedThroughputExceededException", "ThrottlingException", "RequestLimitExceeded"}
)


def error_code(error: ClientError) -> str:
    """Returns the DynamoDB error code of a botocore ClientError."""
    return error.response.get("Error", {}).get("Code", "Unknown")


def is_throttling_error(error: ClientError) -> bool:
    """True if DynamoDB rejected the request because of throughput limits."""
    return error_code(error) in THROTTLING_ERROR_CODES


@contextmanager
def handle_dynamo_errors(table_name: str | None = None) -> Generator[None, None, None]:
    """
    Context manager that logs botocore.exceptions.ClientError and re-raises it.

    The caller receives the exact ClientError the client raised, so
    `except ClientError` and `e.response["Error"]["Code"]` checks keep
    working. Nothing is retried here; transient faults are the client's
    business (botocore's own retry configuration).

    Usage:
        with handle_dynamo_errors(table_name="users"):
            client.query(...)
    """
    try:
        yield
    except ClientError as e:
        logger.warning(
            "DynamoDB request failed",
            extra={
                "table": table_name,
                "error_code": error_code(e),
                "throttled": is_throttling_error(e),
            },
        )
        raise
