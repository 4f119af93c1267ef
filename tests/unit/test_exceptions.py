"""
Unit tests for custom exception handling in dynapager.

These tests verify that the exception hierarchy works correctly and that
the handle_dynamo_errors context manager logs botocore ClientError
exceptions and lets them reach the caller unchanged.
"""

import logging

import pytest
from botocore.exceptions import ClientError

from dynapager.exceptions import (
    DecodingError,
    DynamoSerializationError,
    DynapagerError,
    EncodingError,
    KeyNotResolvedError,
    TokenError,
    error_code,
    handle_dynamo_errors,
    is_throttling_error,
)


def _client_error(code: str, message: str = "Something happened", operation: str = "Query"):
    return ClientError(
        error_response={"Error": {"Code": code, "Message": message}},
        operation_name=operation,
    )


class TestExceptionHierarchy:
    """Test the exception class hierarchy and instantiation."""

    def test_dynapager_error_base_class(self):
        """Test that DynapagerError is the base exception class."""
        error = DynapagerError("Test message")
        assert isinstance(error, Exception)
        assert error.message == "Test message"
        assert error.original_error is None

    def test_dynapager_error_with_original_error(self):
        """Test DynapagerError with original error preservation."""
        original = ValueError("Original error")
        error = DynapagerError("Wrapped message", original_error=original)
        assert error.message == "Wrapped message"
        assert error.original_error is original

    def test_token_error_has_fixed_message(self):
        """Test that TokenError does not reveal the failure reason."""
        error = TokenError()
        assert isinstance(error, DynapagerError)
        assert str(error) == "Token is invalid"

    def test_key_not_resolved_error(self):
        error = KeyNotResolvedError()
        assert isinstance(error, DynapagerError)
        assert "not resolved" in str(error)

    @pytest.mark.parametrize("error_class", [EncodingError, DecodingError, DynamoSerializationError])
    def test_message_errors(self, error_class):
        error = error_class("Something failed")
        assert isinstance(error, DynapagerError)
        assert "Something failed" in str(error)


class TestErrorCodes:
    """Test inspecting botocore errors."""

    @pytest.mark.parametrize(
        "code",
        ["ProvisionedThroughputExceededException", "ThrottlingException", "RequestLimitExceeded"],
    )
    def test_throttling_codes(self, code):
        error = _client_error(code)
        assert error_code(error) == code
        assert is_throttling_error(error) is True

    @pytest.mark.parametrize("code", ["ValidationException", "ResourceNotFoundException"])
    def test_other_codes(self, code):
        assert is_throttling_error(_client_error(code)) is False

    def test_missing_code(self):
        error = ClientError(error_response={}, operation_name="Scan")
        assert error_code(error) == "Unknown"


class TestHandleDynamoErrors:
    """Test the handle_dynamo_errors context manager."""

    def test_successful_operation(self):
        """Test that successful operations pass through normally."""
        with handle_dynamo_errors():
            result = 42
        assert result == 42

    @pytest.mark.parametrize(
        "code", ["ResourceNotFoundException", "ThrottlingException", "ValidationException"]
    )
    def test_client_error_is_reraised_unchanged(self, code):
        """Test that the caller receives the very ClientError that was raised."""
        mock_error = _client_error(code, "Requested resource not found")

        with pytest.raises(ClientError) as exc_info:
            with handle_dynamo_errors(table_name="users"):
                raise mock_error

        assert exc_info.value is mock_error
        assert not isinstance(exc_info.value, DynapagerError)

    def test_client_error_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dynapager"):
            with pytest.raises(ClientError):
                with handle_dynamo_errors(table_name="users"):
                    raise _client_error("ThrottlingException", "Rate limit exceeded")

        (record,) = caplog.records
        assert record.table == "users"
        assert record.error_code == "ThrottlingException"
        assert record.throttled is True

    def test_non_client_errors_pass_through(self):
        """Test that exceptions other than ClientError are not touched."""
        with pytest.raises(RuntimeError):
            with handle_dynamo_errors():
                raise RuntimeError("boom")
