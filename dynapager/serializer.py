from decimal import Decimal
from typing import Any, cast

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

from .exceptions import DynamoSerializationError


class DynamoSerializer:
    """
    Handles the conversion between native Python values and DynamoDB Low-Level format.

    Architectural Note:
    -------------------
    Pagination works on native values so that keys can be flattened into
    tokens and items handed to filter predicates as plain dicts. DynamoDB
    requires numbers to be passed as 'Decimal', and boto3 returns binary
    attributes wrapped in 'Binary'. This class converts both ways around
    the boto3 TypeSerializer/TypeDeserializer.
    """

    def __init__(self) -> None:
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def to_dynamo(self, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        """Converts a standard Python dict to DynamoDB JSON format ({"S": "...", "N": "..."})."""
        result = {}
        for k, v in data.items():
            try:
                result[k] = cast(dict[str, Any], self._serializer.serialize(self._prepare(v)))
            except TypeError as e:
                raise DynamoSerializationError(
                    f"Failed to serialize field '{k}'. value={v!r} error={e!s}", original_error=e
                ) from e
        return result

    def from_dynamo(self, item: dict[str, Any]) -> dict[str, Any]:
        """Converts DynamoDB JSON format back to standard Python dict."""
        return {k: self._restore(self._deserializer.deserialize(v)) for k, v in item.items()}

    def _prepare(self, value: Any) -> Any:
        """
        Recursively prepares Python values for Boto3 TypeSerializer.

        Converts:
        - float -> Decimal (boto3 requirement)
        - bytearray/memoryview -> bytes
        """
        if isinstance(value, float):
            # Convert to string first to avoid float precision artifacts during Decimal creation
            return Decimal(str(value))
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, (set, frozenset)):
            return {self._prepare(v) for v in value}
        if isinstance(value, list):
            return [self._prepare(v) for v in value]
        if isinstance(value, dict):
            return {k: self._prepare(v) for k, v in value.items()}
        return value

    def _restore(self, value: Any) -> Any:
        """
        Recursively restores DynamoDB values to Python-friendly types.

        Converts:
        - Decimal -> int (if whole number) or float
        - Binary -> bytes
        """
        if isinstance(value, Decimal):
            if value % 1 == 0:
                return int(value)
            return float(value)
        if isinstance(value, Binary):
            return bytes(value.value)
        if isinstance(value, (set, frozenset)):
            return {self._restore(v) for v in value}
        if isinstance(value, list):
            return [self._restore(v) for v in value]
        if isinstance(value, dict):
            return {k: self._restore(v) for k, v in value.items()}
        return value
