import asyncio
import inspect
from typing import Any, Literal, Protocol

from ._logging import logger, redact_key
from .exceptions import handle_dynamo_errors
from .pagination import PageResult
from .serializer import DynamoSerializer

Method = Literal["query", "scan"]


class Store(Protocol):
    """Anything that can fetch one page of a Query or Scan."""

    async def fetch(self, method: Method, request: dict[str, Any]) -> PageResult[dict[str, Any]]:
        ...


class DynamoStore:
    """
    Runs single Query/Scan requests against a DynamoDB client.

    Requests carry native Python values, like the DynamoDB Document Client:
    ExpressionAttributeValues and ExclusiveStartKey are serialized here, and
    the returned items and LastEvaluatedKey are deserialized back.

    The client is either a regular boto3 client, whose blocking calls are
    run in a worker thread, or an async client (e.g. aiobotocore) whose
    methods are awaited directly.
    """

    def __init__(self, client: Any, serializer: DynamoSerializer | None = None) -> None:
        self.client = client
        self.serializer = serializer or DynamoSerializer()

    def _build_request(self, request: dict[str, Any]) -> dict[str, Any]:
        kwargs = dict(request)
        values = kwargs.get("ExpressionAttributeValues")
        if values:
            kwargs["ExpressionAttributeValues"] = self.serializer.to_dynamo(values)
        start_key = kwargs.pop("ExclusiveStartKey", None)
        if start_key:
            kwargs["ExclusiveStartKey"] = self.serializer.to_dynamo(
                {k: v for k, v in start_key.items() if v is not None}
            )
        return kwargs

    async def fetch(self, method: Method, request: dict[str, Any]) -> PageResult[dict[str, Any]]:
        """
        Executes a single request (NOT a paginator) and returns its page.

        Client errors reach the caller unchanged and are never retried.
        """
        kwargs = self._build_request(request)
        table_name = request.get("TableName")

        logger.info(
            f"Executing {method} page",
            extra={
                "table": table_name,
                "index": request.get("IndexName"),
                "segment": request.get("Segment"),
                "limit": request.get("Limit"),
                "start_key_hash": redact_key(request.get("ExclusiveStartKey")),
            },
        )

        call = getattr(self.client, method)
        with handle_dynamo_errors(table_name=table_name):
            if inspect.iscoroutinefunction(call):
                response = await call(**kwargs)
            else:
                response = await asyncio.to_thread(call, **kwargs)

        items = [self.serializer.from_dynamo(item) for item in response.get("Items", [])]
        raw_key = response.get("LastEvaluatedKey")
        consumed = response.get("ConsumedCapacity") or {}

        return PageResult(
            items=items,
            last_evaluated_key=self.serializer.from_dynamo(raw_key) if raw_key else None,
            count=len(items),
            scanned_count=response.get("ScannedCount") or 0,
            consumed_capacity=consumed.get("CapacityUnits") or 0,
        )
