import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import boto3

from ._logging import logger
from .config import IndexResolver, KeyPair, PaginateOptions, TableSchema, default_index_schema
from .parallel import ParallelPaginationResponse
from .response import PaginationResponse
from .store import DynamoStore, Store

Secret = bytes | str
SecretSource = Secret | Awaitable[Secret] | Callable[[], Secret | Awaitable[Secret]]


class Paginator:
    """
    Factory for PaginationResponse objects.

    Binds the secret used to encrypt pagination tokens and the DynamoDB
    client. Use the create_query(), create_scan() and create_parallel_scan()
    class methods to get a ready-to-use paginate function.

    The secret should be 32 random bytes, persisted somewhere safe (e.g. the
    SSM parameter store). It may also be given as an awaitable or as a
    function returning the key or an awaitable. A function is called lazily
    and only once, concurrently with the first request to DynamoDB.

    Usage:
        paginate_query = Paginator.create_query(key=os.urandom(32), client=boto3.client("dynamodb"))

        items = paginate_query({
            "TableName": "MyTable",
            "KeyConditionExpression": "PK = :pk",
            "ExpressionAttributeValues": {":pk": "U#ABC"},
        })
        async for item in items:
            ...
    """

    def __init__(
        self,
        key: SecretSource,
        client: Any | None = None,
        schema: KeyPair = ("PK", "SK"),
        indexes: IndexResolver | None = None,
        store: Store | None = None,
    ) -> None:
        self.key = key
        self.client = client
        self.schema = TableSchema(schema=schema, indexes=indexes or default_index_schema)

        self._store = store
        self._resolved_key: Secret | None = None
        self._resolving: asyncio.Future[Secret] | None = None

    def _get_store(self) -> Store:
        """
        Returns the store, creating the client lazily.

        Resolution order:
        1. Explicit store
        2. DynamoStore around the given client
        3. DynamoStore around a default boto3 client
        """
        if self._store is None:
            if self.client is None:
                self.client = boto3.client("dynamodb")
            self._store = DynamoStore(self.client)
        return self._store

    async def _load_key(self) -> Secret:
        key = self.key
        if callable(key):
            key = key()
        if inspect.isawaitable(key):
            key = await key
        return key

    async def ensure_resolved_key(self) -> Secret:
        """Resolves the secret once; concurrent callers share the pending resolution."""
        if self._resolved_key is None:
            if isinstance(self.key, (bytes, str)):
                self._resolved_key = self.key
            else:
                if self._resolving is None:
                    logger.debug("Resolving pagination secret")
                    self._resolving = asyncio.ensure_future(self._load_key())
                try:
                    self._resolved_key = await asyncio.shield(self._resolving)
                except Exception:
                    self._resolving = None
                    raise
        return self._resolved_key

    # --- FACTORIES ---

    @classmethod
    def create_query(cls, key: SecretSource, **kwargs: Any) -> Callable[..., PaginationResponse]:
        """Returns a function that accepts a Query request and returns a PaginationResponse."""
        return cls(key, **kwargs).paginate_query

    @classmethod
    def create_scan(cls, key: SecretSource, **kwargs: Any) -> Callable[..., PaginationResponse]:
        """Returns a function that accepts a Scan request and returns a PaginationResponse."""
        return cls(key, **kwargs).paginate_scan

    @classmethod
    def create_parallel_scan(
        cls, key: SecretSource, **kwargs: Any
    ) -> Callable[..., ParallelPaginationResponse]:
        """Returns a function that accepts a Scan request and returns a ParallelPaginationResponse."""
        return cls(key, **kwargs).paginate_parallel_scan

    # --- PAGINATE ---

    def paginate_query(
        self,
        query: Mapping[str, Any],
        *,
        limit: int | None = None,
        from_: str | None = None,
        filter: Callable[[dict[str, Any]], bool] | None = None,
        context: bytes | str | None = None,
    ) -> PaginationResponse:
        options = PaginateOptions(limit=limit, from_=from_, filter=filter, context=context)
        return PaginationResponse(
            query,
            self.ensure_resolved_key,
            self._get_store(),
            method="query",
            schema=self.schema,
            options=options,
        )

    def paginate_scan(
        self,
        query: Mapping[str, Any],
        *,
        limit: int | None = None,
        from_: str | None = None,
        filter: Callable[[dict[str, Any]], bool] | None = None,
        context: bytes | str | None = None,
    ) -> PaginationResponse:
        options = PaginateOptions(limit=limit, from_=from_, filter=filter, context=context)
        return PaginationResponse(
            query,
            self.ensure_resolved_key,
            self._get_store(),
            method="scan",
            schema=self.schema,
            options=options,
        )

    def paginate_parallel_scan(
        self,
        query: Mapping[str, Any],
        *,
        segments: int,
        limit: int | None = None,
        from_: str | None = None,
        filter: Callable[[dict[str, Any]], bool] | None = None,
        context: bytes | str | None = None,
    ) -> ParallelPaginationResponse:
        options = PaginateOptions(
            limit=limit, from_=from_, filter=filter, context=context, segments=segments
        )
        return ParallelPaginationResponse(
            query,
            self.ensure_resolved_key,
            self._get_store(),
            method="scan",
            schema=self.schema,
            options=options,
        )
