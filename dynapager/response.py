"""
The pagination engine.

PaginationResponse drives repeated Query or Scan requests, yields items one
at a time and can hand out an encrypted token to resume from the current
position later on.
"""

import asyncio
import math
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from types import MappingProxyType
from typing import Any

from ._logging import logger, redact_key
from .codec import flatten_key, unflatten_key
from .config import PaginateOptions, TableSchema
from .crypto import SubKeys, decode_token, derive_keys, encode_token
from .exceptions import DecodingError, KeyNotResolvedError, TokenError
from .pagination import TokenPage
from .store import Method, Store

AttributeMap = dict[str, Any]
KeyProvider = Callable[[], Awaitable[bytes | str]]


class PaginationResponse:
    """
    Async iterator over the items of a Query or Scan.

    The iterator can be interrupted and resumed at any time. It stops
    producing items once the query is exhausted or `limit` items have been
    yielded. Configuration methods (filter, limit, from_token, with_context)
    never modify the instance they are called on; they return a fresh
    iterator with the option applied.

    Usage:
        items = paginate_query({"TableName": "t", "KeyConditionExpression": "PK = :pk", ...})

        async for item in items:
            if items.count == 50:
                token = items.next_token
                break

        # Resume later, possibly in another request
        more = await items.from_token(token).limit(50).all()
    """

    def __init__(
        self,
        query: Mapping[str, Any],
        key: KeyProvider,
        store: Store,
        method: Method = "query",
        schema: TableSchema | None = None,
        options: PaginateOptions | None = None,
        resolved_keys: SubKeys | None = None,
    ) -> None:
        # Number of items yielded
        self.count = 0

        self._request_count = 0
        self._scanned_count = 0
        self._consumed_capacity = 0.0
        self._done = False
        self._cur_page: deque[AttributeMap] = deque()
        self._last_evaluated_key: AttributeMap | None = None
        self._fetching: asyncio.Future[deque[AttributeMap]] | None = None
        self._resolved_keys = resolved_keys

        self._query = MappingProxyType(dict(query))
        self._options = options or PaginateOptions()
        self._limit: float = math.inf if self._options.limit is None else self._options.limit
        self._filter = self._options.filter
        self._next_key: AttributeMap | None = self._query.get("ExclusiveStartKey")

        self.key = key
        self.store = store
        self.method = method
        self.schema = schema or TableSchema()

    # --- CONFIGURATION (copy-on-configure) ---

    def _clone(self, **changes: Any) -> "PaginationResponse":
        return type(self)(
            self._query,
            self.key,
            self.store,
            method=self.method,
            schema=self.schema,
            options=self._options.merged(**changes),
        )

    def filter(self, predicate: Callable[[AttributeMap], bool]) -> "PaginationResponse":
        """
        Filter results by a predicate function.

        Items rejected by the predicate do not count towards `limit`; more
        pages are requested until `limit` matching items were found or the
        query is exhausted.
        """
        return self._clone(filter=predicate)

    def limit(self, limit: int) -> "PaginationResponse":
        """Limit the number of results. Returns at least `limit` results even when filtering."""
        return self._clone(limit=limit)

    def from_token(self, next_token: str | None) -> "PaginationResponse":
        """Start returning results from the position encoded in `next_token`."""
        return self._clone(from_=next_token)

    from_ = from_token

    def with_context(self, context: bytes | str | None) -> "PaginationResponse":
        """Bind tokens to a context (e.g. a user ID); tokens do not decode in other contexts."""
        return self._clone(context=context)

    # --- STATE ---

    @property
    def next_key(self) -> AttributeMap | None:
        """The key the next request would start after, in plain form."""
        return dict(self._next_key) if self._next_key else None

    @property
    def next_token(self) -> str | None:
        """
        Token to resume the query from the current position.

        The token is built from the last key seen and AES-256 encrypted so
        that it can safely be handed to an untrustworthy client. It only
        contains URL safe characters.

        Raises:
            KeyNotResolvedError: If read before the first request was made
        """
        if not self._next_key:
            return None
        if self._resolved_keys is None:
            raise KeyNotResolvedError()
        logger.debug("Encoding next token", extra={"key_hash": redact_key(self._next_key)})
        return encode_token(flatten_key(self._next_key), self._resolved_keys, self._options.aad)

    @property
    def finished(self) -> bool:
        """Returns True if DynamoDB has no more pages and all buffered items were consumed."""
        return self._done and not self._cur_page

    @property
    def request_count(self) -> int:
        """Number of requests made to DynamoDB."""
        return self._request_count

    @property
    def scanned_count(self) -> int:
        """Number of items scanned by DynamoDB."""
        return self._scanned_count

    @property
    def consumed_capacity(self) -> float:
        """Total consumed capacity for the query."""
        return self._consumed_capacity

    # --- FETCHING ---

    async def ensure_resolved_keys(self) -> SubKeys:
        if self._resolved_keys is None:
            secret = await self.key()
            self._resolved_keys = derive_keys(secret)
        return self._resolved_keys

    def _build_request(self) -> dict[str, Any]:
        request = {k: v for k, v in self._query.items() if k != "ExclusiveStartKey"}
        if self._next_key:
            request["ExclusiveStartKey"] = self._next_key
        return request

    async def _get_items(self) -> deque[AttributeMap]:
        try:
            # The key is resolved concurrently with the first request
            page, _ = await asyncio.gather(
                self.store.fetch(self.method, self._build_request()),
                self.ensure_resolved_keys(),
            )
            self._request_count += 1
            self._scanned_count += page.scanned_count
            self._consumed_capacity += page.consumed_capacity
            self._last_evaluated_key = page.last_evaluated_key
            if not self._last_evaluated_key:
                self._done = True
            # Filtering is deferred to pop_item
            self._cur_page.extend(page.items)
            return self._cur_page
        finally:
            self._fetching = None

    async def get_items(self) -> deque[AttributeMap]:
        """
        Returns the buffered items, fetching the next page if the buffer is empty.

        Concurrent callers share a single in-flight request.
        """
        if self._cur_page or self._done:
            return self._cur_page
        if self._fetching is None or self._fetching.done():
            self._fetching = asyncio.ensure_future(self._get_items())
        return await self._fetching

    def pop_item(self) -> AttributeMap | None:
        """
        Takes the next item off the buffer and advances the resumption key.

        Returns None if the buffer is empty or the item is rejected by the filter.
        """
        items = self._cur_page
        item = items.popleft() if items else None
        if self._last_evaluated_key and not items:
            # Prefer LastEvaluatedKey over the key built from the item. With a
            # FilterExpression DynamoDB may have progressed past the last item
            # it returned.
            self._next_key = self._last_evaluated_key
        elif item is not None:
            next_key = self.schema.build_key(item)
            index_name = self._query.get("IndexName")
            if index_name:
                next_key = {**next_key, **self.schema.build_key(item, index_name)}
            self._next_key = next_key

        if item is None:
            return None
        if self._filter is None or self._filter(item):
            self.count += 1
            return item
        return None

    async def _resolve_start_key(self) -> None:
        token = self._options.from_
        if token and self._next_key is None:
            keys = await self.ensure_resolved_keys()
            plaintext = decode_token(token, keys, self._options.aad)
            try:
                self._next_key = unflatten_key(plaintext)
            except DecodingError:
                raise TokenError() from None

    async def _next_item(self, peek: bool = False) -> AttributeMap | None:
        await self._resolve_start_key()
        while not self.finished and self.count < self._limit:
            await self.get_items()
            previous_key = self._next_key
            item = self.pop_item()
            if item is None:
                continue
            if peek:
                self._cur_page.appendleft(item)
                self.count -= 1
                self._next_key = previous_key
            return item
        return None

    # --- EXECUTION STRATEGIES ---

    async def __aiter__(self) -> AsyncIterator[AttributeMap]:
        while True:
            item = await self._next_item()
            if item is None:
                return
            yield item

    async def peek(self) -> AttributeMap | None:
        """
        Returns the next item without advancing the iterator.

        peek() also primes the iterator: it fetches the first page right away,
        which is useful to overlap the request with other work. Returns None
        if there are no more items or `limit` has been reached. Does not
        increment `count`.
        """
        return await self._next_item(peek=True)

    async def all(self) -> list[AttributeMap]:
        """
        Consumes the iterator into a list.
        WARNING: Without a limit this keeps requesting pages until the query is exhausted.
        """
        return [item async for item in self]

    async def page(self) -> TokenPage[AttributeMap]:
        """
        Consumes the iterator (pair with limit()) and returns the items with a token.

        The token is None once the query is exhausted.

        Usage:
            page = await paginate_query(query, limit=25, from_=request_token).page()
            return {"items": page.items, "next": page.next_token}
        """
        items = await self.all()
        return TokenPage(
            items=items,
            next_token=None if self.finished else self.next_token,
            count=len(items),
            finished=self.finished,
        )
