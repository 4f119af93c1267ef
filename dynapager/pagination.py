"""
Page containers for dynapager.

PageResult is one raw page returned by the store. TokenPage is what an API
handler hands to its client: the items plus an opaque token to resume from.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class PageResult(Generic[T]):
    """
    Represents a single page returned by a Query or Scan request.

    Attributes:
        items: Items of this page, deserialized to native Python values
        last_evaluated_key: Key to continue from (None if there are no more pages)
        count: Number of items in this page
        scanned_count: Number of items DynamoDB evaluated before filtering
        consumed_capacity: Capacity units consumed by the request
    """

    items: list[T]
    last_evaluated_key: dict[str, Any] | None
    count: int
    scanned_count: int = 0
    consumed_capacity: float = 0.0

    @property
    def has_more(self) -> bool:
        """Returns True if there are more pages available."""
        return self.last_evaluated_key is not None


@dataclass
class TokenPage(Generic[T]):
    """
    Represents a page of results with an encrypted pagination token.

    Attributes:
        items: Items yielded for this page
        next_token: Token to resume from (None once the query is exhausted)
        count: Number of items in this page
        finished: True if DynamoDB has no more items for the query
    """

    items: list[T]
    next_token: str | None
    count: int
    finished: bool

    @property
    def has_more(self) -> bool:
        """Returns True if there are more pages available."""
        return self.next_token is not None
