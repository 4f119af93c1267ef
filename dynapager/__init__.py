from .base import Paginator
from .codec import flatten_key, unflatten_key
from .config import PaginateOptions, TableSchema, default_index_schema
from .crypto import SubKeys, decode_token, derive_keys, encode_token
from .exceptions import (
    DynamoSerializationError,
    DynapagerError,
    EncodingError,
    KeyNotResolvedError,
    TokenError,
    is_throttling_error,
)
from .pagination import PageResult, TokenPage
from .parallel import ParallelPaginationResponse
from .response import PaginationResponse
from .store import DynamoStore

__all__ = [
    "Paginator",
    "PaginationResponse",
    "ParallelPaginationResponse",
    "PageResult",
    "TokenPage",
    "DynamoStore",
    # Configuration
    "TableSchema",
    "PaginateOptions",
    "default_index_schema",
    # Token primitives
    "flatten_key",
    "unflatten_key",
    "derive_keys",
    "encode_token",
    "decode_token",
    "SubKeys",
    # Exceptions
    "DynapagerError",
    "TokenError",
    "EncodingError",
    "KeyNotResolvedError",
    "DynamoSerializationError",
    "is_throttling_error",
]
