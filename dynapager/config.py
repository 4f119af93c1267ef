from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# (partition key name, sort key name or None)
KeyPair = tuple[str, str | None]
IndexResolver = Mapping[str, KeyPair] | Callable[[str], KeyPair]


def default_index_schema(index_name: str) -> KeyPair:
    """
    Derives key attribute names from an index name.

    The part before the first "." is used as prefix, so both "GSI1" and
    "GSI1.v2" resolve to ("GSI1PK", "GSI1SK").
    """
    prefix = index_name.split(".", 1)[0]
    return f"{prefix}PK", f"{prefix}SK"


@dataclass(frozen=True)
class TableSchema:
    """
    Names of the key attributes of a table and its secondary indexes.

    Used to rebuild a resumable key from the last item a client has seen.
    """

    schema: KeyPair = ("PK", "SK")
    indexes: IndexResolver = field(default=default_index_schema)

    def key_names(self, index_name: str | None = None) -> KeyPair:
        """
        Get the key attribute names of the base table or of an index.

        Raises:
            ValueError: If the index is missing from an explicit index mapping
        """
        if index_name is None:
            return self.schema
        if callable(self.indexes):
            return self.indexes(index_name)
        try:
            return self.indexes[index_name]
        except KeyError:
            raise ValueError(f"Index '{index_name}' is not defined in the table schema") from None

    def build_key(self, item: Mapping[str, Any], index_name: str | None = None) -> dict[str, Any]:
        """Extracts the key attributes of an item for the table or the given index."""
        pk, sk = self.key_names(index_name)
        key = {pk: item.get(pk)}
        if sk is not None:
            key[sk] = item.get(sk)
        return key


class PaginateOptions(BaseModel):
    """
    Per-call pagination options.

    Instances are immutable; use merged() to derive a copy with changes.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    limit: int | None = Field(default=None, ge=0)
    from_: str | None = Field(default=None, alias="from")
    filter: Callable[[dict[str, Any]], bool] | None = None
    context: bytes | None = None
    segments: int | None = Field(default=None, ge=1)

    @field_validator("context", mode="before")
    @classmethod
    def _encode_context(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.encode("utf-8")
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        return value

    @property
    def aad(self) -> bytes:
        """Associated data bound into the token signature."""
        return self.context or b""

    def merged(self, **changes: Any) -> "PaginateOptions":
        """Returns a new validated copy with the given fields replaced."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)
