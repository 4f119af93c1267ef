"""
Pagination over segmented parallel scans.

The scan is split into N segments, each driven by its own
PaginationResponse. Items are yielded in the order the segment requests
complete, so items from different segments interleave. The token encodes
the position of every segment:

    [4 bytes length][flattened key] x N

A zero length marks a segment without a saved position.
"""

import asyncio
import struct
from collections.abc import AsyncIterator
from typing import Any

from ._logging import logger
from .codec import flatten_key, unflatten_key
from .config import PaginateOptions
from .crypto import SubKeys, decode_token, encode_token
from .exceptions import DecodingError, KeyNotResolvedError, TokenError
from .response import AttributeMap, PaginationResponse

FRAME_HEADER = struct.Struct(">I")


class ParallelPaginationResponse(PaginationResponse):
    """
    Async iterator over a parallel scan with `segments` segments.

    Supports filter(), limit(), from_token() and with_context() like
    PaginationResponse; peek() is not available because the next item
    depends on which segment answers first.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if self._options.segments is None:
            raise ValueError("Parallel scans require the number of segments")
        self.segments = self._options.segments
        self.workers: list[PaginationResponse] | None = None

    async def peek(self) -> AttributeMap | None:
        raise NotImplementedError("peek() is not supported for parallel scans")

    # --- TOKEN ---

    def _parse_next_token(self, token: str, keys: SubKeys) -> list[AttributeMap | None]:
        plaintext = decode_token(token, keys, self._options.aad)
        start_keys: list[AttributeMap | None] = []
        loc = 0
        try:
            for _ in range(self.segments):
                (length,) = FRAME_HEADER.unpack_from(plaintext, loc)
                loc += FRAME_HEADER.size
                if loc + length > len(plaintext):
                    raise DecodingError("Truncated segment position")
                start_keys.append(unflatten_key(plaintext[loc : loc + length]) if length else None)
                loc += length
            if loc != len(plaintext):
                raise DecodingError("Token does not match the number of segments")
        except (struct.error, DecodingError):
            logger.debug("Rejected parallel scan token", extra={"segments": self.segments})
            raise TokenError() from None
        return start_keys

    @property
    def next_key(self) -> AttributeMap | None:
        raise NotImplementedError("Parallel scans have one position per segment, see segment_keys")

    @property
    def segment_keys(self) -> list[AttributeMap | None]:
        """The key each segment would start after, in segment order."""
        if self.workers is None:
            return [None] * self.segments
        return [worker.next_key for worker in self.workers]

    @property
    def next_token(self) -> str | None:
        if self.workers is None:
            return None
        if self._resolved_keys is None:
            raise KeyNotResolvedError()
        frames = []
        for next_key in self.segment_keys:
            raw = flatten_key(next_key) if next_key else b""
            frames.append(FRAME_HEADER.pack(len(raw)) + raw)
        return encode_token(b"".join(frames), self._resolved_keys, self._options.aad)

    # --- AGGREGATE STATE ---

    @property
    def finished(self) -> bool:
        return self.workers is not None and all(w.finished for w in self.workers)

    @property
    def request_count(self) -> int:
        return sum(w.request_count for w in self.workers or [])

    @property
    def scanned_count(self) -> int:
        return sum(w.scanned_count for w in self.workers or [])

    @property
    def consumed_capacity(self) -> float:
        return sum((w.consumed_capacity for w in self.workers or []), 0.0)

    # --- EXECUTION ---

    def _build_workers(self, start_keys: list[AttributeMap | None], keys: SubKeys) -> None:
        base = {k: v for k, v in self._query.items() if k != "ExclusiveStartKey"}
        worker_options = PaginateOptions(filter=self._filter)
        workers = []
        for segment, start_key in enumerate(start_keys):
            query = {**base, "Segment": segment, "TotalSegments": self.segments}
            if start_key:
                query["ExclusiveStartKey"] = start_key
            workers.append(
                PaginationResponse(
                    query,
                    self.key,
                    self.store,
                    method="scan",
                    schema=self.schema,
                    options=worker_options,
                    resolved_keys=keys,
                )
            )
        self.workers = workers

    async def __aiter__(self) -> AsyncIterator[AttributeMap]:
        keys = await self.ensure_resolved_keys()
        if self.workers is None:
            token = self._options.from_
            start_keys = (
                self._parse_next_token(token, keys) if token else [None] * self.segments
            )
            self._build_workers(start_keys, keys)
            logger.info(
                "Starting parallel scan",
                extra={
                    "table": self._query.get("TableName"),
                    "segments": self.segments,
                    "resumed": bool(token),
                },
            )

        assert self.workers is not None
        active = [w for w in self.workers if not w.finished]
        # At most one outstanding request per active segment
        pending: dict[asyncio.Future[Any], PaginationResponse] = {}
        try:
            while active and self.count < self._limit:
                fetching = list(pending.values())
                for worker in active:
                    if not any(worker is w for w in fetching):
                        pending[asyncio.ensure_future(worker.get_items())] = worker

                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    worker = pending.pop(task)
                    # A failing segment aborts the whole scan
                    task.result()
                    while True:
                        item = worker.pop_item()
                        if item is not None:
                            self.count += 1
                            yield item
                            if self.count >= self._limit:
                                return
                        if not worker._cur_page:
                            break
                    if worker.finished:
                        active.remove(worker)
        finally:
            for task in pending:
                if task.done():
                    if not task.cancelled():
                        task.exception()
                else:
                    task.cancel()
