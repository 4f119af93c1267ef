"""
Parallel Scan Example

Exports a whole table in batches with a segmented scan. Each batch ends
with a token that encodes the position of every segment, so the export can
be continued by another process (e.g. the next Lambda invocation).
"""

import asyncio
import os

import boto3

from dynapager import Paginator

paginate_parallel_scan = Paginator.create_parallel_scan(
    key=lambda: os.environ["PAGINATION_SECRET"],
    client=boto3.client("dynamodb"),
)


async def export_batch(token: str | None, batch_size: int = 1000) -> str | None:
    items = paginate_parallel_scan(
        {"TableName": "Shop", "Limit": 250},
        segments=8,
        limit=batch_size,
        from_=token,
    )

    count = 0
    async for item in items:
        # Items from different segments arrive interleaved
        count += 1

    print(
        f"exported={count} requests={items.request_count} "
        f"capacity={items.consumed_capacity}"
    )
    return None if items.finished else items.next_token


async def main() -> None:
    token = await export_batch(None)
    while token is not None:
        token = await export_batch(token)


if __name__ == "__main__":
    asyncio.run(main())
