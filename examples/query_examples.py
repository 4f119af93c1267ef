"""
Query Pagination Examples

Demonstrates paging through a single-table-design table with encrypted
continuation tokens: plain queries, resuming, filters, GSIs and tokens
bound to a user.
"""

import asyncio
import os

import boto3

from dynapager import Paginator, TokenError

# 32 random bytes. In production, load this from the SSM parameter store
# and keep it stable, otherwise outstanding tokens stop working.
SECRET = os.urandom(32)

paginator = Paginator(key=SECRET, client=boto3.client("dynamodb"))

ORDERS_OF_USER = {
    "TableName": "Shop",
    "KeyConditionExpression": "PK = :pk AND begins_with(SK, :sk)",
    "ExpressionAttributeValues": {":pk": "USER#alice", ":sk": "ORDER#"},
}


async def first_page() -> str | None:
    """Fetch the first 20 orders and return the token for the next page."""
    orders = paginator.paginate_query(ORDERS_OF_USER, limit=20)

    async for order in orders:
        print(order["SK"], order.get("total"))

    print(f"requests={orders.request_count} scanned={orders.scanned_count}")
    return None if orders.finished else orders.next_token


async def next_page(token: str) -> None:
    """Resume from a token handed back by a client."""
    try:
        page = await paginator.paginate_query(ORDERS_OF_USER, limit=20, from_=token).page()
    except TokenError:
        # Tampered, truncated or foreign tokens all end up here
        print("Invalid token")
        return
    print(f"{page.count} orders, more={page.has_more}")


async def large_orders() -> None:
    """Client-side filter: keeps requesting pages until 10 matching items were found."""
    orders = paginator.paginate_query(ORDERS_OF_USER).filter(lambda o: o.get("total", 0) > 100)
    big = await orders.limit(10).all()
    print(f"{len(big)} large orders")


async def orders_by_status() -> None:
    """Query a GSI. Index names like "GSI1.v2" resolve to the GSI1PK/GSI1SK attributes."""
    shipped = paginator.paginate_query(
        {
            "TableName": "Shop",
            "IndexName": "GSI1",
            "KeyConditionExpression": "GSI1PK = :status",
            "ExpressionAttributeValues": {":status": "STATUS#shipped"},
            "Limit": 100,
        },
        limit=50,
    )
    # Start the first request while doing other work
    first = await shipped.peek()
    print("first shipped order:", first)
    print(len(await shipped.all()), "shipped orders")


async def user_bound_tokens() -> None:
    """A token created for alice cannot be replayed by bob."""
    orders = paginator.paginate_query(ORDERS_OF_USER, limit=5, context="alice")
    await orders.all()
    token = orders.next_token

    try:
        await paginator.paginate_query(ORDERS_OF_USER, from_=token, context="bob").all()
    except TokenError:
        print("Token rejected for another user")


async def main() -> None:
    token = await first_page()
    if token:
        await next_page(token)
    await large_orders()
    await orders_by_status()
    await user_bound_tokens()


if __name__ == "__main__":
    asyncio.run(main())
