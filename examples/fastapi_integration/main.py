"""
FastAPI Integration Example

Demonstrates an endpoint that pages through a user's orders. The client
receives an opaque `next` token and sends it back to get the next page.
"""

import os

import boto3
from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel

from dynapager import Paginator, TokenError


class OrdersPage(BaseModel):
    """Response model for a page of orders"""

    items: list[dict]
    next: str | None = None


paginate_query = Paginator.create_query(
    key=os.environ.get("PAGINATION_SECRET", "change-me"),
    client=boto3.client("dynamodb"),
)

app = FastAPI(title="dynapager + FastAPI Example")


@app.get("/users/{user_id}/orders", response_model=OrdersPage)
async def list_orders(user_id: str, limit: int = 20, next: str | None = None) -> OrdersPage:
    """List orders of a user, 20 at a time"""
    orders = paginate_query(
        {
            "TableName": "Shop",
            "KeyConditionExpression": "PK = :pk AND begins_with(SK, :sk)",
            "ExpressionAttributeValues": {":pk": f"USER#{user_id}", ":sk": "ORDER#"},
        },
        limit=min(limit, 100),
        from_=next,
        # A token issued for one user is rejected for every other user
        context=user_id,
    )
    try:
        page = await orders.page()
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination token"
        ) from None
    return OrdersPage(items=page.items, next=page.next_token)


# Run with: uvicorn main:app --reload
# Visit: http://localhost:8000/docs
