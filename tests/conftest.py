"""
Shared pytest fixtures and configuration for dynapager tests.

This module provides common fixtures used across unit and integration tests,
including in-memory DynamoDB fakes, a LocalStack client and ready-made
paginate functions.
"""

import os
from typing import Any

import boto3
import pytest

from dynapager import Paginator
from tests.helpers.fake_dynamo import AsyncFakeDynamoClient, FakeDynamoClient, make_items
from tests.helpers.localstack import LocalStackHelper

PARTITIONS = [f"{i:02d}" for i in range(10)]
INTEGRATION_TABLE = "dynapager_integration"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: Integration tests against LocalStack")


@pytest.fixture(scope="session")
def localstack_endpoint() -> str:
    """Get LocalStack endpoint URL from environment or default."""
    return os.getenv("LOCALSTACK_ENDPOINT", "http://localhost:4566")


@pytest.fixture(scope="session")
def localstack_client(localstack_endpoint: str):
    """
    Creates a boto3 client connected to LocalStack.

    Integration tests are skipped when LocalStack is not reachable.
    """
    client = boto3.client(
        "dynamodb",
        endpoint_url=localstack_endpoint,
        region_name="eu-south-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    try:
        client.list_tables(Limit=1)
    except Exception:
        pytest.skip("LocalStack is not available")
    return client


@pytest.fixture
def secret() -> bytes:
    """A fixed 32-byte pagination secret."""
    return bytes(range(32))


@pytest.fixture
def table_items() -> list[dict[str, Any]]:
    """250 items: 10 partitions with 25 items each."""
    return make_items(PARTITIONS)


@pytest.fixture
def fake_client(table_items) -> FakeDynamoClient:
    """Synchronous fake DynamoDB client (runs through asyncio.to_thread)."""
    return FakeDynamoClient(table_items, indexes={"GSI1.1": ("GSI1PK", "GSI1SK")})


@pytest.fixture
def async_fake_client(table_items) -> AsyncFakeDynamoClient:
    """Async fake DynamoDB client without latency."""
    return AsyncFakeDynamoClient(table_items, indexes={"GSI1.1": ("GSI1PK", "GSI1SK")})


@pytest.fixture
def paginator(secret, fake_client) -> Paginator:
    return Paginator(key=secret, client=fake_client)


@pytest.fixture
def query_request() -> dict[str, Any]:
    """Query request for the first partition."""
    return {
        "TableName": "test_table",
        "KeyConditionExpression": "PK = :pk",
        "ExpressionAttributeValues": {":pk": f"p:{PARTITIONS[0]}"},
    }


@pytest.fixture(scope="session")
def integration_table(localstack_client):
    """
    A LocalStack table with a GSI1 index, seeded with 4 partitions of 25 items.

    The table is deleted at the end of the session.
    """
    helper = LocalStackHelper(localstack_client)
    helper.create_table(INTEGRATION_TABLE, gsi_names=["GSI1"])
    helper.put_items(INTEGRATION_TABLE, make_items(PARTITIONS[:4]))
    yield INTEGRATION_TABLE
    helper.delete_table(INTEGRATION_TABLE)
