"""Shared fixtures for SQLBridge tests."""

import os

# Give Rich a fixed wide console so CLI output is not wrapped at 80 columns.
os.environ.setdefault('COLUMNS', '200')

from typing import AsyncIterator

import pytest
import pytest_asyncio

from fakes import FakePostgreSQLClient
from sqlbridge.config.models import ConnectionParams


@pytest.fixture
def params() -> ConnectionParams:
    return ConnectionParams(uid='test', host='db.local', database='app', user='app', password='secret')


@pytest.fixture
def pooled_params() -> ConnectionParams:
    return ConnectionParams(uid='pooled', host='db.local', database='app', user='app', pool_size=4)


@pytest_asyncio.fixture
async def client(params: ConnectionParams) -> AsyncIterator[FakePostgreSQLClient]:
    fake = FakePostgreSQLClient(params)
    await fake.connect()
    yield fake
    await fake.destroy()


@pytest_asyncio.fixture
async def pooled_client(pooled_params: ConnectionParams) -> AsyncIterator[FakePostgreSQLClient]:
    fake = FakePostgreSQLClient(pooled_params)
    await fake.connect()
    yield fake
    await fake.destroy()
